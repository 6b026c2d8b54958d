import logging
from pathlib import Path

from garden.config import Settings

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """Install console and optional file handlers on the ``garden`` logger."""
    logger = logging.getLogger("garden")
    logger.setLevel(settings.log_level.upper())
    if getattr(logger, "_garden_configured", False):
        return

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger._garden_configured = True  # type: ignore[attr-defined]
