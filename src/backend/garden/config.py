from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parents[3]
ROOT_ENV_FILE = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/garden.sqlite"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["*"]
    ack_timeout_seconds: float = 5.0
    live_poll_interval_seconds: int = 5
    feed_queue_size: int = 256
    feed_send_timeout_seconds: float = 2.0
    backup_enabled: bool = True
    backup_path: str = ""
    log_level: str = "INFO"
    log_file: str = ""

    model_config = SettingsConfigDict(
        env_file=(str(ROOT_ENV_FILE), ".env"),
        env_prefix="GARDEN_",
        extra="ignore",
    )


def get_settings() -> Settings:
    return Settings()
