#!/usr/bin/env python3
"""
Import participants from a legacy users.json file into the portal database.

Usage:
  python scripts/import_users_json.py --source data/users.json
  python scripts/import_users_json.py --source data/users.json --database-url sqlite:///./data/garden.sqlite

Notes:
  - Existing rows with the same id are replaced.
  - On success the source file is renamed to users.json.migrated unless --keep-source is given.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from garden.config import Settings
from garden.db.database import build_engine, build_session_factory, init_schema
from garden.logging_config import configure_logging
from garden.models.participant import utcnow
from garden.services.errors import StorageError
from garden.services.participant_store import ImportRecord, ParticipantStore
from garden.services.progress_merge import MAX_LEVEL, normalize_phone

logger = logging.getLogger("garden.scripts.import_users_json")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import legacy users.json participants.")
    parser.add_argument("--source", type=Path, default=Path("data/users.json"), help="Path to users.json.")
    parser.add_argument("--database-url", default=None, help="Override GARDEN_DATABASE_URL.")
    parser.add_argument("--keep-source", action="store_true", help="Do not rename the source file.")
    return parser.parse_args()


def _parse_ts(value: Any) -> datetime:
    if not value:
        return utcnow()
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def to_record(raw: dict[str, Any]) -> ImportRecord | None:
    user_id = str(raw.get("id") or "").strip()
    name = " ".join(str(raw.get("name") or "").split())
    phone = normalize_phone(str(raw.get("phone") or ""))
    if not user_id or not name or not phone:
        return None

    flower = raw.get("flower") if isinstance(raw.get("flower"), dict) else {}
    level = flower.get("level")
    level = level if isinstance(level, int) and 0 <= level <= MAX_LEVEL else 0
    commitment = raw.get("commitmentPercentage")
    commitment = commitment if isinstance(commitment, int) and 0 <= commitment <= 100 else None

    return ImportRecord(
        id=user_id,
        name=name,
        phone=phone,
        employee_id=str(raw.get("employeeId") or "").strip(),
        registered_at=_parse_ts(raw.get("registeredAt")),
        updated_at=_parse_ts(raw.get("updatedAt")),
        progress_level=level,
        flower_seed_name=flower.get("seedName") or None,
        flower_image=flower.get("flowerImage") or None,
        commitment_percentage=commitment,
    )


def main() -> int:
    args = parse_args()
    settings = Settings(database_url=args.database_url) if args.database_url else Settings()
    configure_logging(settings)

    if not args.source.exists():
        logger.info("%s not found, nothing to import", args.source)
        return 0

    raw_users = json.loads(args.source.read_text(encoding="utf-8"))
    if not raw_users:
        logger.info("No users found in %s", args.source)
        return 0

    records = []
    for raw in raw_users:
        record = to_record(raw)
        if record is None:
            logger.warning("Skipping malformed user entry: %s", raw.get("id"))
            continue
        records.append(record)
    logger.info("Found %d users to import", len(records))

    engine = build_engine(settings.database_url)
    try:
        init_schema(engine)
        store = ParticipantStore(build_session_factory(engine))
        imported = store.import_records(records)
    except StorageError:
        logger.error("Import failed; no rows were written")
        return 1
    finally:
        engine.dispose()

    logger.info("Imported %d participants", imported)
    if not args.keep_source:
        migrated = args.source.with_name(f"{args.source.name}.migrated")
        args.source.rename(migrated)
        logger.info("Renamed %s to %s", args.source, migrated)
    return 0


if __name__ == "__main__":
    sys.exit(main())
