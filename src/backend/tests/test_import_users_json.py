from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from scripts import import_users_json
from scripts.import_users_json import to_record

from garden.config import Settings
from garden.services.participant_store import ParticipantStore
from garden.services.progress_merge import LookupKey


def test_to_record_maps_legacy_fields() -> None:
    record = to_record(
        {
            "id": "legacy-1",
            "name": "  Sara   Noor Hassan ",
            "phone": "055 111 2222",
            "employeeId": " E200 ",
            "registeredAt": "2025-03-01T08:00:00.000Z",
            "updatedAt": "2025-03-01T09:30:00+03:00",
            "commitmentPercentage": 80,
            "flower": {"seedName": "Rose", "flowerImage": "/f/rose.png", "level": 3},
        }
    )

    assert record is not None
    assert record.name == "Sara Noor Hassan"
    assert record.phone == "0551112222"
    assert record.employee_id == "E200"
    assert record.registered_at == datetime(2025, 3, 1, 8, 0)
    assert record.updated_at == datetime(2025, 3, 1, 6, 30)
    assert record.progress_level == 3
    assert record.commitment_percentage == 80
    assert record.flower_seed_name == "Rose"


def test_to_record_clamps_bad_values_and_skips_incomplete() -> None:
    record = to_record({"id": "legacy-2", "name": "Omar Ali Hassan", "phone": "0502", "flower": {"level": 9}, "commitmentPercentage": 300})

    assert record is not None
    assert record.progress_level == 0
    assert record.commitment_percentage is None
    assert record.flower_seed_name is None
    assert to_record({"id": "legacy-3", "name": "", "phone": "0503"}) is None


def test_main_imports_and_renames_source(tmp_path: Path, settings: Settings, store: ParticipantStore, monkeypatch) -> None:
    source = tmp_path / "users.json"
    source.write_text(
        json.dumps(
            [
                {"id": "legacy-1", "name": "Sara Noor Hassan", "phone": "0551112222", "employeeId": "E200"},
                {"id": "", "name": "broken"},
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setattr(
        "sys.argv",
        ["import_users_json.py", "--source", str(source), "--database-url", settings.database_url],
    )

    assert import_users_json.main() == 0

    assert not source.exists()
    assert (tmp_path / "users.json.migrated").exists()
    imported = store.get(LookupKey(user_id="legacy-1", phone=None))
    assert imported is not None
    assert imported.employee_id == "E200"
