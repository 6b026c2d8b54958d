"""Shared fixtures for the garden portal tests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from garden.config import Settings
from garden.db.database import build_engine, build_session_factory, init_schema
from garden.main import create_app
from garden.services.container import PortalServices
from garden.services.participant_store import ParticipantStore


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'garden.sqlite'}",
        backup_path=str(tmp_path / "backups" / "garden.sqlite.backup"),
        log_file="",
        feed_send_timeout_seconds=0.5,
    )


@pytest.fixture
def store(settings: Settings) -> Iterator[ParticipantStore]:
    engine = build_engine(settings.database_url)
    init_schema(engine)
    try:
        yield ParticipantStore(build_session_factory(engine))
    finally:
        engine.dispose()


@pytest.fixture
def run_services(settings: Settings) -> Callable[[Callable[[PortalServices], Awaitable[Any]]], Any]:
    """Run an async scenario against freshly started services."""

    def runner(scenario: Callable[[PortalServices], Awaitable[Any]]) -> Any:
        async def main() -> Any:
            services = PortalServices(settings)
            await services.start()
            try:
                return await scenario(services)
            finally:
                await services.stop()

        return asyncio.run(main())

    return runner


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(settings)) as test_client:
        yield test_client
