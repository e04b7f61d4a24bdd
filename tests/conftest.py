"""Shared pytest fixtures for the SLA engine tests."""

from pathlib import Path

import pytest
import pytest_asyncio

from config import Settings
from infrastructure.database import build_engine, build_session_maker, create_tables
from sla.infrastructure import YAMLCatalogProvider
from sla.services import build_sla_services

from tests.factories import FrozenClock, RecordingNotifier, utc


@pytest.fixture
def clock() -> FrozenClock:
    # Monday
    return FrozenClock(utc(2024, 1, 15, 9, 0))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'sla.db'}",
        sla_evaluation_interval=0,
        sla_sweep_concurrency=1,
        sla_config_path=tmp_path / "missing.yaml",
    )


@pytest_asyncio.fixture
async def engine(test_settings: Settings):
    engine = build_engine(test_settings.database_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
def services(session_maker, test_settings, clock, notifier):
    return build_sla_services(
        session_maker,
        test_settings,
        clock=clock,
        notifier=notifier,
        catalog_provider=YAMLCatalogProvider(test_settings.sla_config_path),
    )
