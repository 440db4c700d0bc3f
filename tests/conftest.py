"""Test configuration and fixtures for the FNOL intake core.

Storage-backed tests run against a temporary-file SQLite database through
aiosqlite, so concurrent tests exercise real separate connections and the
store's own atomicity guarantees.
"""

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from fnol_intake.core.config import Settings, clear_settings_cache
from fnol_intake.core.database import Database, create_database
from fnol_intake.models.case import SubmissionRequest
from fnol_intake.models.enums import CoverageClass, Jurisdiction
from fnol_intake.services.case_identifier import CaseIdentifierFactory
from fnol_intake.services.case_store import SqlCaseStore
from fnol_intake.services.idempotency import IdempotencyGuard
from fnol_intake.services.orchestrator import (
    OrchestratorConfig,
    SubmissionOrchestrator,
)
from fnol_intake.services.process_starter import DemoProcessStarter
from fnol_intake.services.sequence_generator import SequenceGenerator


class FrozenClock:
    """Controllable UTC clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Any:
    """Keep FNOL_* variables of the host environment out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("FNOL_"):
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def test_database_url(tmp_path: Path) -> str:
    """Test database URL for a temporary SQLite file."""
    return f"sqlite+aiosqlite:///{tmp_path / 'fnol_test.db'}"


@pytest.fixture
def settings(test_database_url: str) -> Settings:
    """Settings pointing at the test database."""
    return Settings(database_url=test_database_url)


@pytest_asyncio.fixture  # type: ignore[misc]
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    """Database with the intake schema created."""
    database = create_database(settings)
    await database.create_schema()

    yield database

    await database.dispose()


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at a fixed instant."""
    return FrozenClock(datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def case_store(db: Database) -> SqlCaseStore:
    return SqlCaseStore(db)


@pytest.fixture
def sequence_generator(db: Database) -> SequenceGenerator:
    return SequenceGenerator(db)


@pytest.fixture
def idempotency_guard(db: Database, clock: FrozenClock) -> IdempotencyGuard:
    return IdempotencyGuard(db, clock=clock)


@pytest.fixture
def identifier_factory() -> CaseIdentifierFactory:
    return CaseIdentifierFactory()


@pytest.fixture
def mock_notifier() -> AsyncMock:
    """Notifier double recording delivered cases."""
    notifier = AsyncMock()
    notifier.notify_created = AsyncMock(return_value=None)
    return notifier


@pytest.fixture
def demo_process_starter() -> DemoProcessStarter:
    return DemoProcessStarter()


@pytest.fixture
def make_orchestrator(
    case_store: SqlCaseStore,
    sequence_generator: SequenceGenerator,
    identifier_factory: CaseIdentifierFactory,
    idempotency_guard: IdempotencyGuard,
    demo_process_starter: DemoProcessStarter,
    mock_notifier: AsyncMock,
    clock: FrozenClock,
) -> Callable[..., SubmissionOrchestrator]:
    """Factory for orchestrators over the test database.

    Any collaborator can be replaced through keyword arguments.
    """

    def _make(**overrides: Any) -> SubmissionOrchestrator:
        collaborators: dict[str, Any] = {
            "case_store": case_store,
            "sequence_generator": sequence_generator,
            "identifier_factory": identifier_factory,
            "idempotency_guard": idempotency_guard,
            "process_starter": demo_process_starter,
            "notifier": mock_notifier,
            "config": OrchestratorConfig(
                step_timeout_seconds=10.0, submission_deadline_seconds=30.0
            ),
            "clock": clock,
        }
        collaborators.update(overrides)
        return SubmissionOrchestrator(**collaborators)

    return _make


@pytest.fixture
def make_request() -> Callable[..., SubmissionRequest]:
    """Factory for submission requests with realistic defaults."""

    def _make(**overrides: Any) -> SubmissionRequest:
        data: dict[str, Any] = {
            "idempotency_token": "T1",
            "jurisdiction": Jurisdiction.AE,
            "contact_number": "+971501234567",
            "national_id": "784-1985-1234567-1",
            "reporter_name": "Fatima Al Mansouri",
            "policy_number": "POL-AE-778812",
            "plate_number": "DXB A 12345",
            "plate_jurisdiction": Jurisdiction.AE,
            "coverage_class": CoverageClass.FULL,
            "fleet_flag": True,
            "drivable": True,
            "has_injury": False,
            "description": "Rear-ended  at a   traffic light",
            "incident_location": "Sheikh Zayed Road,  Dubai",
            "incident_at": datetime(2025, 3, 13, 18, 5, tzinfo=timezone.utc),
        }
        data.update(overrides)
        return SubmissionRequest(**data)

    return _make
