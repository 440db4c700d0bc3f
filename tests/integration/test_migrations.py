"""Validate that the Alembic migrations build the intake schema.

Migrations run against a temporary SQLite file through the same async
environment used in production, then roll back and re-apply.
"""

from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from alembic import command
from alembic.config import Config
from fnol_intake.core.config import clear_settings_cache

pytestmark = pytest.mark.integration

ROOT = Path(__file__).resolve().parents[2]

EXPECTED_TABLES = {"case_sequences", "fnol_cases", "idempotency_keys"}


@pytest.fixture
def alembic_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> tuple[Config, str]:
    db_path = tmp_path / "migrations.db"
    monkeypatch.setenv("FNOL_DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    clear_settings_cache()

    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))
    return config, f"sqlite:///{db_path}"


def test_upgrade_creates_schema(alembic_config: tuple[Config, str]) -> None:
    config, sync_url = alembic_config

    command.upgrade(config, "head")

    inspector = inspect(create_engine(sync_url))
    assert EXPECTED_TABLES <= set(inspector.get_table_names())

    case_columns = {column["name"] for column in inspector.get_columns("fnol_cases")}
    assert {"case_id", "severity_level", "route", "workflow_handle"} <= case_columns

    unique = inspector.get_unique_constraints("idempotency_keys")
    assert any(c["column_names"] == ["key_digest"] for c in unique)


def test_downgrade_and_reapply(alembic_config: tuple[Config, str]) -> None:
    config, sync_url = alembic_config

    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = create_engine(sync_url)
    assert not EXPECTED_TABLES & set(inspect(engine).get_table_names())

    command.upgrade(config, "head")
    assert EXPECTED_TABLES <= set(inspect(engine).get_table_names())
