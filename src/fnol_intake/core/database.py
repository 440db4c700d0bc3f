# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Database connection management with SQLAlchemy async engines.

Production runs on PostgreSQL through asyncpg; tests and local development
run on SQLite through aiosqlite. Both dialects support the two primitives the
intake core depends on: ``INSERT ... ON CONFLICT ... RETURNING`` for atomic
sequence allocation and UNIQUE constraints for idempotency keys.

Each helper runs in its own short transaction. Driver-level failures are
translated to ``StoreUnavailableError``; integrity violations propagate so
callers can map them to domain conflicts.
"""

import contextlib
from collections.abc import AsyncIterator, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from beartype import beartype
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .config import Settings
from .exceptions import StoreUnavailableError
from .logging_utils import get_logger

logger = get_logger(__name__)

metadata = sa.MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "pk": "pk_%(table_name)s",
    }
)

case_sequences = sa.Table(
    "case_sequences",
    metadata,
    sa.Column("name", sa.String(64), primary_key=True),
    sa.Column("next_value", sa.BigInteger(), nullable=False),
)

fnol_cases = sa.Table(
    "fnol_cases",
    metadata,
    sa.Column("case_id", sa.String(40), primary_key=True),
    sa.Column("correlation_id", sa.String(64), nullable=False),
    sa.Column("jurisdiction", sa.String(2), nullable=False),
    sa.Column("attributes", sa.JSON(), nullable=False),
    sa.Column("drivable", sa.Boolean(), nullable=False),
    sa.Column("has_injury", sa.Boolean(), nullable=False),
    sa.Column("coverage_class", sa.String(16), nullable=False),
    sa.Column("fleet_flag", sa.Boolean(), nullable=False),
    sa.Column("severity_level", sa.String(16), nullable=False),
    sa.Column("route", sa.String(16), nullable=False),
    sa.Column("severity_flags", sa.JSON(), nullable=False),
    sa.Column("workflow_handle", sa.String(128), nullable=True),
    sa.Column("status", sa.String(32), nullable=False),
    sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.Index("ix_fnol_cases_submitted_at", "submitted_at"),
)

idempotency_keys = sa.Table(
    "idempotency_keys",
    metadata,
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("key_digest", sa.String(64), nullable=False),
    sa.Column("case_id", sa.String(40), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("key_digest"),
    sa.Index("ix_idempotency_keys_expires_at", "expires_at"),
)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime read from the store to UTC.

    SQLite returns naive values; every timestamp is written in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Database:
    """Thin async facade over an SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        """Wrap an already-created async engine."""
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        """Underlying SQLAlchemy engine."""
        return self._engine

    @property
    def dialect_name(self) -> str:
        """Dialect of the connected database (``postgresql``, ``sqlite``)."""
        return self._engine.dialect.name

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Open a transaction, translating driver failures."""
        try:
            async with self._engine.begin() as conn:
                yield conn
        except IntegrityError:
            raise
        except (DBAPIError, PoolTimeoutError, OSError) as e:
            logger.warning(f"Database unavailable: {e}")
            raise StoreUnavailableError(str(e)) from e

    async def fetchrow(
        self, statement: sa.Executable, params: Mapping[str, Any] | None = None
    ) -> sa.RowMapping | None:
        """Execute a statement and fetch a single row."""
        async with self.transaction() as conn:
            result = await self._run(conn, statement, params)
            return result.mappings().first()

    async def fetch(
        self, statement: sa.Executable, params: Mapping[str, Any] | None = None
    ) -> Sequence[sa.RowMapping]:
        """Execute a statement and fetch all rows."""
        async with self.transaction() as conn:
            result = await self._run(conn, statement, params)
            return result.mappings().all()

    async def fetchval(
        self, statement: sa.Executable, params: Mapping[str, Any] | None = None
    ) -> Any:
        """Execute a statement and fetch the first column of the first row."""
        async with self.transaction() as conn:
            result = await self._run(conn, statement, params)
            return result.scalar()

    async def execute(
        self, statement: sa.Executable, params: Mapping[str, Any] | None = None
    ) -> int:
        """Execute a statement and return the affected row count."""
        async with self.transaction() as conn:
            result = await self._run(conn, statement, params)
            return result.rowcount

    async def create_schema(self) -> None:
        """Create all intake tables (development and tests; production uses Alembic)."""
        async with self.transaction() as conn:
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self._engine.dispose()

    @staticmethod
    async def _run(
        conn: AsyncConnection,
        statement: sa.Executable,
        params: Mapping[str, Any] | None,
    ) -> sa.CursorResult[Any]:
        if params:
            return await conn.execute(statement, dict(params))
        return await conn.execute(statement)


@beartype
def create_database(settings: Settings) -> Database:
    """Create a database facade from settings."""
    engine_kwargs: dict[str, Any] = {"echo": settings.database_echo}
    if settings.is_sqlite:
        # Writers wait on the SQLite file lock instead of failing fast.
        engine_kwargs["connect_args"] = {"timeout": 30}
    else:
        engine_kwargs.update(
            pool_size=settings.database_pool_size,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,
        )

    engine = create_async_engine(settings.database_url, **engine_kwargs)
    logger.info(f"Database engine created for dialect {engine.dialect.name}")
    return Database(engine)

