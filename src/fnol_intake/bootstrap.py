# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Wiring of the intake core from settings.

``create_runtime`` builds every component from ``Settings`` and returns an
``IntakeRuntime`` owning the database engine, HTTP clients and the
idempotency sweeper. Host applications call ``start`` on startup and
``close`` on shutdown.
"""

from datetime import timedelta

from .core.config import Settings, get_settings
from .core.database import Database, create_database
from .core.logging_utils import get_logger
from .services.case_identifier import CaseIdentifierFactory, IdentifierConfig
from .services.case_store import SqlCaseStore
from .services.idempotency import IdempotencyGuard, IdempotencySweeper
from .services.notifier import create_notifier
from .services.orchestrator import OrchestratorConfig, SubmissionOrchestrator
from .services.ports import CaseValidator, TextNormalizer
from .services.process_starter import create_process_starter
from .services.sequence_generator import SequenceGenerator

logger = get_logger(__name__)


class IntakeRuntime:
    """Running intake core and the resources it owns."""

    def __init__(
        self,
        *,
        db: Database,
        orchestrator: SubmissionOrchestrator,
        sweeper: IdempotencySweeper,
        closeables: list[object],
    ) -> None:
        self.db = db
        self.orchestrator = orchestrator
        self.sweeper = sweeper
        self._closeables = closeables

    async def start(self, *, create_schema: bool = False) -> None:
        """Optionally create the schema, then start background sweeping."""
        if create_schema:
            await self.db.create_schema()
        await self.sweeper.start()
        logger.info("FNOL intake core started")

    async def close(self) -> None:
        """Stop background work and release connections."""
        await self.sweeper.stop()
        await self.orchestrator.drain_notifications()
        for closeable in self._closeables:
            close = getattr(closeable, "close", None)
            if close is not None:
                await close()
        await self.db.dispose()
        logger.info("FNOL intake core stopped")


def create_runtime(
    settings: Settings | None = None,
    *,
    db: Database | None = None,
    validator: CaseValidator | None = None,
    normalizer: TextNormalizer | None = None,
) -> IntakeRuntime:
    """Build the intake core from settings."""
    settings = settings or get_settings()
    db = db or create_database(settings)

    guard = IdempotencyGuard(
        db, ttl=timedelta(seconds=settings.idempotency_ttl_seconds)
    )
    process_starter = create_process_starter(settings)
    notifier = create_notifier(settings)

    orchestrator = SubmissionOrchestrator(
        case_store=SqlCaseStore(db),
        sequence_generator=SequenceGenerator(db),
        identifier_factory=CaseIdentifierFactory(IdentifierConfig.from_settings(settings)),
        idempotency_guard=guard,
        process_starter=process_starter,
        notifier=notifier,
        validator=validator,
        normalizer=normalizer,
        config=OrchestratorConfig.from_settings(settings),
    )
    sweeper = IdempotencySweeper(
        guard, interval_seconds=settings.idempotency_sweep_interval_seconds
    )

    return IntakeRuntime(
        db=db,
        orchestrator=orchestrator,
        sweeper=sweeper,
        closeables=[process_starter, notifier],
    )
