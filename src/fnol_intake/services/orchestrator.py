# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Submission orchestrator: the exactly-once case submission protocol.

Steps, each reached only if the previous one succeeded::

    START -> DEDUPE_CHECKED -> CLASSIFIED -> IDENTIFIED -> PERSISTED
          -> REGISTERED -> WORKFLOW_STARTED -> NOTIFIED

A live idempotency record short-circuits to DUPLICATE_RETURNED. Losing a
registration race to a concurrent identical submission discards the
half-built case and also returns the winner's case as a duplicate.

Every external call runs under the per-step timeout. The submission deadline
additionally caps the steps before persistence; once a case is being saved the
protocol runs to completion. The workflow engine is never retried here: a
failed start leaves the case persisted and registered without a handle and is
reported as WORKFLOW_START_FAILED. Notification runs as a detached task and
cannot affect the result.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TypeVar
from uuid import uuid4

from attrs import field, frozen
from attrs.validators import gt
from beartype import beartype

from ..core.config import Settings
from ..core.exceptions import (
    AlreadyRegisteredError,
    CaseNotFoundError,
    DuplicateCaseIdError,
    StoreUnavailableError,
    WorkflowStartError,
)
from ..core.logging_utils import get_logger, token_fingerprint
from ..core.result_types import Err, Ok, Result
from ..models.case import (
    Case,
    CaseAttributes,
    CaseStatusView,
    SubmissionRequest,
    SubmissionResult,
)
from ..models.enums import SubmissionState
from .case_identifier import CaseIdentifierFactory
from .errors import SubmissionError, SubmissionErrorKind
from .idempotency import (
    IdempotencyGuard,
    digest_token,
    generate_synthetic_token,
    is_blank,
    utc_now,
)
from .ports import (
    CaseStore,
    CaseValidator,
    Notifier,
    PassthroughNormalizer,
    ProcessStarter,
    TextNormalizer,
)
from .sequence_generator import SequenceGenerator
from .severity import classify

logger = get_logger(__name__)

T = TypeVar("T")

_STORE_ERRORS = (StoreUnavailableError, asyncio.TimeoutError)


@frozen
class OrchestratorConfig:
    """Timeouts and idempotency policy of the orchestrator.

    Attributes:
        step_timeout_seconds: Bound on every single external call.
        submission_deadline_seconds: Bound on all steps before persistence.
        idempotency_ttl: Lifetime of the idempotency record of a new case.
        derive_idempotency_tokens: Derive a token from identity fields when
            the caller supplies none.
    """

    step_timeout_seconds: float = field(default=5.0, validator=gt(0))
    submission_deadline_seconds: float = field(default=15.0, validator=gt(0))
    idempotency_ttl: timedelta = timedelta(hours=24)
    derive_idempotency_tokens: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        """Build the configuration from application settings."""
        return cls(
            step_timeout_seconds=settings.step_timeout_seconds,
            submission_deadline_seconds=settings.submission_deadline_seconds,
            idempotency_ttl=timedelta(seconds=settings.idempotency_ttl_seconds),
            derive_idempotency_tokens=settings.derive_idempotency_tokens,
        )


class SubmissionOrchestrator:
    """Coordinates one case submission end to end."""

    def __init__(
        self,
        *,
        case_store: CaseStore,
        sequence_generator: SequenceGenerator,
        identifier_factory: CaseIdentifierFactory,
        idempotency_guard: IdempotencyGuard,
        process_starter: ProcessStarter,
        notifier: Notifier,
        validator: CaseValidator | None = None,
        normalizer: TextNormalizer | None = None,
        config: OrchestratorConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the orchestrator with its collaborators."""
        self._store = case_store
        self._sequences = sequence_generator
        self._identifiers = identifier_factory
        self._guard = idempotency_guard
        self._starter = process_starter
        self._notifier = notifier
        self._validator = validator
        self._normalizer = normalizer or PassthroughNormalizer()
        self._config = config or OrchestratorConfig()
        self._clock = clock
        self._pending_notifications: set[asyncio.Task[None]] = set()

    @beartype
    async def submit(
        self, request: SubmissionRequest
    ) -> Result[SubmissionResult, SubmissionError]:
        """Submit a case exactly once per idempotency token."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.submission_deadline_seconds
        token = self._resolve_token(request)

        # Dedupe
        try:
            existing_id = await self._bounded(self._guard.lookup(token), deadline)
        except _STORE_ERRORS as e:
            return self._fail(
                SubmissionErrorKind.PERSISTENCE_FAILED,
                f"Idempotency lookup failed: {e!r}",
                SubmissionState.START,
                retryable=True,
            )

        state = SubmissionState.DEDUPE_CHECKED
        if existing_id is not None:
            return await self._replay(existing_id, deadline)

        # Validate
        if self._validator is not None:
            try:
                violations = await self._bounded(
                    self._validator.validate_all(
                        request.jurisdiction,
                        request.contact_number,
                        request.national_id,
                        request.plate_number,
                    ),
                    deadline,
                )
            except asyncio.TimeoutError:
                return self._fail(
                    SubmissionErrorKind.VALIDATION_REJECTED,
                    "Validation did not complete in time",
                    state,
                    retryable=True,
                )
            except Exception as e:
                logger.exception("Validation collaborator failed")
                return self._fail(
                    SubmissionErrorKind.VALIDATION_REJECTED,
                    f"Validation could not be performed: {e!r}",
                    state,
                    retryable=True,
                )
            if violations:
                logger.info(
                    f"Submission rejected: {', '.join(v.field for v in violations)}"
                )
                return Err(
                    SubmissionError(
                        kind=SubmissionErrorKind.VALIDATION_REJECTED,
                        message=f"{len(violations)} field(s) failed validation",
                        state=state,
                        violations=tuple(violations),
                    )
                )

        # Classify
        classification = classify(
            request.has_injury,
            request.drivable,
            request.coverage_class,
            request.fleet_flag,
        )
        state = SubmissionState.CLASSIFIED

        # Identify
        submitted_at = self._clock()
        try:
            sequence = await self._bounded(
                self._sequences.allocate(self._identifiers.config.sequence_name),
                deadline,
            )
        except _STORE_ERRORS as e:
            return self._fail(
                SubmissionErrorKind.SEQUENCE_ALLOCATION_FAILED,
                f"Sequence allocation failed: {e!r}",
                state,
                retryable=True,
            )
        case_id = self._identifiers.generate(
            request.jurisdiction, sequence, submitted_at
        )
        state = SubmissionState.IDENTIFIED

        case = Case(
            case_id=case_id,
            correlation_id=request.correlation_id or uuid4().hex,
            jurisdiction=request.jurisdiction,
            attributes=self._build_attributes(request),
            drivable=request.drivable,
            has_injury=request.has_injury,
            coverage_class=request.coverage_class,
            fleet_flag=request.fleet_flag,
            severity_level=classification.severity_level,
            route=classification.route,
            severity_flags=classification.flags,
            submitted_at=submitted_at,
        )

        # Persist
        try:
            await self._step(self._store.save(case))
        except asyncio.TimeoutError:
            # The insert may still commit; do not leave an unregistered case behind.
            await self._discard(case_id)
            return self._fail(
                SubmissionErrorKind.PERSISTENCE_FAILED,
                f"Saving case {case_id} timed out",
                state,
                retryable=True,
            )
        except (StoreUnavailableError, DuplicateCaseIdError) as e:
            return self._fail(
                SubmissionErrorKind.PERSISTENCE_FAILED,
                f"Saving case {case_id} failed: {e}",
                state,
                retryable=True,
            )
        state = SubmissionState.PERSISTED

        # Register
        try:
            await self._step(
                self._guard.register(token, case_id, self._config.idempotency_ttl)
            )
        except AlreadyRegisteredError:
            return await self._resolve_lost_race(token, case_id)
        except _STORE_ERRORS as e:
            failure = await self._settle_registration(token, case_id, e)
            if failure is not None:
                return failure

        logger.info(
            f"Case {case_id} created ({case.severity_level.value}/{case.route.value})"
        )

        # Workflow start and notification
        return await self._start_workflow(case)

    @beartype
    async def get_case(self, case_id: str) -> Case | None:
        """Fetch a case by identifier."""
        return await self._step(self._store.find_by_id(case_id))

    @beartype
    async def get_status(self, case_id: str) -> CaseStatusView | None:
        """Tracking view of a case, or None if unknown."""
        case = await self.get_case(case_id)
        return CaseStatusView.from_case(case) if case is not None else None

    @beartype
    async def restart_workflow(
        self, case_id: str
    ) -> Result[SubmissionResult, SubmissionError]:
        """Start the workflow of a case that has no handle yet.

        Intended for operators after WORKFLOW_START_FAILED with a known
        outcome, or after confirming out of band that no instance exists.
        A case that already has a handle is returned unchanged.
        """
        try:
            case = await self._step(self._store.find_by_id(case_id))
        except _STORE_ERRORS as e:
            return self._fail(
                SubmissionErrorKind.PERSISTENCE_FAILED,
                f"Loading case {case_id} failed: {e!r}",
                SubmissionState.START,
                case_id=case_id,
                retryable=True,
            )
        if case is None:
            return self._fail(
                SubmissionErrorKind.CASE_NOT_FOUND,
                f"Case {case_id} not found",
                SubmissionState.START,
            )
        if case.workflow_handle is not None:
            return Ok(
                SubmissionResult.from_case(
                    case, duplicate=False, state=SubmissionState.WORKFLOW_STARTED
                )
            )

        logger.info(f"Restarting workflow for case {case_id}")
        return await self._start_workflow(case)

    @beartype
    async def reconcile_missing_handles(
        self, older_than: timedelta, limit: int = 100
    ) -> list[Case]:
        """List cases still without a workflow handle after ``older_than``."""
        cutoff = self._clock() - older_than
        stuck = await self._step(
            self._store.find_without_workflow_handle(cutoff, limit)
        )
        if stuck:
            logger.warning(
                f"{len(stuck)} case(s) without workflow handle since {cutoff}"
            )
        return stuck

    async def drain_notifications(self) -> None:
        """Wait for all dispatched notifications to finish."""
        while self._pending_notifications:
            await asyncio.gather(*self._pending_notifications, return_exceptions=True)

    @property
    def pending_notifications(self) -> int:
        return len(self._pending_notifications)

    async def _start_workflow(
        self, case: Case
    ) -> Result[SubmissionResult, SubmissionError]:
        """Start the workflow, record its handle and dispatch the notification."""
        try:
            handle = await self._step(self._starter.start(case))
        except WorkflowStartError as e:
            return self._workflow_failed(case.case_id, str(e), e.outcome_known)
        except asyncio.TimeoutError:
            return self._workflow_failed(
                case.case_id, "Workflow engine did not answer in time", False
            )
        except Exception as e:
            logger.exception(
                f"Unexpected workflow start error for case {case.case_id}"
            )
            return self._workflow_failed(case.case_id, repr(e), False)

        case = case.with_workflow_handle(handle)
        try:
            await self._step(self._store.update_workflow_handle(case.case_id, handle))
        except (*_STORE_ERRORS, CaseNotFoundError) as e:
            # The instance is running; only the local link is missing.
            logger.error(
                f"Workflow {handle} started for case {case.case_id} "
                f"but the handle was not recorded: {e!r}"
            )

        self._dispatch_notification(case)
        return Ok(
            SubmissionResult.from_case(
                case, duplicate=False, state=SubmissionState.NOTIFIED
            )
        )

    def _workflow_failed(
        self, case_id: str, message: str, outcome_known: bool
    ) -> Err[SubmissionError]:
        if outcome_known:
            logger.error(f"Workflow not started for case {case_id}: {message}")
        else:
            logger.error(
                f"Workflow start outcome unknown for case {case_id}, "
                f"reconcile before restarting: {message}"
            )
        return Err(
            SubmissionError(
                kind=SubmissionErrorKind.WORKFLOW_START_FAILED,
                message=message,
                state=SubmissionState.REGISTERED,
                case_id=case_id,
                retryable=outcome_known,
                outcome_known=outcome_known,
            )
        )

    async def _replay(
        self, case_id: str, deadline: float | None
    ) -> Result[SubmissionResult, SubmissionError]:
        """Return the case a live idempotency record points to."""
        try:
            case = await self._bounded(self._store.find_by_id(case_id), deadline)
        except _STORE_ERRORS as e:
            return self._fail(
                SubmissionErrorKind.PERSISTENCE_FAILED,
                f"Loading case {case_id} failed: {e!r}",
                SubmissionState.DEDUPE_CHECKED,
                retryable=True,
            )

        if case is None:
            logger.critical(
                f"Idempotency record points to missing case {case_id}; "
                "refusing to create a replacement"
            )
            return self._fail(
                SubmissionErrorKind.CORRUPTED_IDEMPOTENCY_STATE,
                f"Idempotency record points to missing case {case_id}",
                SubmissionState.DEDUPE_CHECKED,
                case_id=case_id,
            )

        logger.info(f"Duplicate submission resolved to case {case_id}")
        return Ok(
            SubmissionResult.from_case(
                case, duplicate=True, state=SubmissionState.DUPLICATE_RETURNED
            )
        )

    async def _resolve_lost_race(
        self, token: str | None, own_case_id: str
    ) -> Result[SubmissionResult, SubmissionError]:
        """Discard our case and return the concurrent winner's."""
        logger.info(f"Lost idempotency race; discarding case {own_case_id}")
        await self._discard(own_case_id)

        try:
            winner_id = await self._step(self._guard.lookup(token))
        except _STORE_ERRORS as e:
            return self._fail(
                SubmissionErrorKind.PERSISTENCE_FAILED,
                f"Re-reading idempotency record failed: {e!r}",
                SubmissionState.PERSISTED,
                retryable=True,
            )
        if winner_id is None:
            return self._fail(
                SubmissionErrorKind.PERSISTENCE_FAILED,
                "Concurrent submission holds the token but its record is not readable",
                SubmissionState.PERSISTED,
                retryable=True,
            )

        return await self._replay(winner_id, None)

    async def _settle_registration(
        self, token: str | None, case_id: str, error: Exception
    ) -> Result[SubmissionResult, SubmissionError] | None:
        """Resolve a registration that failed without a definite outcome.

        The insert may have committed before the failure surfaced, so the
        record is read back before anything is discarded. Returns None when
        the record for ``case_id`` is in place and the protocol can go on.
        """
        try:
            registered_id = await self._step(self._guard.lookup(token))
        except _STORE_ERRORS as e:
            # Outcome unknown: keep the case so a committed record stays valid.
            logger.error(
                f"Could not verify idempotency registration for case {case_id}: "
                f"{error!r}, then {e!r}"
            )
            return self._fail(
                SubmissionErrorKind.PERSISTENCE_FAILED,
                f"Registering idempotency key for {case_id} could not be "
                f"verified: {error!r}",
                SubmissionState.PERSISTED,
                case_id=case_id,
                retryable=True,
            )

        if registered_id == case_id:
            logger.warning(
                f"Idempotency key for case {case_id} registered despite {error!r}"
            )
            return None
        if registered_id is not None:
            return await self._resolve_lost_race(token, case_id)

        await self._discard(case_id)
        return self._fail(
            SubmissionErrorKind.PERSISTENCE_FAILED,
            f"Registering idempotency key for {case_id} failed: {error!r}",
            SubmissionState.PERSISTED,
            retryable=True,
        )

    async def _discard(self, case_id: str) -> None:
        try:
            await self._step(self._store.discard(case_id))
        except _STORE_ERRORS as e:
            logger.error(f"Could not discard case {case_id}: {e!r}")

    def _dispatch_notification(self, case: Case) -> None:
        task = asyncio.create_task(self._notify(case))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _notify(self, case: Case) -> None:
        try:
            await self._notifier.notify_created(case)
        except Exception as e:
            logger.error(f"Notification for case {case.case_id} failed: {e!r}")

    def _resolve_token(self, request: SubmissionRequest) -> str | None:
        """Caller token, or a derived one when enabled."""
        if not is_blank(request.idempotency_token):
            return request.idempotency_token
        if not self._config.derive_idempotency_tokens:
            return None

        token = generate_synthetic_token(
            request.contact_number,
            request.national_id,
            request.plate_number,
            request.incident_at.date() if request.incident_at else None,
        )
        fingerprint = token_fingerprint(digest_token(token))
        logger.debug(f"Derived idempotency token {fingerprint}")
        return token

    def _build_attributes(self, request: SubmissionRequest) -> CaseAttributes:
        """Pass-through attributes with normalized free text."""
        language = request.language_hint
        return CaseAttributes(
            contact_number=request.contact_number,
            national_id=request.national_id,
            reporter_name=request.reporter_name,
            policy_number=request.policy_number,
            plate_number=request.plate_number,
            plate_jurisdiction=request.plate_jurisdiction,
            vehicle_type=request.vehicle_type,
            incident_at=request.incident_at,
            incident_location_original=request.incident_location,
            incident_location_normalized=(
                self._normalizer.normalize(request.incident_location, language)
                if request.incident_location
                else None
            ),
            description_original=request.description,
            description_normalized=(
                self._normalizer.normalize(request.description, language)
                if request.description
                else None
            ),
            police_report_number=request.police_report_number,
            language=language,
        )

    async def _step(self, awaitable: Awaitable[T]) -> T:
        """Await an external call under the per-step timeout."""
        return await asyncio.wait_for(awaitable, self._config.step_timeout_seconds)

    async def _bounded(self, awaitable: Awaitable[T], deadline: float | None) -> T:
        """Await an external call under the step timeout and the deadline."""
        timeout = self._config.step_timeout_seconds
        if deadline is not None:
            remaining = deadline - asyncio.get_running_loop().time()
            timeout = max(0.0, min(timeout, remaining))
        return await asyncio.wait_for(awaitable, timeout)

    @staticmethod
    def _fail(
        kind: SubmissionErrorKind,
        message: str,
        state: SubmissionState,
        *,
        case_id: str | None = None,
        retryable: bool = False,
    ) -> Err[SubmissionError]:
        logger.warning(f"Submission failed at {state.value}: {kind.value}: {message}")
        return Err(
            SubmissionError(
                kind=kind,
                message=message,
                state=state,
                case_id=case_id,
                retryable=retryable,
            )
        )
