"""Unit tests for the submission orchestrator failure semantics.

Collaborators are AsyncMock doubles so each protocol step can be made to fail
in isolation.
"""

import asyncio
import logging
from typing import Any
from unittest.mock import AsyncMock

import pytest

from fnol_intake.core.exceptions import (
    AlreadyRegisteredError,
    CaseNotFoundError,
    StoreUnavailableError,
    WorkflowStartError,
)
from fnol_intake.core.result_types import Err, Ok
from fnol_intake.models.case import Case, FieldViolation
from fnol_intake.models.enums import Route, SeverityLevel, SubmissionState
from fnol_intake.services.case_identifier import CaseIdentifierFactory
from fnol_intake.services.errors import SubmissionErrorKind
from fnol_intake.services.orchestrator import OrchestratorConfig, SubmissionOrchestrator


@pytest.fixture
def store() -> AsyncMock:
    store = AsyncMock()
    store.save = AsyncMock(side_effect=lambda case: case)
    store.find_by_id = AsyncMock(return_value=None)
    store.update_workflow_handle = AsyncMock(return_value=None)
    store.discard = AsyncMock(return_value=True)
    return store


@pytest.fixture
def sequences() -> AsyncMock:
    sequences = AsyncMock()
    sequences.allocate = AsyncMock(return_value=1)
    return sequences


@pytest.fixture
def guard() -> AsyncMock:
    guard = AsyncMock()
    guard.lookup = AsyncMock(return_value=None)
    guard.register = AsyncMock(return_value=None)
    return guard


@pytest.fixture
def starter() -> AsyncMock:
    starter = AsyncMock()
    starter.start = AsyncMock(return_value="WF-1")
    return starter


@pytest.fixture
def build(
    store: AsyncMock,
    sequences: AsyncMock,
    guard: AsyncMock,
    starter: AsyncMock,
    mock_notifier: AsyncMock,
    clock: Any,
):
    """Factory for an orchestrator over mock collaborators."""

    def _build(**overrides: Any) -> SubmissionOrchestrator:
        kwargs: dict[str, Any] = {
            "case_store": store,
            "sequence_generator": sequences,
            "identifier_factory": CaseIdentifierFactory(),
            "idempotency_guard": guard,
            "process_starter": starter,
            "notifier": mock_notifier,
            "clock": clock,
        }
        kwargs.update(overrides)
        return SubmissionOrchestrator(**kwargs)

    return _build


def _saved_case(store: AsyncMock) -> Case:
    return store.save.await_args.args[0]


class TestHappyPath:
    """Test the full protocol over doubles."""

    async def test_submit_runs_every_step(
        self, build, make_request, store, guard, starter, mock_notifier
    ) -> None:
        orchestrator = build()

        result = await orchestrator.submit(make_request())
        await orchestrator.drain_notifications()

        assert isinstance(result, Ok)
        submitted = result.unwrap()
        assert submitted.case_id == "FNOL-AE-2025-000001"
        assert submitted.severity_level == SeverityLevel.LOW
        assert submitted.route == Route.FAST_TRACK
        assert submitted.workflow_handle == "WF-1"
        assert submitted.duplicate is False
        assert submitted.state == SubmissionState.NOTIFIED

        guard.register.assert_awaited_once()
        assert guard.register.await_args.args[:2] == ("T1", "FNOL-AE-2025-000001")
        store.update_workflow_handle.assert_awaited_once_with(
            "FNOL-AE-2025-000001", "WF-1"
        )
        notified = mock_notifier.notify_created.await_args.args[0]
        assert notified.workflow_handle == "WF-1"

    async def test_free_text_is_normalized_and_original_kept(
        self, build, make_request, store
    ) -> None:
        await build().submit(make_request())

        attributes = _saved_case(store).attributes
        assert attributes.description_original == "Rear-ended  at a   traffic light"
        assert attributes.description_normalized == "Rear-ended at a traffic light"
        assert attributes.incident_location_normalized == "Sheikh Zayed Road, Dubai"

    async def test_correlation_id_generated_when_missing(
        self, build, make_request, store
    ) -> None:
        await build().submit(make_request(correlation_id=None))
        assert _saved_case(store).correlation_id

        await build().submit(make_request(correlation_id="trace-77"))
        assert _saved_case(store).correlation_id == "trace-77"


class TestDedupe:
    """Test the idempotent replay path."""

    async def test_existing_token_returns_stored_case(
        self, build, make_request, store, guard, sequences, starter
    ) -> None:
        orchestrator = build()
        first = (await orchestrator.submit(make_request())).unwrap()
        stored = _saved_case(store).with_workflow_handle("WF-1")
        guard.lookup.return_value = first.case_id
        store.find_by_id.return_value = stored
        sequences.allocate.reset_mock()
        starter.start.reset_mock()

        replay = await orchestrator.submit(make_request())

        assert replay.unwrap().duplicate is True
        assert replay.unwrap().case_id == first.case_id
        assert replay.unwrap().state == SubmissionState.DUPLICATE_RETURNED
        sequences.allocate.assert_not_awaited()
        starter.start.assert_not_awaited()

    async def test_token_pointing_to_missing_case_is_fatal(
        self, build, make_request, store, guard, sequences, caplog
    ) -> None:
        guard.lookup.return_value = "FNOL-AE-2025-000009"
        store.find_by_id.return_value = None

        with caplog.at_level(logging.CRITICAL, logger="fnol_intake"):
            result = await build().submit(make_request())

        assert isinstance(result, Err)
        error = result.unwrap_err()
        assert error.kind == SubmissionErrorKind.CORRUPTED_IDEMPOTENCY_STATE
        assert error.case_id == "FNOL-AE-2025-000009"
        assert error.retryable is False
        sequences.allocate.assert_not_awaited()
        store.save.assert_not_awaited()
        assert "FNOL-AE-2025-000009" in caplog.text

    async def test_lookup_failure_is_retryable(
        self, build, make_request, guard, sequences
    ) -> None:
        guard.lookup.side_effect = StoreUnavailableError("connection refused")

        error = (await build().submit(make_request())).unwrap_err()

        assert error.kind == SubmissionErrorKind.PERSISTENCE_FAILED
        assert error.state == SubmissionState.START
        assert error.retryable is True
        sequences.allocate.assert_not_awaited()

    async def test_blank_token_skips_dedupe_by_default(
        self, build, make_request, guard
    ) -> None:
        await build().submit(make_request(idempotency_token="   "))

        assert guard.lookup.await_args.args[0] is None

    async def test_synthetic_token_when_enabled(
        self, build, make_request, guard
    ) -> None:
        orchestrator = build(
            config=OrchestratorConfig(derive_idempotency_tokens=True)
        )

        await orchestrator.submit(make_request(idempotency_token=None))
        first_token = guard.lookup.await_args.args[0]
        await orchestrator.submit(
            make_request(idempotency_token=None, plate_number="dxb a 12345")
        )

        assert first_token is not None
        assert guard.lookup.await_args.args[0] == first_token


class TestValidation:
    """Test the validation short-circuit."""

    async def test_violations_reject_before_allocation(
        self, build, make_request, sequences, store
    ) -> None:
        validator = AsyncMock()
        validator.validate_all = AsyncMock(
            return_value=[
                FieldViolation(
                    field="contact_number", code="INVALID_FORMAT", message="bad"
                )
            ]
        )

        error = (await build(validator=validator).submit(make_request())).unwrap_err()

        assert error.kind == SubmissionErrorKind.VALIDATION_REJECTED
        assert error.violations[0].field == "contact_number"
        assert error.retryable is False
        sequences.allocate.assert_not_awaited()
        store.save.assert_not_awaited()

    async def test_validator_failure_is_retryable_rejection(
        self, build, make_request, sequences
    ) -> None:
        validator = AsyncMock()
        validator.validate_all = AsyncMock(side_effect=RuntimeError("registry down"))

        result = await build(validator=validator).submit(make_request())

        assert isinstance(result, Err)
        error = result.unwrap_err()
        assert error.kind == SubmissionErrorKind.VALIDATION_REJECTED
        assert error.retryable is True
        assert error.violations == ()
        sequences.allocate.assert_not_awaited()

    async def test_clean_validation_continues(
        self, build, make_request
    ) -> None:
        validator = AsyncMock()
        validator.validate_all = AsyncMock(return_value=[])

        result = await build(validator=validator).submit(make_request())

        assert isinstance(result, Ok)


class TestFailuresBeforePersistence:
    """Test failures that leave no durable state."""

    async def test_sequence_failure(
        self, build, make_request, sequences, store, guard
    ) -> None:
        sequences.allocate.side_effect = StoreUnavailableError("down")

        error = (await build().submit(make_request())).unwrap_err()

        assert error.kind == SubmissionErrorKind.SEQUENCE_ALLOCATION_FAILED
        assert error.state == SubmissionState.CLASSIFIED
        assert error.retryable is True
        store.save.assert_not_awaited()
        guard.register.assert_not_awaited()

    async def test_deadline_exceeded_before_persistence(
        self, build, make_request, sequences, store
    ) -> None:
        async def slow_allocate(name: str) -> int:
            await asyncio.sleep(1)
            return 1

        sequences.allocate.side_effect = slow_allocate
        orchestrator = build(
            config=OrchestratorConfig(
                step_timeout_seconds=5.0, submission_deadline_seconds=0.05
            )
        )

        error = (await orchestrator.submit(make_request())).unwrap_err()

        assert error.kind == SubmissionErrorKind.SEQUENCE_ALLOCATION_FAILED
        store.save.assert_not_awaited()

    async def test_persistence_failure(
        self, build, make_request, store, guard, starter
    ) -> None:
        store.save.side_effect = StoreUnavailableError("disk full")

        error = (await build().submit(make_request())).unwrap_err()

        assert error.kind == SubmissionErrorKind.PERSISTENCE_FAILED
        assert error.state == SubmissionState.IDENTIFIED
        assert error.retryable is True
        guard.register.assert_not_awaited()
        starter.start.assert_not_awaited()

    async def test_registration_failure_without_record_discards_case(
        self, build, make_request, store, guard, starter
    ) -> None:
        guard.register.side_effect = StoreUnavailableError("down")
        guard.lookup.side_effect = [None, None]

        error = (await build().submit(make_request())).unwrap_err()

        assert error.kind == SubmissionErrorKind.PERSISTENCE_FAILED
        assert error.state == SubmissionState.PERSISTED
        assert error.retryable is True
        store.discard.assert_awaited_once_with("FNOL-AE-2025-000001")
        starter.start.assert_not_awaited()

    async def test_registration_failure_with_own_record_continues(
        self, build, make_request, store, guard, starter
    ) -> None:
        guard.register.side_effect = StoreUnavailableError("connection reset")
        guard.lookup.side_effect = [None, "FNOL-AE-2025-000001"]

        result = await build().submit(make_request())

        assert isinstance(result, Ok)
        assert result.unwrap().case_id == "FNOL-AE-2025-000001"
        assert result.unwrap().duplicate is False
        store.discard.assert_not_awaited()
        starter.start.assert_awaited_once()

    async def test_registration_timeout_with_own_record_continues(
        self, build, make_request, store, guard, starter
    ) -> None:
        async def hang(*args: Any) -> None:
            await asyncio.sleep(1)

        guard.register.side_effect = hang
        guard.lookup.side_effect = [None, "FNOL-AE-2025-000001"]
        orchestrator = build(
            config=OrchestratorConfig(
                step_timeout_seconds=0.05, submission_deadline_seconds=5.0
            )
        )

        result = await orchestrator.submit(make_request())

        assert result.unwrap().workflow_handle == "WF-1"
        store.discard.assert_not_awaited()

    async def test_unverifiable_registration_keeps_case(
        self, build, make_request, store, guard, starter
    ) -> None:
        guard.register.side_effect = StoreUnavailableError("down")
        guard.lookup.side_effect = [None, StoreUnavailableError("still down")]

        error = (await build().submit(make_request())).unwrap_err()

        assert error.kind == SubmissionErrorKind.PERSISTENCE_FAILED
        assert error.case_id == "FNOL-AE-2025-000001"
        assert error.retryable is True
        store.discard.assert_not_awaited()
        starter.start.assert_not_awaited()

    async def test_registration_failure_with_foreign_record_returns_winner(
        self, build, make_request, store, guard, starter
    ) -> None:
        winner = None

        async def save(case: Case) -> Case:
            nonlocal winner
            winner = case.model_copy(update={"case_id": "FNOL-AE-2025-000002"})
            return case

        store.save.side_effect = save
        guard.register.side_effect = StoreUnavailableError("down")
        guard.lookup.side_effect = [None, "FNOL-AE-2025-000002", "FNOL-AE-2025-000002"]
        store.find_by_id.side_effect = lambda case_id: winner

        result = (await build().submit(make_request())).unwrap()

        assert result.case_id == "FNOL-AE-2025-000002"
        assert result.duplicate is True
        store.discard.assert_awaited_once_with("FNOL-AE-2025-000001")
        starter.start.assert_not_awaited()


class TestRegistrationRace:
    """Test resolution of a lost registration race."""

    async def test_lost_race_returns_winner(
        self, build, make_request, store, guard, starter
    ) -> None:
        winner = None

        async def save(case: Case) -> Case:
            nonlocal winner
            winner = case.model_copy(update={"case_id": "FNOL-AE-2025-000002"})
            return case

        store.save.side_effect = save
        guard.register.side_effect = AlreadyRegisteredError("a" * 64)
        guard.lookup.side_effect = [None, "FNOL-AE-2025-000002"]
        store.find_by_id.side_effect = lambda case_id: winner

        result = (await build().submit(make_request())).unwrap()

        assert result.case_id == "FNOL-AE-2025-000002"
        assert result.duplicate is True
        store.discard.assert_awaited_once_with("FNOL-AE-2025-000001")
        starter.start.assert_not_awaited()


class TestWorkflowStart:
    """Test partial completion after persistence."""

    async def test_known_failure_keeps_case(
        self, build, make_request, store, starter, mock_notifier
    ) -> None:
        starter.start.side_effect = WorkflowStartError(
            "FNOL-AE-2025-000001", "refused", outcome_known=True
        )
        orchestrator = build()

        error = (await orchestrator.submit(make_request())).unwrap_err()
        await orchestrator.drain_notifications()

        assert error.kind == SubmissionErrorKind.WORKFLOW_START_FAILED
        assert error.case_id == "FNOL-AE-2025-000001"
        assert error.state == SubmissionState.REGISTERED
        assert error.outcome_known is True
        assert error.retryable is True
        store.discard.assert_not_awaited()
        store.update_workflow_handle.assert_not_awaited()
        mock_notifier.notify_created.assert_not_awaited()

    async def test_timeout_is_unknown_outcome(
        self, build, make_request, starter
    ) -> None:
        async def hang(case: Case) -> str:
            await asyncio.sleep(1)
            return "never"

        starter.start.side_effect = hang
        orchestrator = build(
            config=OrchestratorConfig(
                step_timeout_seconds=0.05, submission_deadline_seconds=5.0
            )
        )

        error = (await orchestrator.submit(make_request())).unwrap_err()

        assert error.kind == SubmissionErrorKind.WORKFLOW_START_FAILED
        assert error.outcome_known is False
        assert error.retryable is False
        starter.start.assert_awaited_once()

    async def test_handle_update_failure_still_succeeds(
        self, build, make_request, store, caplog
    ) -> None:
        store.update_workflow_handle.side_effect = CaseNotFoundError(
            "FNOL-AE-2025-000001"
        )

        with caplog.at_level(logging.ERROR, logger="fnol_intake"):
            result = await build().submit(make_request())

        assert result.unwrap().workflow_handle == "WF-1"
        assert "WF-1" in caplog.text


class TestNotification:
    """Test that notification never affects the result."""

    async def test_notifier_failure_is_isolated(
        self, build, make_request, mock_notifier, caplog
    ) -> None:
        mock_notifier.notify_created.side_effect = RuntimeError("webhook down")
        orchestrator = build()

        with caplog.at_level(logging.ERROR, logger="fnol_intake"):
            result = await orchestrator.submit(make_request())
            await orchestrator.drain_notifications()

        assert isinstance(result, Ok)
        mock_notifier.notify_created.assert_awaited_once()
        assert orchestrator.pending_notifications == 0
        assert "webhook down" in caplog.text

    async def test_slow_notifier_does_not_block(
        self, build, make_request, mock_notifier
    ) -> None:
        release = asyncio.Event()

        async def blocked(case: Case) -> None:
            await release.wait()

        mock_notifier.notify_created.side_effect = blocked
        orchestrator = build()

        result = await orchestrator.submit(make_request())

        assert isinstance(result, Ok)
        assert orchestrator.pending_notifications == 1
        release.set()
        await orchestrator.drain_notifications()
        assert orchestrator.pending_notifications == 0


class TestOperatorActions:
    """Test status and restart operations."""

    async def test_restart_unknown_case(self, build) -> None:
        error = (await build().restart_workflow("FNOL-AE-2025-000404")).unwrap_err()

        assert error.kind == SubmissionErrorKind.CASE_NOT_FOUND

    async def test_status_of_unknown_case(self, build) -> None:
        assert await build().get_status("FNOL-AE-2025-000404") is None
