# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Error taxonomy surfaced by the submission orchestrator."""

from enum import Enum

from attrs import field, frozen

from ..models.case import FieldViolation
from ..models.enums import SubmissionState


class SubmissionErrorKind(str, Enum):
    """Enumeration of submission failure kinds."""

    VALIDATION_REJECTED = "VALIDATION_REJECTED"
    SEQUENCE_ALLOCATION_FAILED = "SEQUENCE_ALLOCATION_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    WORKFLOW_START_FAILED = "WORKFLOW_START_FAILED"
    CORRUPTED_IDEMPOTENCY_STATE = "CORRUPTED_IDEMPOTENCY_STATE"
    CASE_NOT_FOUND = "CASE_NOT_FOUND"


@frozen
class SubmissionError:
    """A failed submission or operator action.

    Attributes:
        kind: Failure classification.
        message: Human-readable description.
        state: Furthest protocol step reached before the failure.
        case_id: Identifier of a case that already exists despite the failure.
        violations: Fields rejected by validation.
        retryable: Whether retrying with the same idempotency token is safe.
        outcome_known: False when the workflow engine may have started an
            instance despite reporting failure.
    """

    kind: SubmissionErrorKind
    message: str
    state: SubmissionState
    case_id: str | None = None
    violations: tuple[FieldViolation, ...] = field(default=(), converter=tuple)
    retryable: bool = False
    outcome_known: bool = True

    def __str__(self) -> str:
        suffix = f" (case {self.case_id})" if self.case_id else ""
        return f"{self.kind.value}: {self.message}{suffix}"
