# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Case domain models: the submission request, the persisted case and views.

``Case`` is the central entity. Its severity and route are always derived by
the severity classifier from the four classification inputs and are written
once, by the orchestrator, together with the case identifier.
"""

from datetime import datetime
from typing import Any

from beartype import beartype
from pydantic import Field, field_validator

from .base import BaseModelConfig
from .enums import (
    CaseStatus,
    CoverageClass,
    Jurisdiction,
    Route,
    SeverityLevel,
    SubmissionState,
    VehicleType,
)


@beartype
class SeverityFlags(BaseModelConfig):
    """Flag view of a case's severity."""

    not_drivable: bool = Field(default=False, description="Vehicle cannot be driven")
    potential_injury: bool = Field(default=False, description="Injuries reported")
    high_value: bool = Field(
        default=False,
        description="Full-coverage, non-fleet vehicle that cannot be driven",
    )

    @property
    def level(self) -> SeverityLevel:
        """Severity level implied by the flags alone."""
        if self.potential_injury:
            return SeverityLevel.HIGH
        if self.not_drivable or self.high_value:
            return SeverityLevel.MEDIUM
        return SeverityLevel.LOW

    @property
    def requires_attention(self) -> bool:
        """Check if any flag is raised."""
        return self.not_drivable or self.potential_injury or self.high_value

    def active_summary(self) -> str:
        """Comma-separated names of the raised flags, or NONE."""
        active = [
            name
            for name, raised in (
                ("INJURY", self.potential_injury),
                ("NOT_DRIVABLE", self.not_drivable),
                ("HIGH_VALUE", self.high_value),
            )
            if raised
        ]
        return ", ".join(active) if active else "NONE"


@beartype
class FieldViolation(BaseModelConfig):
    """A single field rejected by the validation collaborator."""

    field: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    message: str = Field(default="")


@beartype
class CaseAttributes(BaseModelConfig):
    """Caller-supplied attributes carried through the core untouched.

    Free-text fields keep both the original text and the normalized form
    produced by the text normalizer.
    """

    contact_number: str | None = Field(default=None, max_length=32)
    national_id: str | None = Field(default=None, max_length=32)
    reporter_name: str | None = Field(default=None, max_length=200)
    policy_number: str | None = Field(default=None, max_length=64)
    plate_number: str | None = Field(default=None, max_length=32)
    plate_jurisdiction: Jurisdiction | None = None
    vehicle_type: VehicleType | None = None
    incident_at: datetime | None = None
    incident_location_original: str | None = Field(default=None, max_length=500)
    incident_location_normalized: str | None = Field(default=None, max_length=500)
    description_original: str | None = Field(default=None, max_length=5000)
    description_normalized: str | None = Field(default=None, max_length=5000)
    police_report_number: str | None = Field(default=None, max_length=64)
    language: str = Field(default="en", min_length=2, max_length=8)


@beartype
class Case(BaseModelConfig):
    """A submitted incident case."""

    case_id: str = Field(..., min_length=1, max_length=40)
    correlation_id: str = Field(..., min_length=1, max_length=64)
    jurisdiction: Jurisdiction
    attributes: CaseAttributes = Field(default_factory=CaseAttributes)

    drivable: bool
    has_injury: bool
    coverage_class: CoverageClass
    fleet_flag: bool

    severity_level: SeverityLevel
    route: Route
    severity_flags: SeverityFlags

    workflow_handle: str | None = Field(default=None, max_length=128)
    status: CaseStatus = CaseStatus.SUBMITTED
    submitted_at: datetime

    @property
    def workflow_started(self) -> bool:
        """Check if the workflow engine has acknowledged this case."""
        return self.workflow_handle is not None

    def with_workflow_handle(self, handle: str) -> "Case":
        """Return a copy carrying the workflow handle."""
        return self.model_copy(update={"workflow_handle": handle})

    def to_process_variables(self) -> dict[str, Any]:
        """Variables handed to the workflow engine when a process starts."""
        return {
            "caseId": self.case_id,
            "correlationId": self.correlation_id,
            "jurisdiction": self.jurisdiction.value,
            "policyNumber": self.attributes.policy_number,
            "plateNumber": self.attributes.plate_number,
            "coverageClass": self.coverage_class.value,
            "fleetFlag": self.fleet_flag,
            "drivable": self.drivable,
            "hasInjury": self.has_injury,
            "severityLevel": self.severity_level.value,
            "route": self.route.value,
            "notDrivable": self.severity_flags.not_drivable,
            "potentialInjury": self.severity_flags.potential_injury,
            "highValue": self.severity_flags.high_value,
            "language": self.attributes.language,
            "submittedAt": self.submitted_at.isoformat(),
        }


@beartype
class SubmissionRequest(BaseModelConfig):
    """Caller-facing submission request."""

    idempotency_token: str | None = Field(default=None, max_length=256)
    correlation_id: str | None = Field(default=None, max_length=64)
    jurisdiction: Jurisdiction

    contact_number: str | None = Field(default=None, max_length=32)
    national_id: str | None = Field(default=None, max_length=32)
    reporter_name: str | None = Field(default=None, max_length=200)
    policy_number: str | None = Field(default=None, max_length=64)
    plate_number: str | None = Field(default=None, max_length=32)
    plate_jurisdiction: Jurisdiction | None = None
    vehicle_type: VehicleType | None = None

    coverage_class: CoverageClass = CoverageClass.FULL
    fleet_flag: bool = False
    drivable: bool = True
    has_injury: bool = False

    description: str | None = Field(default=None, max_length=5000)
    incident_location: str | None = Field(default=None, max_length=500)
    incident_at: datetime | None = None
    police_report_number: str | None = Field(default=None, max_length=64)
    language_hint: str = Field(default="en", min_length=2, max_length=8)

    @field_validator("jurisdiction", "plate_jurisdiction", mode="before")
    @classmethod
    def normalize_jurisdiction(cls, v: Any) -> Any:
        """Accept lower-case jurisdiction codes."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("coverage_class", mode="before")
    @classmethod
    def parse_coverage_class(cls, v: Any) -> Any:
        """Accept coverage market names (TPL, COMPREHENSIVE)."""
        if isinstance(v, str):
            return CoverageClass.parse(v)
        return v


@beartype
class SubmissionResult(BaseModelConfig):
    """Outcome of a successful or replayed submission."""

    case_id: str
    status: CaseStatus
    severity_level: SeverityLevel
    route: Route
    workflow_handle: str | None = None
    submitted_at: datetime
    duplicate: bool = False
    state: SubmissionState = SubmissionState.NOTIFIED

    @classmethod
    def from_case(
        cls, case: Case, *, duplicate: bool, state: SubmissionState
    ) -> "SubmissionResult":
        """Build the caller-facing view of a case."""
        return cls(
            case_id=case.case_id,
            status=case.status,
            severity_level=case.severity_level,
            route=case.route,
            workflow_handle=case.workflow_handle,
            submitted_at=case.submitted_at,
            duplicate=duplicate,
            state=state,
        )


@beartype
class CaseStatusView(BaseModelConfig):
    """Read-only tracking view of a case."""

    case_id: str
    status: CaseStatus
    severity_level: SeverityLevel
    route: Route
    workflow_started: bool
    submitted_at: datetime

    @classmethod
    def from_case(cls, case: Case) -> "CaseStatusView":
        """Build the tracking view of a case."""
        return cls(
            case_id=case.case_id,
            status=case.status,
            severity_level=case.severity_level,
            route=case.route,
            workflow_started=case.workflow_started,
            submitted_at=case.submitted_at,
        )
