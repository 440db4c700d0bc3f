"""Domain models package for the FNOL intake core.

This package exports the immutable Pydantic models and closed enumerations
shared by the intake services.
"""

from .base import BaseModelConfig
from .case import (
    Case,
    CaseAttributes,
    CaseStatusView,
    FieldViolation,
    SeverityFlags,
    SubmissionRequest,
    SubmissionResult,
)
from .enums import (
    CaseStatus,
    CoverageClass,
    Jurisdiction,
    JurisdictionInfo,
    Route,
    SeverityLevel,
    SubmissionState,
    VehicleType,
)

__all__ = [
    # Base models
    "BaseModelConfig",
    # Case models
    "Case",
    "CaseAttributes",
    "CaseStatusView",
    "FieldViolation",
    "SeverityFlags",
    "SubmissionRequest",
    "SubmissionResult",
    # Enumerations
    "CaseStatus",
    "CoverageClass",
    "Jurisdiction",
    "JurisdictionInfo",
    "Route",
    "SeverityLevel",
    "SubmissionState",
    "VehicleType",
]
