# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Closed enumerations used across the intake core."""

from enum import Enum

from attrs import frozen


@frozen
class JurisdictionInfo:
    """Reference data for a supported jurisdiction."""

    full_name: str
    phone_prefix: str
    timezone: str
    currency_code: str
    national_id_name: str
    vehicle_registration_name: str


class Jurisdiction(str, Enum):
    """Supported GCC jurisdictions (ISO 3166-1 alpha-2)."""

    AE = "AE"
    SA = "SA"
    QA = "QA"
    BH = "BH"
    KW = "KW"
    OM = "OM"

    @property
    def info(self) -> JurisdictionInfo:
        """Reference data for this jurisdiction."""
        return _JURISDICTION_INFO[self]

    @classmethod
    def from_code(cls, code: str | None) -> "Jurisdiction | None":
        """Resolve a code case-insensitively, returning None when unsupported."""
        if code is None or not code.strip():
            return None
        try:
            return cls(code.strip().upper())
        except ValueError:
            return None

    @classmethod
    def is_supported(cls, code: str | None) -> bool:
        """Check whether a code names a supported jurisdiction."""
        return cls.from_code(code) is not None


_JURISDICTION_INFO: dict[Jurisdiction, JurisdictionInfo] = {
    Jurisdiction.AE: JurisdictionInfo(
        "United Arab Emirates", "+971", "Asia/Dubai", "AED", "Emirates ID", "Mulkiya"
    ),
    Jurisdiction.SA: JurisdictionInfo(
        "Saudi Arabia", "+966", "Asia/Riyadh", "SAR", "Iqama/National ID", "Istimara"
    ),
    Jurisdiction.QA: JurisdictionInfo(
        "Qatar", "+974", "Asia/Qatar", "QAR", "QID", "Istemara"
    ),
    Jurisdiction.BH: JurisdictionInfo(
        "Bahrain", "+973", "Asia/Bahrain", "BHD", "CPR", "Vehicle Registration Card"
    ),
    Jurisdiction.KW: JurisdictionInfo(
        "Kuwait", "+965", "Asia/Kuwait", "KWD", "Civil ID", "Daftar"
    ),
    Jurisdiction.OM: JurisdictionInfo(
        "Oman", "+968", "Asia/Muscat", "OMR", "National ID", "Mulkiya"
    ),
}


class CoverageClass(str, Enum):
    """Enumeration of policy coverage classes."""

    BASIC = "BASIC"
    FULL = "FULL"

    @classmethod
    def parse(cls, value: str) -> "CoverageClass":
        """Parse a coverage class, accepting the market names TPL and COMPREHENSIVE."""
        normalized = value.strip().upper()
        if normalized in _COVERAGE_ALIASES:
            return _COVERAGE_ALIASES[normalized]
        return cls(normalized)


_COVERAGE_ALIASES: dict[str, CoverageClass] = {
    "TPL": CoverageClass.BASIC,
    "THIRD_PARTY": CoverageClass.BASIC,
    "COMPREHENSIVE": CoverageClass.FULL,
}


class VehicleType(str, Enum):
    """Enumeration of vehicle usage types."""

    PRIVATE = "PRIVATE"
    COMMERCIAL = "COMMERCIAL"


class SeverityLevel(str, Enum):
    """Enumeration of case severity levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Route(str, Enum):
    """Enumeration of downstream handling buckets."""

    FAST_TRACK = "FAST_TRACK"
    STANDARD = "STANDARD"
    COMPLEX = "COMPLEX"


class CaseStatus(str, Enum):
    """Enumeration of case lifecycle states.

    Only SUBMITTED is written by the intake core; later states are owned by
    the workflow engine.
    """

    SUBMITTED = "SUBMITTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"


class SubmissionState(str, Enum):
    """Furthest step of the submission protocol a request reached."""

    START = "START"
    DEDUPE_CHECKED = "DEDUPE_CHECKED"
    CLASSIFIED = "CLASSIFIED"
    IDENTIFIED = "IDENTIFIED"
    PERSISTED = "PERSISTED"
    REGISTERED = "REGISTERED"
    WORKFLOW_STARTED = "WORKFLOW_STARTED"
    NOTIFIED = "NOTIFIED"
    DUPLICATE_RETURNED = "DUPLICATE_RETURNED"
