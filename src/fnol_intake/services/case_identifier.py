# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Case identifier formatting and parsing.

Canonical form: ``PREFIX-JURISDICTION-YEAR-SEQUENCE``, e.g.
``FNOL-AE-2025-000042``. SEQUENCE is zero-padded to a configurable minimum
width and grows past it once the counter outruns the padding. ``format`` and
``parse`` are exact inverses over valid inputs.
"""

import re
from datetime import datetime, timezone

from attrs import field, frozen
from attrs.validators import ge, instance_of
from beartype import beartype

from ..core.config import Settings
from ..models.enums import Jurisdiction

_PREFIX_PATTERN = re.compile(r"[A-Z]+")
_CASE_ID_PATTERN = re.compile(r"([A-Z]+)-([A-Z]{2})-([0-9]{4})-([0-9]+)")


class InvalidCaseIdentifierError(ValueError):
    """Raised when a string is not a canonical case identifier."""


@frozen
class IdentifierConfig:
    """Configuration of case identifier rendering.

    Attributes:
        prefix: Upper-case letters leading every identifier.
        sequence_width: Minimum zero-padded width of the sequence part.
        sequence_name: Counter the sequence part is allocated from.
    """

    prefix: str = field(default="FNOL")
    sequence_width: int = field(default=6, validator=[instance_of(int), ge(1)])
    sequence_name: str = field(default="FNOL")

    @prefix.validator
    def _check_prefix(self, attribute: object, value: str) -> None:
        if not _PREFIX_PATTERN.fullmatch(value):
            raise ValueError(f"Case id prefix must be upper-case letters: {value!r}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentifierConfig":
        """Build the configuration from application settings."""
        return cls(
            prefix=settings.case_id_prefix,
            sequence_width=settings.case_id_sequence_width,
            sequence_name=settings.case_sequence_name,
        )


@frozen
class CaseIdentifier:
    """Parsed components of a case identifier."""

    prefix: str
    jurisdiction: Jurisdiction
    year: int
    sequence: int


@beartype
def format_case_id(
    prefix: str,
    jurisdiction: Jurisdiction,
    year: int,
    sequence: int,
    *,
    width: int = 6,
) -> str:
    """Render a canonical case identifier.

    Raises:
        ValueError: If a component cannot be rendered canonically.
    """
    if not _PREFIX_PATTERN.fullmatch(prefix):
        raise ValueError(f"Case id prefix must be upper-case letters: {prefix!r}")
    if not 1000 <= year <= 9999:
        raise ValueError(f"Year must have four digits: {year}")
    if sequence < 1:
        raise ValueError(f"Sequence must be positive: {sequence}")
    if width < 1:
        raise ValueError(f"Sequence width must be positive: {width}")

    return f"{prefix}-{jurisdiction.value}-{year:04d}-{sequence:0{width}d}"


@beartype
def parse_case_id(text: str, *, width: int = 6) -> CaseIdentifier:
    """Parse a canonical case identifier.

    Raises:
        InvalidCaseIdentifierError: If ``text`` is off-shape, names an
            unsupported jurisdiction, or is not in canonical padding.
    """
    match = _CASE_ID_PATTERN.fullmatch(text)
    if match is None:
        raise InvalidCaseIdentifierError(f"Malformed case identifier: {text!r}")

    prefix, code, year, digits = match.groups()

    jurisdiction = Jurisdiction.from_code(code)
    if jurisdiction is None:
        raise InvalidCaseIdentifierError(f"Unsupported jurisdiction {code!r} in {text!r}")

    if len(digits) < width:
        raise InvalidCaseIdentifierError(
            f"Sequence of {text!r} must have at least {width} digits"
        )
    # Padding only ever fills up to the width.
    if len(digits) > width and digits.startswith("0"):
        raise InvalidCaseIdentifierError(f"Non-canonical sequence padding in {text!r}")

    sequence = int(digits)
    if sequence < 1:
        raise InvalidCaseIdentifierError(f"Sequence must be positive in {text!r}")

    return CaseIdentifier(
        prefix=prefix, jurisdiction=jurisdiction, year=int(year), sequence=sequence
    )


class CaseIdentifierFactory:
    """Renders and parses case identifiers with a fixed configuration."""

    def __init__(self, config: IdentifierConfig | None = None) -> None:
        self._config = config or IdentifierConfig()

    @property
    def config(self) -> IdentifierConfig:
        return self._config

    def format(
        self, prefix: str, jurisdiction: Jurisdiction, year: int, sequence: int
    ) -> str:
        """Render an identifier with the configured width."""
        return format_case_id(
            prefix, jurisdiction, year, sequence, width=self._config.sequence_width
        )

    def parse(self, text: str) -> CaseIdentifier:
        """Parse an identifier rendered with the configured width."""
        return parse_case_id(text, width=self._config.sequence_width)

    def is_valid(self, text: str) -> bool:
        """Check whether ``text`` is a canonical identifier."""
        try:
            self.parse(text)
        except InvalidCaseIdentifierError:
            return False
        return True

    def generate(
        self, jurisdiction: Jurisdiction, sequence: int, at: datetime
    ) -> str:
        """Render an identifier with the configured prefix for the UTC year of ``at``."""
        if at.tzinfo is None:
            raise ValueError("Submission time must be timezone-aware")
        year = at.astimezone(timezone.utc).year
        return self.format(self._config.prefix, jurisdiction, year, sequence)
