# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Severity classification and routing.

``classify`` is a pure decision table over the four classification inputs,
evaluated in strict priority order (first match wins):

1. injury reported             -> HIGH / COMPLEX
2. vehicle not drivable        -> MEDIUM / STANDARD
3. fleet vehicle, FULL cover   -> LOW / FAST_TRACK
4. BASIC cover                 -> LOW / FAST_TRACK
5. FULL cover                  -> LOW / STANDARD
6. anything else               -> LOW / STANDARD

The same inputs also produce a ``SeverityFlags`` view whose ``level`` must
agree with the table's severity level for every input combination.
"""

from attrs import frozen
from beartype import beartype

from ..models.case import SeverityFlags
from ..models.enums import CoverageClass, Route, SeverityLevel


@frozen
class Classification:
    """Result of classifying a case."""

    severity_level: SeverityLevel
    route: Route
    flags: SeverityFlags


_SEVERITY_DESCRIPTIONS: dict[SeverityLevel, str] = {
    SeverityLevel.HIGH: "High severity: injuries reported, immediate handling",
    SeverityLevel.MEDIUM: "Medium severity: vehicle not drivable",
    SeverityLevel.LOW: "Low severity: minor damage, drivable vehicle",
}

_ROUTE_DESCRIPTIONS: dict[Route, str] = {
    Route.COMPLEX: "Complex claims team with injury handling",
    Route.STANDARD: "Standard claims handling",
    Route.FAST_TRACK: "Fast-track settlement",
}


@beartype
def derive_flags(
    has_injury: bool,
    drivable: bool,
    coverage_class: CoverageClass,
    fleet_flag: bool,
) -> SeverityFlags:
    """Compute the flag view of a case."""
    return SeverityFlags(
        not_drivable=not drivable,
        potential_injury=has_injury,
        high_value=coverage_class is CoverageClass.FULL
        and not fleet_flag
        and not drivable,
    )


@beartype
def classify(
    has_injury: bool,
    drivable: bool,
    coverage_class: CoverageClass,
    fleet_flag: bool,
) -> Classification:
    """Classify a case into a severity level and route."""
    flags = derive_flags(has_injury, drivable, coverage_class, fleet_flag)

    if has_injury:
        level, route = SeverityLevel.HIGH, Route.COMPLEX
    elif not drivable:
        level, route = SeverityLevel.MEDIUM, Route.STANDARD
    elif fleet_flag and coverage_class is CoverageClass.FULL:
        level, route = SeverityLevel.LOW, Route.FAST_TRACK
    elif coverage_class is CoverageClass.BASIC:
        level, route = SeverityLevel.LOW, Route.FAST_TRACK
    elif coverage_class is CoverageClass.FULL:
        level, route = SeverityLevel.LOW, Route.STANDARD
    else:
        level, route = SeverityLevel.LOW, Route.STANDARD

    return Classification(severity_level=level, route=route, flags=flags)


@beartype
def describe_severity(level: SeverityLevel) -> str:
    """Human-readable description of a severity level."""
    return _SEVERITY_DESCRIPTIONS[level]


@beartype
def describe_route(route: Route) -> str:
    """Human-readable description of a route."""
    return _ROUTE_DESCRIPTIONS[route]
