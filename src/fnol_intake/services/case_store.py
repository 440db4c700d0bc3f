# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""SQL-backed case store."""

from datetime import datetime, timezone
from typing import Any

from beartype import beartype
from sqlalchemy import delete, exists, insert, select, update
from sqlalchemy.exc import IntegrityError

from ..core.database import Database, as_utc, fnol_cases
from ..core.exceptions import CaseNotFoundError, DuplicateCaseIdError
from ..core.logging_utils import get_logger
from ..models.case import Case, CaseAttributes, SeverityFlags
from ..models.enums import CaseStatus

logger = get_logger(__name__)


class SqlCaseStore:
    """Case store over the ``fnol_cases`` table."""

    def __init__(self, db: Database) -> None:
        """Initialize the store with its backing database."""
        if not db or not hasattr(db, "execute"):
            raise ValueError("Database connection required and must be active")
        self._db = db

    @beartype
    async def save(self, case: Case) -> Case:
        """Insert a new case."""
        try:
            await self._db.execute(insert(fnol_cases).values(**self._case_to_row(case)))
        except IntegrityError as e:
            raise DuplicateCaseIdError(case.case_id) from e

        logger.info(f"Saved case {case.case_id}")
        return case

    @beartype
    async def find_by_id(self, case_id: str) -> Case | None:
        """Fetch a case by identifier."""
        row = await self._db.fetchrow(
            select(fnol_cases).where(fnol_cases.c.case_id == case_id)
        )
        if row is None:
            return None
        return self._row_to_case(row)

    @beartype
    async def exists_by_id(self, case_id: str) -> bool:
        """Check whether a case exists."""
        found = await self._db.fetchval(
            select(exists().where(fnol_cases.c.case_id == case_id))
        )
        return bool(found)

    @beartype
    async def update_workflow_handle(self, case_id: str, handle: str) -> None:
        """Record the workflow handle of a case."""
        await self._update(case_id, workflow_handle=handle)
        logger.info(f"Case {case_id} linked to workflow {handle}")

    @beartype
    async def update_status(self, case_id: str, status: CaseStatus) -> None:
        """Record a lifecycle status of a case."""
        await self._update(case_id, status=status.value)

    @beartype
    async def discard(self, case_id: str) -> bool:
        """Delete a case, returning whether it existed."""
        removed = await self._db.execute(
            delete(fnol_cases).where(fnol_cases.c.case_id == case_id)
        )
        if removed:
            logger.info(f"Discarded case {case_id}")
        return removed > 0

    @beartype
    async def find_without_workflow_handle(
        self, submitted_before: datetime, limit: int
    ) -> list[Case]:
        """List cases without a workflow handle submitted before a cutoff."""
        rows = await self._db.fetch(
            select(fnol_cases)
            .where(
                fnol_cases.c.workflow_handle.is_(None),
                fnol_cases.c.submitted_at < as_utc(submitted_before),
            )
            .order_by(fnol_cases.c.submitted_at, fnol_cases.c.case_id)
            .limit(limit)
        )
        return [self._row_to_case(row) for row in rows]

    async def _update(self, case_id: str, **values: Any) -> None:
        """Apply a partial update, failing when the case does not exist."""
        updated = await self._db.execute(
            update(fnol_cases)
            .where(fnol_cases.c.case_id == case_id)
            .values(updated_at=datetime.now(timezone.utc), **values)
        )
        if not updated:
            raise CaseNotFoundError(case_id)

    @staticmethod
    def _case_to_row(case: Case) -> dict[str, Any]:
        """Convert a case model to column values."""
        submitted_at = as_utc(case.submitted_at)
        return {
            "case_id": case.case_id,
            "correlation_id": case.correlation_id,
            "jurisdiction": case.jurisdiction.value,
            "attributes": case.attributes.model_dump(mode="json"),
            "drivable": case.drivable,
            "has_injury": case.has_injury,
            "coverage_class": case.coverage_class.value,
            "fleet_flag": case.fleet_flag,
            "severity_level": case.severity_level.value,
            "route": case.route.value,
            "severity_flags": case.severity_flags.model_dump(mode="json"),
            "workflow_handle": case.workflow_handle,
            "status": case.status.value,
            "submitted_at": submitted_at,
            "updated_at": submitted_at,
        }

    @staticmethod
    def _row_to_case(row: Any) -> Case:
        """Convert a database row to a case model."""
        return Case(
            case_id=row["case_id"],
            correlation_id=row["correlation_id"],
            jurisdiction=row["jurisdiction"],
            attributes=CaseAttributes.model_validate(row["attributes"]),
            drivable=row["drivable"],
            has_injury=row["has_injury"],
            coverage_class=row["coverage_class"],
            fleet_flag=row["fleet_flag"],
            severity_level=row["severity_level"],
            route=row["route"],
            severity_flags=SeverityFlags.model_validate(row["severity_flags"]),
            workflow_handle=row["workflow_handle"],
            status=row["status"],
            submitted_at=as_utc(row["submitted_at"]),
        )
