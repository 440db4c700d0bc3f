# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Durable named sequence counters.

Each counter is one row of ``case_sequences``. Allocation is a single
``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` statement: the store
serializes competing allocators on the counter row, so concurrent callers on
any number of service instances always receive pairwise-distinct values.
Counters are created lazily; the first value issued for a new name is 1.
"""

from beartype import beartype
from sqlalchemy import text

from ..core.database import Database
from ..core.logging_utils import get_logger

logger = get_logger(__name__)

_ALLOCATE_SQL = text(
    """
    INSERT INTO case_sequences (name, next_value)
    VALUES (:name, 2)
    ON CONFLICT (name) DO UPDATE
        SET next_value = case_sequences.next_value + 1
    RETURNING next_value - 1
    """
)

_PEEK_SQL = text("SELECT next_value FROM case_sequences WHERE name = :name")


class SequenceGenerator:
    """Issues unique, strictly increasing integers per named counter."""

    def __init__(self, db: Database) -> None:
        """Initialize the generator with its backing database."""
        if not db or not hasattr(db, "fetchval"):
            raise ValueError("Database connection required and must be active")
        self._db = db

    @beartype
    async def allocate(self, name: str) -> int:
        """Allocate the next value of ``name``.

        Raises:
            ValueError: If the counter name is blank.
            StoreUnavailableError: If the store cannot be reached. No value is
                issued in that case.
        """
        if not name.strip():
            raise ValueError("Sequence name must not be blank")

        value = await self._db.fetchval(_ALLOCATE_SQL, {"name": name})
        if value is None:
            raise RuntimeError(f"Sequence {name} returned no value")

        logger.debug(f"Allocated {value} from sequence {name}")
        return int(value)

    @beartype
    async def peek(self, name: str) -> int | None:
        """Return the value the next allocation would issue, or None if unused."""
        value = await self._db.fetchval(_PEEK_SQL, {"name": name})
        return None if value is None else int(value)
