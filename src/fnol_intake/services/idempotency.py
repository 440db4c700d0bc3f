# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Idempotency guard for case submissions.

Callers may attach an idempotency token to a submission. The guard maps the
token to the case identifier it produced so a resubmission returns the
original case instead of creating a second one.

Only a SHA-256 digest of the token is stored or logged. Uniqueness of the
digest is enforced by a UNIQUE constraint in the store: of two concurrent
registrations for the same fresh token exactly one succeeds and the other
raises ``AlreadyRegisteredError``, which the orchestrator resolves by
re-reading the winner.

Expired records read as absent even before the periodic sweep removes them.
"""

import asyncio
import hashlib
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

from beartype import beartype
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError

from ..core.database import Database, as_utc, idempotency_keys
from ..core.exceptions import AlreadyRegisteredError
from ..core.logging_utils import get_logger, token_fingerprint

logger = get_logger(__name__)

DEFAULT_TTL = timedelta(hours=24)


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


@beartype
def is_blank(raw_token: str | None) -> bool:
    """Check whether a token is absent or whitespace only."""
    return raw_token is None or not raw_token.strip()


@beartype
def digest_token(raw_token: str) -> str:
    """One-way SHA-256 hex digest of a raw token."""
    return hashlib.sha256(raw_token.strip().encode("utf-8")).hexdigest()


def _normalize_identity_field(value: str | date | None) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        value = value.isoformat()
    return "".join(value.split()).lower()


@beartype
def generate_synthetic_token(
    contact_number: str | None,
    national_id: str | None,
    asset_id: str | None,
    incident_date: str | date | None,
) -> str:
    """Derive a deterministic token from caller-identity fields.

    Fields are trimmed, lower-cased and stripped of all whitespace before
    being joined, so the same logical submission always yields the same token.
    """
    joined = "|".join(
        _normalize_identity_field(value)
        for value in (contact_number, national_id, asset_id, incident_date)
    )
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


class IdempotencyGuard:
    """Maps idempotency tokens to the case identifiers they produced."""

    def __init__(
        self,
        db: Database,
        *,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the guard with its store, record lifetime and clock."""
        if ttl <= timedelta(0):
            raise ValueError("Idempotency TTL must be positive")
        self._db = db
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @beartype
    async def lookup(self, raw_token: str | None) -> str | None:
        """Return the case id registered for ``raw_token``, if live."""
        if is_blank(raw_token):
            return None

        digest = digest_token(raw_token)
        row = await self._db.fetchrow(
            select(idempotency_keys.c.case_id, idempotency_keys.c.expires_at).where(
                idempotency_keys.c.key_digest == digest
            )
        )
        if row is None:
            return None

        if as_utc(row["expires_at"]) <= self._clock():
            logger.debug(f"Idempotency record {token_fingerprint(digest)} expired")
            return None

        return str(row["case_id"])

    @beartype
    async def register(
        self,
        raw_token: str | None,
        case_id: str,
        ttl: timedelta | None = None,
    ) -> None:
        """Record that ``raw_token`` produced ``case_id``.

        A stale (expired, unswept) record for the same token is replaced in
        the same transaction.

        Raises:
            AlreadyRegisteredError: A live record already exists.
            StoreUnavailableError: The store cannot be reached.
        """
        if is_blank(raw_token):
            return

        digest = digest_token(raw_token)
        now = self._clock()
        expires_at = now + (ttl or self._ttl)

        try:
            async with self._db.transaction() as conn:
                await conn.execute(
                    delete(idempotency_keys).where(
                        idempotency_keys.c.key_digest == digest,
                        idempotency_keys.c.expires_at <= now,
                    )
                )
                await conn.execute(
                    insert(idempotency_keys).values(
                        key_digest=digest,
                        case_id=case_id,
                        expires_at=expires_at,
                        created_at=now,
                    )
                )
        except IntegrityError as e:
            logger.info(
                f"Idempotency key {token_fingerprint(digest)} already registered"
            )
            raise AlreadyRegisteredError(digest) from e

        logger.debug(
            f"Registered idempotency key {token_fingerprint(digest)} for {case_id}"
        )

    @beartype
    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete expired records and return how many were removed."""
        cutoff = now or self._clock()
        removed = await self._db.execute(
            delete(idempotency_keys).where(idempotency_keys.c.expires_at <= cutoff)
        )
        if removed:
            logger.info(f"Swept {removed} expired idempotency records")
        return removed


class IdempotencySweeper:
    """Background task that periodically sweeps expired idempotency records."""

    def __init__(self, guard: IdempotencyGuard, *, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive")
        self._guard = guard
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the sweep loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the sweep loop."""
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _sweep_loop(self) -> None:
        """Sweep, then sleep, until cancelled."""
        while True:
            try:
                await self._guard.sweep_expired()
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in idempotency sweep loop: {e}")
                await asyncio.sleep(self._interval)
