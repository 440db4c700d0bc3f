# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Collaborator boundaries consumed by the submission orchestrator.

Adapters live in ``case_store``, ``process_starter`` and ``notifier``; the
validation collaborator is supplied by the host application.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable

from ..models.case import Case, FieldViolation
from ..models.enums import CaseStatus, Jurisdiction


@runtime_checkable
class CaseStore(Protocol):
    """Durable storage for case records."""

    async def save(self, case: Case) -> Case:
        """Insert a new case. Raises DuplicateCaseIdError or StoreUnavailableError."""
        ...

    async def find_by_id(self, case_id: str) -> Case | None:
        """Fetch a case by identifier."""
        ...

    async def exists_by_id(self, case_id: str) -> bool:
        """Check whether a case exists."""
        ...

    async def update_workflow_handle(self, case_id: str, handle: str) -> None:
        """Record the workflow handle. Raises CaseNotFoundError if absent."""
        ...

    async def update_status(self, case_id: str, status: CaseStatus) -> None:
        """Record a lifecycle status reported by the workflow engine."""
        ...

    async def discard(self, case_id: str) -> bool:
        """Remove a case that lost an idempotency race."""
        ...

    async def find_without_workflow_handle(
        self, submitted_before: datetime, limit: int
    ) -> list[Case]:
        """List cases still waiting for a workflow handle, oldest first."""
        ...


@runtime_checkable
class ProcessStarter(Protocol):
    """Starts an external workflow instance for a case."""

    async def start(self, case: Case) -> str:
        """Start a workflow and return its handle.

        Raises WorkflowStartError whose ``outcome_known`` distinguishes
        "definitely not started" from "unknown outcome".
        """
        ...


@runtime_checkable
class Notifier(Protocol):
    """Best-effort delivery of case-created events."""

    async def notify_created(self, case: Case) -> None:
        """Deliver the event; failures are the caller's to log."""
        ...


@runtime_checkable
class CaseValidator(Protocol):
    """Per-jurisdiction field-format validation."""

    async def validate_all(
        self,
        jurisdiction: Jurisdiction,
        contact_ref: str | None,
        identity_ref: str | None,
        asset_ref: str | None,
    ) -> list[FieldViolation]:
        """Return the rejected fields; an empty list means valid."""
        ...


@runtime_checkable
class TextNormalizer(Protocol):
    """Free-text normalization applied before persistence."""

    def normalize(self, text: str, language_hint: str) -> str:
        """Return the normalized text, or the input unchanged."""
        ...


class PassthroughNormalizer:
    """Normalizer that only collapses runs of whitespace."""

    def normalize(self, text: str, language_hint: str) -> str:
        return " ".join(text.split())
