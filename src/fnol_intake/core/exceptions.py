# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Exceptions raised at the storage and workflow-engine boundaries.

Services translate these into ``Err`` results; they never reach callers of
the submission protocol directly.
"""


class IntakeError(Exception):
    """Base class for boundary errors of the intake core."""


class StoreUnavailableError(IntakeError):
    """The backing store could not be reached or timed out."""


class AlreadyRegisteredError(IntakeError):
    """An idempotency record already exists for the key digest."""

    def __init__(self, key_digest: str) -> None:
        super().__init__(f"Idempotency key already registered ({key_digest[:8]}...)")
        self.key_digest = key_digest


class CaseNotFoundError(IntakeError):
    """A case targeted by an update does not exist."""

    def __init__(self, case_id: str) -> None:
        super().__init__(f"Case {case_id} not found")
        self.case_id = case_id


class DuplicateCaseIdError(IntakeError):
    """A case with the same identifier was already saved."""

    def __init__(self, case_id: str) -> None:
        super().__init__(f"Case {case_id} already exists")
        self.case_id = case_id


class WorkflowStartError(IntakeError):
    """The workflow engine did not confirm a started instance.

    ``outcome_known`` is True when the engine definitely did not start an
    instance (connection refused, request rejected). It is False when the
    request may have been applied remotely (timeout after send, 5xx), in
    which case a blind retry could start a second instance.
    """

    def __init__(self, case_id: str, message: str, *, outcome_known: bool) -> None:
        super().__init__(f"Failed to start workflow for case {case_id}: {message}")
        self.case_id = case_id
        self.outcome_known = outcome_known


class WebhookDeliveryError(IntakeError):
    """A webhook endpoint answered with a non-success status."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"Webhook {url} returned status {status_code}")
        self.url = url
        self.status_code = status_code
