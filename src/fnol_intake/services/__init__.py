"""Service layer for the FNOL intake core."""

from .case_identifier import CaseIdentifierFactory, IdentifierConfig
from .case_store import SqlCaseStore
from .errors import SubmissionError, SubmissionErrorKind
from .idempotency import IdempotencyGuard, IdempotencySweeper
from .notifier import LoggingNotifier, WebhookNotifier
from .orchestrator import OrchestratorConfig, SubmissionOrchestrator
from .process_starter import DemoProcessStarter, HttpProcessStarter
from .sequence_generator import SequenceGenerator
from .severity import Classification, classify

__all__ = [
    "CaseIdentifierFactory",
    "IdentifierConfig",
    "SqlCaseStore",
    "SubmissionError",
    "SubmissionErrorKind",
    "IdempotencyGuard",
    "IdempotencySweeper",
    "LoggingNotifier",
    "WebhookNotifier",
    "OrchestratorConfig",
    "SubmissionOrchestrator",
    "DemoProcessStarter",
    "HttpProcessStarter",
    "SequenceGenerator",
    "Classification",
    "classify",
]
