# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Case event notifiers.

``WebhookNotifier`` POSTs a JSON event to a configured endpoint, signed with
HMAC-SHA256 when a secret is configured. Failed deliveries (transport errors
and non-2xx answers) are retried with exponential backoff up to
``retry_count`` times after the first attempt; the final failure is raised
to the caller, which runs notifications off the submission path.
"""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from attrs import field, frozen
from attrs.validators import ge, instance_of
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.config import Settings
from ..core.exceptions import WebhookDeliveryError
from ..core.logging_utils import get_logger
from ..models.case import Case

logger = get_logger(__name__)

EVENT_CASE_CREATED = "FNOL_CREATED"
SIGNATURE_HEADER = "X-Webhook-Signature"


@frozen
class WebhookConfig:
    """Webhook endpoint and retry policy.

    Attributes:
        url: Endpoint receiving events.
        secret: HMAC-SHA256 signing secret; unsigned when absent.
        timeout_seconds: Per-attempt request timeout.
        retry_count: Retries after the first failed attempt.
        backoff_multiplier: Exponential backoff multiplier in seconds.
        backoff_max_seconds: Upper bound of a single backoff wait.
    """

    url: str
    secret: str | None = None
    timeout_seconds: float = 5.0
    retry_count: int = field(default=3, validator=[instance_of(int), ge(0)])
    backoff_multiplier: float = 1.0
    backoff_max_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookConfig":
        """Build the configuration from application settings."""
        if not settings.webhook_url:
            raise ValueError("webhook_url is not configured")
        return cls(
            url=settings.webhook_url,
            secret=settings.webhook_secret,
            timeout_seconds=settings.webhook_timeout_seconds,
            retry_count=settings.webhook_retry_count,
            backoff_multiplier=settings.webhook_backoff_multiplier,
            backoff_max_seconds=settings.webhook_backoff_max_seconds,
        )


def sign_payload(body: bytes, secret: str) -> str:
    """Signature header value for a request body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def build_event(case: Case, event_type: str) -> dict[str, Any]:
    """Event payload describing a case."""
    return {
        "eventType": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "caseId": case.case_id,
        "correlationId": case.correlation_id,
        "jurisdiction": case.jurisdiction.value,
        "status": case.status.value,
        "severityLevel": case.severity_level.value,
        "route": case.route.value,
        "workflowHandle": case.workflow_handle,
    }


class LoggingNotifier:
    """Notifier that only logs events."""

    async def notify_created(self, case: Case) -> None:
        logger.info(
            f"Case created: {case.case_id} ({case.severity_level.value}/{case.route.value})"
        )


class WebhookNotifier:
    """Delivers case events to an HTTP endpoint."""

    def __init__(
        self,
        config: WebhookConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_client = client is None

    async def notify_created(self, case: Case) -> None:
        """Deliver a case-created event."""
        await self._deliver(case, EVENT_CASE_CREATED)

    async def close(self) -> None:
        """Close the HTTP client if this notifier created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _deliver(self, case: Case, event_type: str) -> None:
        body = json.dumps(build_event(case, event_type), separators=(",", ":")).encode(
            "utf-8"
        )
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "FNOL-Intake-Webhook/1.0",
            "X-Correlation-ID": case.correlation_id,
        }
        if self._config.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, self._config.secret)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._config.retry_count + 1),
            wait=wait_exponential(
                multiplier=self._config.backoff_multiplier,
                max=self._config.backoff_max_seconds,
            ),
            retry=retry_if_exception_type((httpx.HTTPError, WebhookDeliveryError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                response = await self._client.post(
                    self._config.url, content=body, headers=headers
                )
                if not response.is_success:
                    raise WebhookDeliveryError(self._config.url, response.status_code)

        logger.info(f"Webhook {event_type} delivered for case {case.case_id}")


def create_notifier(
    settings: Settings, *, client: httpx.AsyncClient | None = None
) -> LoggingNotifier | WebhookNotifier:
    """Select the notifier configured in settings."""
    if settings.webhook_enabled:
        return WebhookNotifier(WebhookConfig.from_settings(settings), client=client)
    return LoggingNotifier()
