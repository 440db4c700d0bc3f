# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Workflow engine adapters.

``HttpProcessStarter`` creates a process instance through the engine's REST
API. It classifies every failure by whether the engine could have started an
instance:

- the request never left (connection refused, connect or pool timeout) or
  the engine rejected it (4xx): definitely not started;
- anything after the request was sent (read timeout, dropped connection,
  5xx, unreadable body): unknown outcome.

Neither adapter retries.
"""

from uuid import uuid4

import httpx
from attrs import field, frozen
from attrs.validators import gt, instance_of

from ..core.config import Settings
from ..core.exceptions import WorkflowStartError
from ..core.logging_utils import get_logger
from ..models.case import Case

logger = get_logger(__name__)

_NOT_SENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


@frozen
class ProcessStarterConfig:
    """Configuration of the workflow engine adapter.

    Attributes:
        base_url: Engine REST API base URL; required by the HTTP adapter.
        process_definition_id: Process started for every case.
        token: Optional bearer token.
        timeout_seconds: Request timeout.
    """

    base_url: str | None = None
    process_definition_id: str = "gcc-motor-fnol-process"
    token: str | None = None
    timeout_seconds: float = field(default=5.0, validator=[instance_of(float), gt(0)])

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProcessStarterConfig":
        """Build the configuration from application settings."""
        return cls(
            base_url=settings.process_engine_url,
            process_definition_id=settings.process_definition_id,
            token=settings.process_engine_token,
            timeout_seconds=float(settings.step_timeout_seconds),
        )


class DemoProcessStarter:
    """Process starter for environments without a workflow engine."""

    async def start(self, case: Case) -> str:
        """Return a synthetic handle without contacting any engine."""
        handle = f"DEMO-{uuid4().hex[:16].upper()}"
        logger.info(f"Demo workflow {handle} started for case {case.case_id}")
        return handle


class HttpProcessStarter:
    """Starts process instances through the engine REST API."""

    def __init__(
        self,
        config: ProcessStarterConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the starter.

        Args:
            config: Engine location and process definition.
            client: Optional shared client; the starter closes only clients
                it created itself.
        """
        if not config.base_url:
            raise ValueError("Workflow engine base URL is required")
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_client = client is None

        logger.info(f"Initialized {self.__class__.__name__} with base_url={self._base_url}")

    def _headers(self, case: Case) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Correlation-ID": case.correlation_id,
        }
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        return headers

    async def start(self, case: Case) -> str:
        """Create a process instance for ``case`` and return its key."""
        payload = {
            "processDefinitionId": self._config.process_definition_id,
            "variables": case.to_process_variables(),
        }

        try:
            response = await self._client.post(
                f"{self._base_url}/v2/process-instances",
                json=payload,
                headers=self._headers(case),
            )
        except _NOT_SENT_ERRORS as e:
            raise WorkflowStartError(
                case.case_id, f"engine unreachable: {e!r}", outcome_known=True
            ) from e
        except httpx.HTTPError as e:
            raise WorkflowStartError(
                case.case_id, f"no response from engine: {e!r}", outcome_known=False
            ) from e

        if response.status_code >= 500:
            raise WorkflowStartError(
                case.case_id,
                f"engine error {response.status_code}",
                outcome_known=False,
            )
        if response.status_code >= 400:
            raise WorkflowStartError(
                case.case_id,
                f"engine rejected request with {response.status_code}",
                outcome_known=True,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise WorkflowStartError(
                case.case_id, "unreadable engine response", outcome_known=False
            ) from e
        handle = body.get("processInstanceKey") if isinstance(body, dict) else None
        if handle is None:
            raise WorkflowStartError(
                case.case_id, "engine response lacks processInstanceKey", outcome_known=False
            )

        logger.info(f"Workflow {handle} started for case {case.case_id}")
        return str(handle)

    async def close(self) -> None:
        """Close the HTTP client if this starter created it."""
        if self._owns_client:
            await self._client.aclose()


def create_process_starter(
    settings: Settings, *, client: httpx.AsyncClient | None = None
) -> DemoProcessStarter | HttpProcessStarter:
    """Select the workflow engine adapter configured in settings."""
    if settings.process_starter_mode == "http":
        return HttpProcessStarter(ProcessStarterConfig.from_settings(settings), client=client)
    return DemoProcessStarter()
