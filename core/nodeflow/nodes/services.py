"""
Handler services - the per-engine collaborators a node handler may use.

Handlers never see the ExecutionContext. Anything they need beyond their
config and the previous output (breakers, credentials, an HTTP client,
the run log, sub-workflow execution) is reached through HandlerServices,
which the engine owns and refreshes at the start of every run.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from nodeflow.config import EngineConfig
from nodeflow.errors import CredentialNotFoundError
from nodeflow.resilience import CircuitBreakerRegistry

if TYPE_CHECKING:
    from nodeflow.credentials import CredentialProvider

logger = logging.getLogger(__name__)

RunLogFn = Callable[[str | None, str, str, Any], Awaitable[None]]
SubWorkflowRunner = Callable[[str, Any], Awaitable[dict[str, Any]]]


@dataclass
class HandlerServices:
    """Per-engine services handed to node handlers."""

    config: EngineConfig = field(default_factory=EngineConfig)
    breakers: CircuitBreakerRegistry = field(default_factory=CircuitBreakerRegistry)
    credentials: CredentialProvider | None = None
    user_id: str = ""
    current_node_id: str | None = None

    # Test hook: route every outbound request through this transport
    http_transport: httpx.AsyncBaseTransport | None = None

    # Last send time per Discord webhook URL (monotonic seconds)
    rate_limits: dict[str, float] = field(default_factory=dict)

    run_log: RunLogFn | None = None
    subworkflow_runner: SubWorkflowRunner | None = None

    def http_client(self, **kwargs: Any) -> httpx.AsyncClient:
        """New AsyncClient with the engine's timeout; use as an async context manager."""
        kwargs.setdefault("timeout", self.config.http_timeout)
        if self.http_transport is not None:
            kwargs.setdefault("transport", self.http_transport)
        return httpx.AsyncClient(**kwargs)

    async def log(self, level: str, message: str, data: Any = None) -> None:
        """Append a run-log entry attributed to the node currently executing."""
        if self.run_log is None:
            logger.info(message)
            return
        await self.run_log(self.current_node_id, level, message, data)

    async def get_credentials(self, service_type: str) -> dict[str, Any]:
        if self.credentials is None:
            raise CredentialNotFoundError(service_type)
        return await self.credentials.get_credentials(self.user_id, service_type)

    async def run_subworkflow(self, workflow_id: str, trigger_input: Any = None) -> dict[str, Any]:
        if self.subworkflow_runner is None:
            raise RuntimeError("Sub-workflow execution is not available in this engine")
        return await self.subworkflow_runner(workflow_id, trigger_input)
