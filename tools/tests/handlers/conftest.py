"""Shared fixtures for integration handler tests.

Outbound HTTP goes through ``httpx.MockTransport`` handed to
HandlerServices, so no test touches the network.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from nodeflow.config import EngineConfig
from nodeflow.credentials import StaticCredentialProvider
from nodeflow.nodes.services import HandlerServices
from nodeflow.resilience import CircuitBreakerRegistry


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(
        max_loop_depth=5,
        failure_threshold=2,
        recovery_timeout=60.0,
        http_timeout=5.0,
        discord_rate_limit_interval=2.5,
        models={
            "openai": "gpt-4.1-mini",
            "anthropic": "claude-haiku-4-5-20251001",
            "gemini": "gemini-2.5-flash",
        },
    )


@pytest.fixture
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider(
        {
            "slack": {"access_token": "xoxb-test"},
            "telegram": {"bot_token": "123456789:ABCdef"},
            "openai": {"api_key": "sk-openai"},
            "anthropic": {"api_key": "sk-ant"},
            "gemini": {"api_key": "gm-key"},
        }
    )


@pytest.fixture
def make_services(engine_config, credentials):
    """Build HandlerServices whose HTTP calls are answered by ``responder``."""

    def _make(
        responder: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> tuple[HandlerServices, RecordingTransport]:
        transport = RecordingTransport(responder or (lambda request: httpx.Response(200)))
        services = HandlerServices(
            config=engine_config,
            breakers=CircuitBreakerRegistry(
                failure_threshold=engine_config.failure_threshold,
                recovery_timeout=engine_config.recovery_timeout,
            ),
            credentials=credentials,
            http_transport=transport,
        )
        return services, transport

    return _make
