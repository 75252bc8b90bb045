"""
HTTP Request Handler - Call arbitrary HTTP endpoints from a workflow.

Config:
- url: absolute http(s) URL (required)
- method: HTTP verb, default GET
- headers: JSON object (string or dict)
- body: JSON payload (string or dict); ignored for GET. A ``body`` key in
  the previous node's output takes precedence.

Calls are isolated per hostname: every request to the same host goes
through the same circuit breaker.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from nodeflow.errors import HandlerError
from nodeflow.graph.node import NodeType
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices


def _parse_json_field(value: Any, name: str) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError) as e:
        raise HandlerError(f"Invalid JSON in {name}: {e}") from e


def breaker_key(config: dict[str, Any]) -> str | None:
    """Circuit breaker key for a request: the URL's hostname."""
    return httpx.URL(str(config.get("url", ""))).host or None


class _HttpRequestHandler:
    """Executes http_request nodes."""

    def __init__(self, services: HandlerServices):
        self._services = services

    async def __call__(self, config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
        url = config["url"]
        method = str(config.get("method") or "GET").upper()
        headers = _parse_json_field(config.get("headers"), "headers") or {}

        kwargs: dict[str, Any] = {"headers": headers}
        if config.get("body") and method != "GET":
            body = None
            if isinstance(previous_output, dict):
                body = previous_output.get("body")
            if not body:
                body = _parse_json_field(config.get("body"), "body")
            kwargs["json"] = body

        try:
            async with self._services.http_client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise HandlerError(f"HTTP request to {url} timed out") from e
        except httpx.RequestError as e:
            raise HandlerError(f"HTTP request to {url} failed: {e}") from e

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                data: Any = response.json()
            except ValueError:
                data = response.text
        else:
            data = response.text

        return {
            "success": response.is_success,
            "statusCode": response.status_code,
            "headers": dict(response.headers),
            "data": data,
        }


def register_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    """Register the http_request node."""
    registry.register(
        NodeType.HTTP_REQUEST,
        _HttpRequestHandler(services),
        breaker_key=breaker_key,
    )
