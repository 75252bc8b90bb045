"""
Slack Handler - Post messages to a Slack channel.

Uses the connected workspace's bot token (``slack`` credentials,
``access_token`` key).

API Reference: https://api.slack.com/methods/chat.postMessage
"""

from __future__ import annotations

from typing import Any

import httpx

from nodeflow.errors import HandlerError
from nodeflow.graph.node import NodeType
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


class _SlackHandler:
    """Executes slack_send nodes."""

    def __init__(self, services: HandlerServices):
        self._services = services

    async def __call__(self, config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
        credentials = await self._services.get_credentials("slack")
        token = credentials.get("access_token")
        if not token:
            raise HandlerError("Slack credentials are missing an access token")

        text = config.get("text")
        if not text and isinstance(previous_output, dict):
            text = previous_output.get("text")

        payload: dict[str, Any] = {"channel": config.get("channel"), "text": text}
        if config.get("blocks"):
            payload["blocks"] = config["blocks"]

        try:
            async with self._services.http_client() as client:
                response = await client.post(
                    SLACK_POST_MESSAGE_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
            data = response.json()
        except httpx.HTTPError as e:
            raise HandlerError(f"Slack send failed: {e}") from e
        except ValueError as e:
            raise HandlerError(
                f"Slack send failed: invalid response ({response.status_code})"
            ) from e

        if not data.get("ok"):
            raise HandlerError(f"Slack send failed: {data.get('error', 'unknown_error')}")

        return {"success": True, "platform": "slack", "timestamp": data.get("ts")}


def register_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    """Register the slack_send node."""
    registry.register(NodeType.SLACK_SEND, _SlackHandler(services))
