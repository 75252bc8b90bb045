"""
Discord Webhook Handler - Post messages to a Discord channel webhook.

Config:
- webhookUrl: https://discord.com/api/webhooks/{id}/{token} (required)
- content: message text; falls back to ``previous_output["text"]``
- username: display name, default "Workflow Bot"
- embeds: optional list of Discord embed objects

Each webhook URL is rate limited (one send per interval, default 2.5s)
and has its own circuit breaker. While that breaker is open the node
returns ``success: False`` instead of failing the workflow.
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import Any

import httpx

from nodeflow.errors import HandlerError
from nodeflow.graph.node import NodeType
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices
from nodeflow.resilience import CircuitState

WEBHOOK_URL_PATTERN = re.compile(
    r"^https://(?:(?:canary|ptb)\.)?discord(?:app)?\.com/api/(?:v\d+/)?webhooks/\d+/[\w-]+/?$"
)


def is_valid_webhook_url(url: str) -> bool:
    return bool(WEBHOOK_URL_PATTERN.match(url or ""))


class _DiscordHandler:
    """Executes discord_send nodes."""

    def __init__(self, services: HandlerServices):
        self._services = services

    async def _respect_rate_limit(self, webhook_url: str) -> None:
        interval = self._services.config.discord_rate_limit_interval
        last_sent = self._services.rate_limits.get(webhook_url)
        if last_sent is not None:
            elapsed = time.monotonic() - last_sent
            if elapsed < interval:
                wait_for = interval - elapsed
                await self._services.log(
                    "info",
                    f"Discord webhook rate limit hit for {webhook_url}. "
                    f"Waiting {int(wait_for * 1000)}ms.",
                )
                await asyncio.sleep(wait_for)
        self._services.rate_limits[webhook_url] = time.monotonic()

    async def _post(self, webhook_url: str, payload: dict[str, Any]) -> None:
        async with self._services.http_client() as client:
            response = await client.post(webhook_url, json=payload)
        if response.is_error:
            raise HandlerError(
                f"Failed to send Discord message: {response.status_code} - {response.text}"
            )

    async def __call__(self, config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
        webhook_url = config.get("webhookUrl") or ""
        message = config.get("content")
        if not message and isinstance(previous_output, dict):
            message = previous_output.get("text")
        if not webhook_url or not message:
            raise HandlerError("Discord Webhook URL and message are required.")
        if not is_valid_webhook_url(webhook_url):
            raise HandlerError("Invalid or inactive Discord webhook URL.")

        await self._respect_rate_limit(webhook_url)

        payload: dict[str, Any] = {
            "content": message,
            "username": config.get("username") or "Workflow Bot",
        }
        if config.get("embeds"):
            payload["embeds"] = config["embeds"]

        resource_key = f"discord-{webhook_url}"
        breakers = self._services.breakers
        try:
            await breakers.execute(resource_key, lambda: self._post(webhook_url, payload))
        except (HandlerError, httpx.HTTPError) as e:
            if breakers.get_state(resource_key) == CircuitState.OPEN:
                await self._services.log(
                    "warning",
                    f"Circuit breaker open for Discord webhook {webhook_url}. Skipping request.",
                )
                return {
                    "success": False,
                    "message": f"Discord webhook {webhook_url} temporarily unavailable.",
                }
            raise HandlerError(f"Error sending Discord message: {e}") from e

        return {"success": True, "message": "Discord message sent successfully."}


def register_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    """Register the discord_send node."""
    registry.register(NodeType.DISCORD_SEND, _DiscordHandler(services))
