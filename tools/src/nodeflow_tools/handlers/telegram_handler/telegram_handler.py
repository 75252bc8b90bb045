"""
Telegram Bot Handler - Send messages via the Telegram Bot API.

Supports:
- Bot API tokens (``telegram`` credentials, ``bot_token`` key)

API Reference: https://core.telegram.org/bots/api
"""

from __future__ import annotations

from typing import Any

import httpx

from nodeflow.errors import HandlerError
from nodeflow.graph.node import NodeType
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices

TELEGRAM_API_BASE = "https://api.telegram.org/bot"


class _TelegramClient:
    """Internal client wrapping Telegram Bot API calls."""

    def __init__(self, bot_token: str, services: HandlerServices):
        self._token = bot_token
        self._services = services

    @property
    def _base_url(self) -> str:
        return f"{TELEGRAM_API_BASE}{self._token}"

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Map HTTP error codes to HandlerError; return the decoded body."""
        if response.status_code == 401:
            raise HandlerError("Invalid Telegram bot token")
        if response.status_code == 403:
            raise HandlerError("Bot was blocked by the user or lacks permissions")
        if response.status_code == 404:
            raise HandlerError("Chat not found")
        if response.status_code == 429:
            raise HandlerError("Rate limit exceeded. Try again later.")
        if response.status_code >= 400:
            try:
                detail = response.json().get("description", response.text)
            except ValueError:
                detail = response.text
            raise HandlerError(
                f"Telegram send failed (HTTP {response.status_code}). Details: {detail}"
            )
        return response.json()

    async def send_message(self, chat_id: str, text: str, parse_mode: str | None = None) -> dict:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode

        async with self._services.http_client() as client:
            response = await client.post(f"{self._base_url}/sendMessage", json=payload)
        return self._handle_response(response)


class _TelegramHandler:
    """Executes telegram_send nodes."""

    def __init__(self, services: HandlerServices):
        self._services = services

    async def __call__(self, config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
        credentials = await self._services.get_credentials("telegram")
        token = credentials.get("bot_token")
        if not token:
            raise HandlerError("Telegram bot token not configured")

        text = config.get("message")
        if not text and isinstance(previous_output, dict):
            text = previous_output.get("text")

        client = _TelegramClient(token, self._services)
        try:
            data = await client.send_message(
                chat_id=str(config.get("chatId")),
                text=text or "",
                parse_mode=config.get("parseMode") or "HTML",
            )
        except httpx.TimeoutException as e:
            raise HandlerError("Telegram request timed out") from e
        except httpx.RequestError as e:
            raise HandlerError(f"Network error: {e}") from e

        return {
            "success": True,
            "platform": "telegram",
            "messageId": (data.get("result") or {}).get("message_id"),
        }


def register_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    """Register the telegram_send node."""
    registry.register(NodeType.TELEGRAM_SEND, _TelegramHandler(services))
