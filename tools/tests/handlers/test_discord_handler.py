"""
Tests for the discord_send handler.

Covers:
- Webhook URL validation
- Payload shape (content, username, embeds)
- Per-webhook rate limiting
- Circuit breaker soft failure once the webhook's breaker is open
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from nodeflow.errors import HandlerError
from nodeflow.resilience import CircuitState
from nodeflow_tools.handlers.discord_handler.discord_handler import (
    _DiscordHandler,
    is_valid_webhook_url,
)

WEBHOOK = "https://discord.com/api/webhooks/123456/abc-DEF_ghi"
SLEEP = "nodeflow_tools.handlers.discord_handler.discord_handler.asyncio.sleep"


@pytest.mark.parametrize(
    "url,valid",
    [
        (WEBHOOK, True),
        ("https://discordapp.com/api/webhooks/1/token", True),
        ("https://canary.discord.com/api/v10/webhooks/1/token", True),
        ("http://discord.com/api/webhooks/1/token", False),
        ("https://evil.example.com/api/webhooks/1/token", False),
        ("https://discord.com/api/webhooks/abc/token", False),
        ("", False),
    ],
)
def test_is_valid_webhook_url(url, valid):
    assert is_valid_webhook_url(url) is valid


class TestDiscordHandler:
    @pytest.mark.asyncio
    async def test_sends_message(self, make_services):
        services, transport = make_services(lambda request: httpx.Response(204))
        handler = _DiscordHandler(services)

        result = await handler(
            {"webhookUrl": WEBHOOK, "content": "Deploy finished", "embeds": [{"title": "ok"}]}
        )

        assert result == {"success": True, "message": "Discord message sent successfully."}
        body = json.loads(transport.requests[0].content)
        assert body == {
            "content": "Deploy finished",
            "username": "Workflow Bot",
            "embeds": [{"title": "ok"}],
        }

    @pytest.mark.asyncio
    async def test_content_falls_back_to_previous_text(self, make_services):
        services, transport = make_services(lambda request: httpx.Response(204))
        handler = _DiscordHandler(services)

        await handler({"webhookUrl": WEBHOOK, "username": "Bot"}, {"text": "from upstream"})

        body = json.loads(transport.requests[0].content)
        assert body["content"] == "from upstream"
        assert body["username"] == "Bot"

    @pytest.mark.asyncio
    async def test_requires_url_and_message(self, make_services):
        services, transport = make_services()
        handler = _DiscordHandler(services)

        with pytest.raises(HandlerError, match="Webhook URL and message are required"):
            await handler({"webhookUrl": WEBHOOK})
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_rejects_invalid_webhook(self, make_services):
        services, transport = make_services()
        handler = _DiscordHandler(services)

        with pytest.raises(HandlerError, match="Invalid or inactive Discord webhook URL"):
            await handler({"webhookUrl": "https://example.com/hook", "content": "hi"})
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_rate_limit_waits_between_sends(self, make_services):
        services, transport = make_services(lambda request: httpx.Response(204))
        services.run_log = AsyncMock()
        handler = _DiscordHandler(services)

        with patch(SLEEP, new=AsyncMock()) as sleep:
            await handler({"webhookUrl": WEBHOOK, "content": "one"})
            sleep.assert_not_awaited()
            await handler({"webhookUrl": WEBHOOK, "content": "two"})

        sleep.assert_awaited_once()
        waited = sleep.await_args.args[0]
        assert 0 < waited <= 2.5
        assert len(transport.requests) == 2
        message = services.run_log.await_args.args[2]
        assert message.startswith(f"Discord webhook rate limit hit for {WEBHOOK}")

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_webhook(self, make_services):
        services, _ = make_services(lambda request: httpx.Response(204))
        handler = _DiscordHandler(services)
        other = "https://discord.com/api/webhooks/999/other"

        with patch(SLEEP, new=AsyncMock()) as sleep:
            await handler({"webhookUrl": WEBHOOK, "content": "one"})
            await handler({"webhookUrl": other, "content": "two"})

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_error_below_threshold_raises(self, make_services):
        services, _ = make_services(lambda request: httpx.Response(500, text="oops"))
        handler = _DiscordHandler(services)

        with pytest.raises(HandlerError, match="Error sending Discord message: .*500"):
            await handler({"webhookUrl": WEBHOOK, "content": "hi"})

    @pytest.mark.asyncio
    async def test_open_breaker_returns_soft_failure(self, make_services):
        services, transport = make_services(lambda request: httpx.Response(500, text="oops"))
        handler = _DiscordHandler(services)
        config = {"webhookUrl": WEBHOOK, "content": "hi"}

        with patch(SLEEP, new=AsyncMock()):
            with pytest.raises(HandlerError):
                await handler(config)
            # Second failure trips the breaker (threshold 2)
            tripped = await handler(config)
            skipped = await handler(config)

        expected = {
            "success": False,
            "message": f"Discord webhook {WEBHOOK} temporarily unavailable.",
        }
        assert tripped == expected
        assert skipped == expected
        assert services.breakers.get_state(f"discord-{WEBHOOK}") == CircuitState.OPEN
        # The open breaker short-circuits the third call
        assert len(transport.requests) == 2
