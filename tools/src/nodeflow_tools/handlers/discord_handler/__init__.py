"""
Discord Webhook Handler - Post messages to a Discord channel webhook.
"""

from .discord_handler import is_valid_webhook_url, register_handlers

__all__ = ["is_valid_webhook_url", "register_handlers"]
