"""
Telegram Bot Handler - Send messages via the Telegram Bot API.

Supports Bot API tokens for authentication.
"""

from .telegram_handler import register_handlers

__all__ = ["register_handlers"]
