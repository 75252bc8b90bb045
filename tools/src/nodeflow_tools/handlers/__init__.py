"""
Integration handlers for workflow nodes.

Each handler package exposes ``register_handlers(registry, services)``.
"""

from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices

from .ai_chat_handler import register_handlers as register_ai_chat
from .discord_handler import register_handlers as register_discord
from .http_request_handler import register_handlers as register_http_request
from .slack_handler import register_handlers as register_slack
from .telegram_handler import register_handlers as register_telegram


def register_all_handlers(registry: NodeRegistry, services: HandlerServices) -> list[str]:
    """
    Register all integration handlers.

    Returns:
        List of registered node type tags
    """
    before = set(registry.tags())
    register_http_request(registry, services)
    register_discord(registry, services)
    register_slack(registry, services)
    register_telegram(registry, services)
    register_ai_chat(registry, services)
    return [tag for tag in registry.tags() if tag not in before]


__all__ = ["register_all_handlers"]
