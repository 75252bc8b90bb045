"""
Nodeflow Tools - Integration handlers for the nodeflow workflow engine.

Handlers let workflow nodes reach external systems: arbitrary HTTP
endpoints, Discord webhooks, Slack, Telegram and AI chat models.

Usage:
    from nodeflow import WorkflowEngine
    from nodeflow.credentials import EnvCredentialProvider
    from nodeflow_tools import register_all_handlers

    engine = WorkflowEngine(
        credentials=EnvCredentialProvider(),
        handler_packs=[register_all_handlers],
    )
"""

__version__ = "0.1.0"

from .handlers import register_all_handlers

__all__ = [
    "__version__",
    "register_all_handlers",
]
