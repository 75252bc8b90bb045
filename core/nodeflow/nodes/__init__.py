"""Built-in node handlers: triggers, logic and control flow, data operations."""

from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes import data, logic, triggers
from nodeflow.nodes.services import HandlerServices


def register_builtin_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    """Register every built-in handler on ``registry``."""
    triggers.register_handlers(registry, services)
    logic.register_handlers(registry, services)
    data.register_handlers(registry, services)


__all__ = ["HandlerServices", "register_builtin_handlers"]
