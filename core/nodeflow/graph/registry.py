"""
Node Registry - maps node type tags to handlers.

A handler is an async callable ``(config, previous_output) -> dict``. The
result conventionally carries ``success`` and, for control-flow nodes, the
routing keys the engine reads (``conditionMet``, ``matched``/``case``,
``iterations``).

Handlers that call an external resource register a ``breaker_key``
function; the engine then runs the handler through the circuit breaker for
whatever key that function returns for the node's config.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from nodeflow.graph.node import FlowClass, NodeType

logger = logging.getLogger(__name__)

NodeHandler = Callable[[dict[str, Any], Any], Awaitable[dict[str, Any]]]
BreakerKeyFn = Callable[[dict[str, Any]], str | None]

_DEFAULT_FLOW = {
    NodeType.IF_ELSE: FlowClass.BRANCH,
    NodeType.SWITCH: FlowClass.SWITCH,
    NodeType.LOOP: FlowClass.LOOP,
}


@dataclass
class RegisteredHandler:
    """A handler plus how the engine should treat it."""

    type_tag: str
    handler: NodeHandler
    flow_class: FlowClass = FlowClass.SEQUENTIAL
    breaker_key: BreakerKeyFn | None = None


class NodeRegistry:
    """Registry of node handlers keyed by type tag."""

    def __init__(self):
        self._handlers: dict[str, RegisteredHandler] = {}

    def register(
        self,
        type_tag: str,
        handler: NodeHandler,
        flow_class: FlowClass | None = None,
        breaker_key: BreakerKeyFn | None = None,
    ) -> RegisteredHandler:
        """Register (or replace) the handler for a type tag."""
        if flow_class is None:
            flow_class = _DEFAULT_FLOW.get(type_tag, FlowClass.SEQUENTIAL)
        entry = RegisteredHandler(
            type_tag=type_tag,
            handler=handler,
            flow_class=flow_class,
            breaker_key=breaker_key,
        )
        if type_tag in self._handlers:
            logger.debug(f"Replacing handler for node type '{type_tag}'")
        self._handlers[type_tag] = entry
        return entry

    def resolve(self, type_tag: str) -> RegisteredHandler | None:
        return self._handlers.get(type_tag)

    def flow_class(self, type_tag: str) -> FlowClass:
        entry = self._handlers.get(type_tag)
        return entry.flow_class if entry else FlowClass.SEQUENTIAL

    def tags(self) -> list[str]:
        return list(self._handlers)

    def missing(self, expected: Iterable[str] | None = None) -> list[str]:
        """Type tags from ``expected`` (all built-in tags by default) with no handler."""
        if expected is None:
            expected = [t.value for t in NodeType]
        return [tag for tag in expected if tag not in self._handlers]

    def __contains__(self, type_tag: str) -> bool:
        return type_tag in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
