"""Trigger nodes.

A trigger is the entry point of a run. The engine hands it the trigger
input as ``previous_output``; the node echoes it back together with the
trigger kind so downstream nodes can tell how the run started.
"""

from datetime import UTC, datetime
from typing import Any

from nodeflow.graph.node import NodeType
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices


def _fired(kind: str, **payload: Any) -> dict[str, Any]:
    return {
        "triggered": True,
        "timestamp": datetime.now(UTC).isoformat(),
        "type": kind,
        **payload,
    }


async def trigger_manual(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    return _fired("manual", data=previous_output or config)


async def trigger_schedule(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    return _fired(
        "schedule",
        cronExpression=config.get("cronExpression"),
        timezone=config.get("timezone") or "UTC",
    )


async def trigger_webhook(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    return _fired("webhook", payload=previous_output or config.get("payload") or {})


async def trigger_health(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    return _fired("health_event", eventType=config.get("eventType"))


async def trigger_form(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    return _fired(
        "form_submission",
        formData=previous_output or config.get("formData") or {},
        formFields=config.get("formFields") or [],
    )


async def trigger_chat(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    return _fired(
        "chat_event",
        platform=config.get("platform") or "unknown",
        chatData=previous_output or config.get("chatData") or {},
        listenFor=config.get("listenFor"),
    )


async def trigger_error(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    return _fired(
        "application_error",
        errorType=config.get("errorType") or "any",
        severity=config.get("severity") or "error",
        errorDetails=previous_output or config.get("errorDetails") or {},
    )


TRIGGER_HANDLERS = {
    NodeType.TRIGGER_MANUAL: trigger_manual,
    NodeType.TRIGGER_SCHEDULE: trigger_schedule,
    NodeType.TRIGGER_WEBHOOK: trigger_webhook,
    NodeType.TRIGGER_HEALTH: trigger_health,
    NodeType.TRIGGER_FORM: trigger_form,
    NodeType.TRIGGER_CHAT: trigger_chat,
    NodeType.TRIGGER_ERROR: trigger_error,
}


def register_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    for type_tag, handler in TRIGGER_HANDLERS.items():
        registry.register(type_tag, handler)
