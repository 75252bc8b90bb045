"""Data operation nodes: JSON parsing and simple string transforms."""

import json
from typing import Any

from nodeflow.errors import HandlerError
from nodeflow.graph.conditions import to_js_string
from nodeflow.graph.node import NodeType
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices


async def json_parse(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    raw = config.get("jsonString")
    if raw is None:
        raw = previous_output
    try:
        parsed = json.loads(to_js_string(raw))
    except ValueError as e:
        raise HandlerError(f"JSON parse failed: {e}") from e
    return {"success": True, "data": parsed}


async def data_transform(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    value = previous_output if previous_output is not None else config.get("input")
    transformation = config.get("transformation") or ""

    output = value
    if "uppercase" in transformation:
        output = to_js_string(value).upper()
    elif "lowercase" in transformation:
        output = to_js_string(value).lower()
    elif "reverse" in transformation:
        output = to_js_string(value)[::-1]

    return {
        "success": True,
        "input": value,
        "output": output,
        "transformation": transformation,
    }


def register_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    registry.register(NodeType.JSON_PARSE, json_parse)
    registry.register(NodeType.DATA_TRANSFORM, data_transform)
