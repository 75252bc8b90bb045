"""
Logic and control-flow nodes.

These handlers only compute; routing happens in the engine. ``if_else``
reports ``conditionMet``, ``switch`` reports ``matched``/``case`` and
``loop`` reports ``iterations``. The engine reads those keys to decide
which children to visit.
"""

import asyncio
import json
import logging
import math
from datetime import UTC, datetime
from functools import partial
from typing import Any

from nodeflow.errors import HandlerError
from nodeflow.graph.conditions import evaluate_condition, to_js_number, to_js_string
from nodeflow.graph.node import FlowClass, NodeType
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices

logger = logging.getLogger(__name__)


def coerce_number(value: Any, default: float) -> float:
    """Numeric config value; zero, blank and non-numeric fall back to ``default``."""
    number = to_js_number(value)
    if math.isnan(number) or number == 0:
        return default
    return number


def coerce_int(value: Any, default: int) -> int:
    return int(coerce_number(value, default))


def _pick(config: dict[str, Any], key: str, fallback: Any) -> Any:
    value = config.get(key)
    return fallback if value is None else value


# ---------------------------------------------------------------------------
# Branching
# ---------------------------------------------------------------------------


async def if_else(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    condition = _pick(config, "condition", previous_output)
    operator = config.get("operator") or "equals"
    condition_met = evaluate_condition(condition, operator, config.get("compareTo"))
    return {
        "success": True,
        "conditionMet": condition_met,
        "branch": "true" if condition_met else "false",
        "evaluatedCondition": condition,
        "operator": operator,
    }


def _parse_cases(raw: Any) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        cases = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise HandlerError(f"Invalid switch cases: {e}") from e
    if not isinstance(cases, dict):
        raise HandlerError("Invalid switch cases: expected a JSON object")
    return cases


async def switch(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    expression = _pick(config, "expression", previous_output)
    cases = _parse_cases(config.get("cases"))

    matched = False
    matched_case = "default"
    expression_text = to_js_string(expression)
    for key in cases:
        if expression_text == str(key):
            matched = True
            matched_case = key
            break

    return {
        "success": True,
        "matched": matched,
        "case": matched_case,
        "expression": expression,
        "output": cases.get(matched_case) or cases.get("default"),
    }


# ---------------------------------------------------------------------------
# Looping and timing
# ---------------------------------------------------------------------------


async def loop(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    iterations = coerce_int(config.get("iterations"), 1)
    now = datetime.now(UTC).isoformat()
    results = [
        {"iteration": i + 1, "timestamp": now, "data": previous_output}
        for i in range(iterations)
    ]
    return {"success": True, "iterations": iterations, "results": results}


async def wait(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    until_time = config.get("untilTime")
    if until_time:
        try:
            target = datetime.fromisoformat(str(until_time))
        except ValueError as e:
            raise HandlerError(f"Invalid untilTime: {until_time}") from e
        if target.tzinfo is None:
            target = target.replace(tzinfo=UTC)
        wait_seconds = max(0.0, (target - datetime.now(UTC)).total_seconds())
        await asyncio.sleep(wait_seconds)
        return {
            "success": True,
            "waitedUntil": target.isoformat(),
            "actualWait": wait_seconds,
        }

    seconds = coerce_number(config.get("seconds"), 1)
    await asyncio.sleep(seconds)
    return {"success": True, "waitedFor": seconds, "unit": "seconds"}


async def delay(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    seconds = coerce_number(config.get("seconds"), 5)
    await asyncio.sleep(seconds)
    return {"success": True, "delayedFor": seconds, "unit": "seconds"}


# ---------------------------------------------------------------------------
# Data shaping
# ---------------------------------------------------------------------------


async def filter_node(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    condition = _pick(config, "condition", previous_output)
    if isinstance(condition, (dict, list)):
        passes = True
    else:
        passes = bool(to_js_string(condition).strip())
    return {"success": True, "filtered": passes, "condition": condition, "passed": passes}


async def code_merge(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    inputs = config.get("inputs") or []
    merged: dict[str, Any] = {}
    for item in inputs:
        if isinstance(item, dict):
            merged.update(item)
    if isinstance(previous_output, dict):
        merged.update(previous_output)
    return {"success": True, "merged": True, "data": merged, "inputCount": len(inputs)}


async def code_split(config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
    data = previous_output if previous_output is not None else config.get("data")
    split_type = config.get("splitType") or "array"

    if split_type == "array" and isinstance(data, list):
        branches = [{"branch": i, "data": item} for i, item in enumerate(data)]
    elif split_type == "parallel":
        split_count = coerce_int(config.get("splitCount"), 2)
        branches = [{"branch": i, "data": data} for i in range(split_count)]
    else:
        branches = [{"branch": 0, "data": data}]

    return {"success": True, "split": True, "branches": branches}


# ---------------------------------------------------------------------------
# Nodes that need engine services
# ---------------------------------------------------------------------------


async def sub_workflow(
    services: HandlerServices, config: dict[str, Any], previous_output: Any = None
) -> dict[str, Any]:
    workflow_id = config.get("subWorkflowId")
    if not workflow_id:
        raise HandlerError("Sub-workflow ID is required")

    trigger_input = previous_output if config.get("passData") == "yes" else None
    result = await services.run_subworkflow(workflow_id, trigger_input)
    return {
        "success": True,
        "subWorkflowId": workflow_id,
        "subWorkflowResult": result,
        "waitedForCompletion": config.get("waitForCompletion") != "no",
    }


async def error_handler(
    services: HandlerServices, config: dict[str, Any], previous_output: Any = None
) -> dict[str, Any]:
    on_error = config.get("onError") or "retry"
    error_details = previous_output or {}

    if on_error == "retry":
        return {
            "success": True,
            "strategy": "retry",
            "maxRetries": coerce_int(config.get("maxRetries"), 3),
            "errorDetails": error_details,
        }
    if on_error == "stop_workflow":
        raise HandlerError("Workflow stopped by error handler")
    if on_error == "send_notification":
        await services.log("warning", "Error notification triggered", error_details)
        return {"success": True, "strategy": "send_notification", "errorDetails": error_details}
    if on_error == "branch":
        return {
            "success": True,
            "strategy": "branch",
            "errorDetails": error_details,
            "takeBranch": "error",
        }
    return {"success": True, "strategy": on_error, "errorDetails": error_details}


def register_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    registry.register(NodeType.IF_ELSE, if_else, FlowClass.BRANCH)
    registry.register(NodeType.SWITCH, switch, FlowClass.SWITCH)
    registry.register(NodeType.LOOP, loop, FlowClass.LOOP)
    registry.register(NodeType.WAIT, wait)
    registry.register(NodeType.DELAY, delay)
    registry.register(NodeType.FILTER, filter_node)
    registry.register(NodeType.CODE_MERGE, code_merge)
    registry.register(NodeType.CODE_SPLIT, code_split)
    registry.register(NodeType.SUB_WORKFLOW, partial(sub_workflow, services))
    registry.register(NodeType.ERROR_HANDLER, partial(error_handler, services))
