"""Tests for run-context propagation and the log formatters."""

import asyncio
import json
import logging

import pytest

from nodeflow.observability import clear_trace_context, get_trace_context, set_trace_context
from nodeflow.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_trace_context()
    yield
    clear_trace_context()


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("nodeflow.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_set_merges_and_get_returns_copy():
    set_trace_context(workflow_id="wf")
    set_trace_context(node_id="n1")

    context = get_trace_context()
    assert context == {"workflow_id": "wf", "node_id": "n1"}

    context["node_id"] = "mutated"
    assert get_trace_context()["node_id"] == "n1"


def test_clear():
    set_trace_context(execution_id="e")
    clear_trace_context()
    assert get_trace_context() == {}


@pytest.mark.asyncio
async def test_context_isolated_between_tasks():
    async def run(name: str) -> dict:
        set_trace_context(execution_id=name)
        await asyncio.sleep(0)
        return get_trace_context()

    first, second = await asyncio.gather(run("a"), run("b"))
    assert first["execution_id"] == "a"
    assert second["execution_id"] == "b"


def test_structured_formatter_includes_context_and_extras():
    set_trace_context(workflow_id="wf", execution_id="exec-1", node_id="n1")
    line = StructuredFormatter().format(
        _record("\033[32mdone\033[0m", event="node_completed", latency_ms=12)
    )

    entry = json.loads(line)
    assert entry["message"] == "done"
    assert entry["level"] == "info"
    assert entry["logger"] == "nodeflow.test"
    assert entry["workflow_id"] == "wf"
    assert entry["node_id"] == "n1"
    assert entry["event"] == "node_completed"
    assert entry["latency_ms"] == 12


def test_human_formatter_prefix():
    set_trace_context(workflow_id="wf", execution_id="20250101T000000_abcdef12")
    line = strip_ansi_codes(HumanReadableFormatter().format(_record("hello")))

    assert "[wf:wf | exec:abcdef12]" in line
    assert line.endswith("hello")
