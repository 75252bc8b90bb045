"""
Tests for WorkflowEngine traversal.

Covers:
- Structural errors raise before run() is invoked
- Data propagation: each child receives exactly its parent's result
- Sequential fan-out in edge order, depth-first
- if_else branch routing, switch case routing
- Loop iteration order, per-iteration payload, loop stack cleanup
- Loop depth limit
- Error-handler recovery at the failing node or an ancestor, failure propagation
- Missing handlers are skipped
- Circuit breakers wrapping handlers, persisting across runs of one engine
- Concurrent run guard
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from nodeflow.config import DEFAULT_MAX_LOOP_DEPTH, EngineConfig
from nodeflow.errors import (
    CircuitOpenError,
    ConfigValidationError,
    HandlerError,
    LoopDepthExceeded,
    NoTriggerError,
    WorkflowFailure,
)
from nodeflow.graph.executor import WorkflowEngine
from nodeflow.graph.node import FlowClass
from nodeflow.resilience import CircuitState

# ---------------------------------------------------------------------------
# Fake handlers
# ---------------------------------------------------------------------------


class Recorder:
    """Records every call as (label, previous_output) and returns a fixed result."""

    def __init__(self, calls: list, label: str, result: dict | None = None):
        self.calls = calls
        self.label = label
        self.result = result

    async def __call__(self, config, previous_output=None):
        self.calls.append((config.get("name", self.label), previous_output))
        if self.result is not None:
            return self.result
        return {"success": True, "from": config.get("name", self.label)}


class FailingHandler:
    """Always raises."""

    def __init__(self, calls: list, exc: Exception | None = None):
        self.calls = calls
        self.exc = exc or HandlerError("service exploded")

    async def __call__(self, config, previous_output=None):
        self.calls.append((config.get("name", "fail"), previous_output))
        raise self.exc


def make_config(**overrides) -> EngineConfig:
    values = {
        "max_loop_depth": 5,
        "failure_threshold": 5,
        "recovery_timeout": 30.0,
        "http_timeout": 5.0,
        "models": {},
    }
    values.update(overrides)
    return EngineConfig(**values)


def trigger(node_id: str = "t") -> dict:
    return {"id": node_id, "type": "trigger_manual"}


def step(node_id: str, type_tag: str = "step", **extra) -> dict:
    return {"id": node_id, "type": type_tag, "config": {"name": node_id}, **extra}


def edge(source: str, target: str) -> dict:
    return {"source": source, "target": target}


@pytest.fixture
def calls():
    return []


@pytest.fixture
def engine(calls):
    eng = WorkflowEngine(config=make_config())
    eng.register_handler("step", Recorder(calls, "step"))
    eng.register_handler("fail", FailingHandler(calls))
    return eng


def visited(calls: list) -> list[str]:
    return [name for name, _ in calls]


# ---------------------------------------------------------------------------
# Structure and data flow
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_no_trigger_raises_before_run(engine):
    with patch.object(engine, "run", new=AsyncMock()) as run:
        with pytest.raises(NoTriggerError):
            await engine.execute([step("a"), step("b")], [edge("a", "b")])
    run.assert_not_called()


@pytest.mark.asyncio
async def test_child_receives_parent_result(engine, calls):
    result_a = {"success": True, "value": 42}
    engine.register_handler("a_type", Recorder(calls, "a", result=result_a))

    result = await engine.execute(
        [trigger(), step("a", "a_type"), step("b")],
        [edge("t", "a"), edge("a", "b")],
        {"input": 1},
    )

    assert result.success
    assert calls[0][0] == "a"
    assert calls[0][1]["triggered"] is True
    assert calls[0][1]["data"] == {"input": 1}
    assert calls[1] == ("b", result_a)
    assert result.outputs["a"] == result_a
    assert result.nodes_executed == 3


@pytest.mark.asyncio
async def test_sequential_children_depth_first_in_edge_order(engine, calls):
    nodes = [trigger(), step("a"), step("b"), step("a1"), step("b1")]
    edges = [edge("t", "a"), edge("t", "b"), edge("a", "a1"), edge("b", "b1")]

    await engine.execute(nodes, edges)
    assert visited(calls) == ["a", "a1", "b", "b1"]


@pytest.mark.asyncio
async def test_nested_data_shape_nodes(engine, calls):
    nodes = [
        {"id": "t", "data": {"type": "trigger_manual"}},
        {"id": "a", "data": {"type": "step", "config": {"name": "a"}}},
    ]
    await engine.execute(nodes, [edge("t", "a")])
    assert visited(calls) == ["a"]


@pytest.mark.asyncio
async def test_orphaned_nodes_not_executed(engine, calls):
    nodes = [trigger(), step("a"), step("orphan")]
    result = await engine.execute(nodes, [edge("t", "a")])

    assert visited(calls) == ["a"]
    assert result.diagnostics.orphaned == ("orphan",)


@pytest.mark.asyncio
async def test_missing_handler_skips_node_and_children(engine, calls):
    nodes = [trigger(), step("mystery", "not_registered"), step("after")]
    result = await engine.execute(nodes, [edge("t", "mystery"), edge("mystery", "after")])

    assert result.success
    assert calls == []
    assert "mystery" not in result.outputs
    assert result.nodes_executed == 2


# ---------------------------------------------------------------------------
# Branch and switch
# ---------------------------------------------------------------------------


def _if_else_graph(condition, operator, compare_to):
    nodes = [
        trigger(),
        {
            "id": "check",
            "type": "if_else",
            "config": {"condition": condition, "operator": operator, "compareTo": compare_to},
        },
        step("yes", branch="true"),
        step("no", branch="false"),
    ]
    edges = [edge("t", "check"), edge("check", "yes"), edge("check", "no")]
    return nodes, edges


@pytest.mark.asyncio
async def test_if_else_true_branch(engine, calls):
    result = await engine.execute(*_if_else_graph(5, "greater_than", 3))

    assert result.outputs["check"]["conditionMet"] is True
    assert visited(calls) == ["yes"]
    assert calls[0][1]["branch"] == "true"


@pytest.mark.asyncio
async def test_if_else_false_branch(engine, calls):
    await engine.execute(*_if_else_graph(1, "greater_than", 3))
    assert visited(calls) == ["no"]


@pytest.mark.asyncio
async def test_branch_with_non_boolean_condition_takes_false(engine, calls):
    engine.register_handler(
        "weird_branch", Recorder([], "w", {"success": True, "conditionMet": "yes"}),
        flow_class=FlowClass.BRANCH,
    )
    nodes = [
        trigger(),
        step("w", "weird_branch"),
        step("yes", branch="true"),
        step("no", branch="false"),
    ]
    await engine.execute(nodes, [edge("t", "w"), edge("w", "yes"), edge("w", "no")])
    assert visited(calls) == ["no"]


def _switch_graph(expression):
    nodes = [
        trigger(),
        {
            "id": "sw",
            "type": "switch",
            "config": {"expression": expression, "cases": '{"red": "stop", "green": "go"}'},
        },
        step("red", case="red"),
        step("green", case="green"),
    ]
    edges = [edge("t", "sw"), edge("sw", "red"), edge("sw", "green")]
    return nodes, edges


@pytest.mark.asyncio
async def test_switch_routes_to_matching_case(engine, calls):
    result = await engine.execute(*_switch_graph("green"))

    assert result.outputs["sw"]["output"] == "go"
    assert visited(calls) == ["green"]


@pytest.mark.asyncio
async def test_switch_without_match_visits_nothing(engine, calls):
    result = await engine.execute(*_switch_graph("blue"))

    assert result.outputs["sw"]["matched"] is False
    assert calls == []


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_loop_visits_children_per_iteration(engine, calls):
    nodes = [
        trigger(),
        {"id": "loop", "type": "loop", "config": {"iterations": 3}},
        step("c1"),
        step("c2"),
    ]
    edges = [edge("t", "loop"), edge("loop", "c1"), edge("loop", "c2")]

    await engine.execute(nodes, edges)

    assert visited(calls) == ["c1", "c2", "c1", "c2", "c1", "c2"]
    iterations = [(out["currentIteration"], out["isLastIteration"]) for _, out in calls]
    assert iterations == [(1, False), (1, False), (2, False), (2, False), (3, True), (3, True)]
    assert calls[0][1]["iterations"] == 3
    assert engine.context.loop_stack == []


@pytest.mark.asyncio
async def test_loop_with_zero_iterations_runs_once(engine, calls):
    nodes = [trigger(), {"id": "loop", "type": "loop", "config": {"iterations": 0}}, step("c")]
    await engine.execute(nodes, [edge("t", "loop"), edge("loop", "c")])
    assert visited(calls) == ["c"]


@pytest.mark.asyncio
async def test_loop_depth_exceeded_before_any_iteration(calls):
    engine = WorkflowEngine(config=make_config(max_loop_depth=2))
    engine.register_handler("step", Recorder(calls, "step"))

    nodes = [
        trigger(),
        {"id": "l1", "type": "loop", "config": {"iterations": 1}},
        {"id": "l2", "type": "loop", "config": {"iterations": 1}},
        {"id": "l3", "type": "loop", "config": {"iterations": 2}},
        step("inner"),
    ]
    edges = [edge("t", "l1"), edge("l1", "l2"), edge("l2", "l3"), edge("l3", "inner")]

    with pytest.raises(WorkflowFailure) as exc_info:
        await engine.execute(nodes, edges)

    assert isinstance(exc_info.value.__cause__, LoopDepthExceeded)
    assert "Maximum loop depth of 2 exceeded for node l3" in str(exc_info.value)
    assert calls == []
    assert engine.context.loop_stack == []
    # Each enclosing node records the failure on its way up
    assert [e.node_id for e in exc_info.value.errors] == ["l3", "l2", "l1", "t"]


@pytest.mark.asyncio
async def test_sixth_nested_loop_exceeds_default_depth(calls):
    engine = WorkflowEngine(config=make_config(max_loop_depth=DEFAULT_MAX_LOOP_DEPTH))
    engine.register_handler("step", Recorder(calls, "step"))

    loops = [f"l{i}" for i in range(1, 7)]
    nodes = [trigger()]
    nodes += [{"id": lid, "type": "loop", "config": {"iterations": 1}} for lid in loops]
    nodes.append(step("inner"))
    chain = ["t", *loops, "inner"]
    edges = [edge(a, b) for a, b in zip(chain, chain[1:])]

    with pytest.raises(WorkflowFailure) as exc_info:
        await engine.execute(nodes, edges)

    assert isinstance(exc_info.value.__cause__, LoopDepthExceeded)
    assert "Maximum loop depth of 5 exceeded for node l6" in str(exc_info.value)
    assert exc_info.value.errors[0].node_id == "l6"
    # l6's handler ran, but none of its iterations did
    assert "l6" in engine.context.outputs
    assert calls == []
    assert engine.context.loop_stack == []


@pytest.mark.asyncio
async def test_loop_depth_failure_recovered_by_error_handler(calls):
    engine = WorkflowEngine(config=make_config(max_loop_depth=1))
    engine.register_handler("step", Recorder(calls, "step"))
    nodes = [
        trigger(),
        {"id": "outer", "type": "loop", "config": {"iterations": 1}},
        {"id": "inner", "type": "loop", "config": {"iterations": 1}},
        {"id": "eh", "type": "error_handler", "config": {"onError": "retry"}},
        step("body"),
    ]
    edges = [edge("t", "outer"), edge("outer", "inner"), edge("inner", "eh"), edge("inner", "body")]

    result = await engine.execute(nodes, edges)

    assert result.success
    assert [e.node_id for e in result.errors] == ["inner"]
    assert result.outputs["eh"]["errorDetails"]["failedNode"] == "inner"
    assert calls == []


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failure_recovered_by_direct_error_handler(engine, calls):
    nodes = [
        trigger(),
        step("bad", "fail"),
        {"id": "eh", "type": "error_handler", "config": {"onError": "retry"}},
        step("next"),
    ]
    edges = [edge("t", "bad"), edge("bad", "eh"), edge("bad", "next")]

    result = await engine.execute(nodes, edges)

    assert result.success
    assert len(result.errors) == 1
    assert result.errors[0].node_id == "bad"
    assert result.errors[0].message == "service exploded"
    assert result.outputs["eh"]["errorDetails"] == {
        "error": "service exploded",
        "failedNode": "bad",
    }
    # Regular children of the failed node are not visited
    assert visited(calls) == ["bad"]


@pytest.mark.asyncio
async def test_error_handler_child_visited_after_success(engine, calls):
    nodes = [
        trigger(),
        step("ok"),
        {"id": "eh", "type": "error_handler", "config": {}},
        step("next"),
    ]
    edges = [edge("t", "ok"), edge("ok", "eh"), edge("ok", "next")]

    result = await engine.execute(nodes, edges)

    assert visited(calls) == ["ok", "next"]
    assert result.errors == []
    # Entered like any other child, with the parent's result as input
    assert result.outputs["eh"]["strategy"] == "retry"
    assert result.outputs["eh"]["errorDetails"] == {"success": True, "from": "ok"}


@pytest.mark.asyncio
async def test_unrecovered_failure_stops_run(engine, calls):
    nodes = [trigger(), step("a"), step("bad", "fail"), step("never"), step("sibling")]
    edges = [edge("t", "a"), edge("a", "bad"), edge("bad", "never"), edge("a", "sibling")]

    with pytest.raises(WorkflowFailure) as exc_info:
        await engine.execute(nodes, edges)

    failure = exc_info.value
    assert str(failure) == "service exploded"
    assert isinstance(failure.__cause__, HandlerError)
    assert failure.last_checkpoint == "bad"
    assert visited(calls) == ["a", "bad"]
    assert engine.context.nodes_executed == 3
    assert [e.node_id for e in failure.errors] == ["bad", "a", "t"]


@pytest.mark.asyncio
async def test_parent_error_handler_recovers_child_failure(engine, calls):
    nodes = [
        trigger(),
        step("a"),
        step("bad", "fail"),
        {"id": "eh", "type": "error_handler", "config": {}},
        step("after"),
    ]
    edges = [edge("t", "a"), edge("a", "bad"), edge("a", "eh"), edge("a", "after")]

    result = await engine.execute(nodes, edges)

    assert result.success
    assert [e.node_id for e in result.errors] == ["bad", "a"]
    assert result.outputs["eh"]["errorDetails"] == {
        "error": "service exploded",
        "failedNode": "a",
    }
    # Siblings after the failed child are abandoned
    assert visited(calls) == ["a", "bad"]


@pytest.mark.asyncio
async def test_grandparent_error_handler_recovers_after_parent_reraises(engine, calls):
    nodes = [
        trigger(),
        step("a"),
        step("b"),
        step("bad", "fail"),
        {"id": "eh", "type": "error_handler", "config": {}},
    ]
    edges = [edge("t", "a"), edge("a", "b"), edge("b", "bad"), edge("a", "eh")]

    result = await engine.execute(nodes, edges)

    assert [e.node_id for e in result.errors] == ["bad", "b", "a"]
    assert result.outputs["eh"]["errorDetails"]["failedNode"] == "a"


@pytest.mark.asyncio
async def test_stop_workflow_error_handler_fails_run(engine):
    nodes = [
        trigger(),
        step("bad", "fail"),
        {"id": "eh", "type": "error_handler", "config": {"onError": "stop_workflow"}},
    ]
    with pytest.raises(WorkflowFailure, match="Workflow stopped by error handler") as exc_info:
        await engine.execute(nodes, [edge("t", "bad"), edge("bad", "eh")])

    assert [e.node_id for e in exc_info.value.errors] == ["bad", "eh", "t"]


@pytest.mark.asyncio
async def test_config_validation_failure_skips_handler(engine, calls):
    sender = Recorder(calls, "slack")
    engine.register_handler("slack_send", sender)

    nodes = [trigger(), {"id": "s", "type": "slack_send", "config": {"channel": "#c"}}]
    with pytest.raises(WorkflowFailure) as exc_info:
        await engine.execute(nodes, [edge("t", "s")])

    assert isinstance(exc_info.value.__cause__, ConfigValidationError)
    assert "Message text is required" in str(exc_info.value)
    assert calls == []


# ---------------------------------------------------------------------------
# Circuit breakers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_breaker_wraps_handler_and_persists_across_runs(calls):
    engine = WorkflowEngine(config=make_config(failure_threshold=2))
    engine.register_handler("fail", FailingHandler(calls), breaker_key=lambda cfg: "flaky-api")
    nodes = [trigger(), step("bad", "fail")]

    for _ in range(2):
        with pytest.raises(WorkflowFailure):
            await engine.execute(nodes, [edge("t", "bad")])
    assert engine.breakers.get_state("flaky-api") == CircuitState.OPEN

    with pytest.raises(WorkflowFailure) as exc_info:
        await engine.execute(nodes, [edge("t", "bad")])

    assert isinstance(exc_info.value.__cause__, CircuitOpenError)
    assert exc_info.value.is_transient
    assert exc_info.value.errors[0].transient is True
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_breakers_not_shared_between_engines(calls):
    first = WorkflowEngine(config=make_config(failure_threshold=1))
    second = WorkflowEngine(config=make_config(failure_threshold=1))
    for eng in (first, second):
        eng.register_handler("fail", FailingHandler(calls), breaker_key=lambda cfg: "api")

    with pytest.raises(WorkflowFailure):
        await first.execute([trigger(), step("bad", "fail")], [edge("t", "bad")])

    assert first.breakers.get_state("api") == CircuitState.OPEN
    assert second.breakers.get_state("api") == CircuitState.CLOSED


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_concurrent_run_on_same_engine_rejected():
    engine = WorkflowEngine(config=make_config())
    release = asyncio.Event()

    async def blocking(config, previous_output=None):
        await release.wait()
        return {"success": True}

    engine.register_handler("block", blocking)
    graph = engine.builder.build([trigger(), step("b", "block")], [edge("t", "b")])

    first = asyncio.create_task(engine.run(graph))
    await asyncio.sleep(0)
    with pytest.raises(RuntimeError, match="already running"):
        await engine.run(graph)

    release.set()
    result = await first
    assert result.success

    # The engine is reusable once the first run completes
    assert (await engine.run(graph)).success
