"""
Workflow Engine - Runs workflow graphs.

The engine:
1. Validates the graph structure and builds the adjacency map
2. Starts at the first trigger node with the trigger input
3. For each node: records a checkpoint, validates its config, runs its
   handler (through a circuit breaker when the handler names a resource)
   and stores the result
4. Visits children depth-first according to the node's control-flow class
5. Routes a failure (the node's own, or one its subtree did not recover) to an
   error_handler child wired directly to the node; each ancestor gets a turn
6. Records the run and its logs through the RunSink, returns the result

Traversal is strictly sequential: one node at a time, children in edge
declaration order.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from nodeflow.config import EngineConfig
from nodeflow.credentials import CredentialProvider
from nodeflow.errors import LoopDepthExceeded, SubWorkflowError, WorkflowFailure
from nodeflow.graph.builder import ExecutionGraph, GraphBuilder, GraphDiagnostics
from nodeflow.graph.context import ExecutionContext, ExecutionError
from nodeflow.graph.node import Edge, FlowClass, Node
from nodeflow.graph.registry import BreakerKeyFn, NodeHandler, NodeRegistry, RegisteredHandler
from nodeflow.graph.source import WorkflowSource
from nodeflow.graph.validator import ConfigValidator
from nodeflow.nodes import HandlerServices, register_builtin_handlers
from nodeflow.observability import clear_trace_context, get_trace_context, set_trace_context
from nodeflow.resilience import CircuitBreakerRegistry
from nodeflow.runtime import RunRecorder, RunSink

logger = logging.getLogger(__name__)

HandlerPack = Callable[[NodeRegistry, HandlerServices], None]


@dataclass
class ExecutionResult:
    """Result of a successful workflow run."""

    success: bool
    execution_id: str
    duration_ms: int = 0
    nodes_executed: int = 0
    outputs: dict[str, Any] = field(default_factory=dict)
    errors: list[ExecutionError] = field(default_factory=list)  # Recovered failures
    diagnostics: GraphDiagnostics | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "executionId": self.execution_id,
            "durationMs": self.duration_ms,
            "nodesExecuted": self.nodes_executed,
            "outputs": self.outputs,
            "errors": [e.to_dict() for e in self.errors],
        }


class WorkflowEngine:
    """
    Executes workflow graphs.

    Example:
        engine = WorkflowEngine(
            sink=FileRunSink(Path("./.nodeflow")),
            credentials=EnvCredentialProvider(),
            handler_packs=[register_all_handlers],
        )

        result = await engine.execute(nodes, edges, {"text": "hello"}, workflow_id="wf-1")

    One engine runs one execution at a time. Circuit breakers live on the
    engine, so they persist across sequential runs of the same engine and
    are never shared with another engine.
    """

    def __init__(
        self,
        sink: RunSink | None = None,
        credentials: CredentialProvider | None = None,
        workflow_source: WorkflowSource | None = None,
        config: EngineConfig | None = None,
        handler_packs: Iterable[HandlerPack] | None = None,
        http_transport: Any = None,
        _depth: int = 0,
    ):
        """
        Initialize the engine.

        Args:
            sink: Where run records and run logs are written (optional)
            credentials: Credential provider for integration handlers
            workflow_source: Where sub_workflow nodes load workflows from
            config: Engine configuration (defaults from ~/.nodeflow and env)
            handler_packs: Extra ``register(registry, services)`` callables,
                applied after the built-in nodes
            http_transport: httpx transport used by handlers (tests)
            _depth: Sub-workflow nesting depth (set by the parent engine)
        """
        self.config = config or EngineConfig()
        self.sink = sink
        self.credentials = credentials
        self.workflow_source = workflow_source
        self.handler_packs: list[HandlerPack] = list(handler_packs or [])
        self.http_transport = http_transport
        self._depth = _depth

        self.breakers = CircuitBreakerRegistry(
            failure_threshold=self.config.failure_threshold,
            recovery_timeout=self.config.recovery_timeout,
        )
        self.services = HandlerServices(
            config=self.config,
            breakers=self.breakers,
            credentials=credentials,
            http_transport=http_transport,
            run_log=self._log,
            subworkflow_runner=self._run_subworkflow,
        )

        self.registry = NodeRegistry()
        register_builtin_handlers(self.registry, self.services)
        for pack in self.handler_packs:
            pack(self.registry, self.services)
        self._custom_handlers: list[tuple[str, NodeHandler, FlowClass | None, Any]] = []

        self.builder = GraphBuilder(trigger_marker=self.config.trigger_marker)
        self.validator = ConfigValidator()
        self.recorder = RunRecorder(sink)

        self.context: ExecutionContext | None = None
        self._running = False

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    def register_handler(
        self,
        type_tag: str,
        handler: NodeHandler,
        flow_class: FlowClass | None = None,
        breaker_key: BreakerKeyFn | None = None,
    ) -> RegisteredHandler:
        """Register a custom handler; sub-workflow engines inherit it."""
        self._custom_handlers.append((type_tag, handler, flow_class, breaker_key))
        return self.registry.register(type_tag, handler, flow_class, breaker_key)

    def validate(
        self,
        nodes: Iterable[Node | dict[str, Any]],
        edges: Iterable[Edge | dict[str, Any]],
    ) -> GraphDiagnostics:
        """Structural validation only; raises StructuralError on fatal problems."""
        return self.builder.validate(nodes, edges)

    async def execute(
        self,
        nodes: Iterable[Node | dict[str, Any]],
        edges: Iterable[Edge | dict[str, Any]],
        trigger_input: Any = None,
        *,
        workflow_id: str = "",
        user_id: str = "",
    ) -> ExecutionResult:
        """Validate, build and run a workflow given as raw nodes and edges."""
        node_list = list(nodes)
        edge_list = list(edges)
        # Structural errors surface here, before any run record exists
        self.builder.validate(node_list, edge_list)
        graph = self.builder.build(node_list, edge_list)
        return await self.run(graph, trigger_input, workflow_id=workflow_id, user_id=user_id)

    async def run(
        self,
        graph: ExecutionGraph,
        trigger_input: Any = None,
        *,
        workflow_id: str = "",
        user_id: str = "",
    ) -> ExecutionResult:
        """
        Run a built graph from its first trigger.

        Returns:
            ExecutionResult on success (recovered node failures listed in ``errors``)

        Raises:
            WorkflowFailure: when a node failure was not recovered
            RuntimeError: when this engine is already running
        """
        if self._running:
            raise RuntimeError("WorkflowEngine is already running an execution")
        self._running = True
        outer_trace = get_trace_context()
        try:
            return await self._run(graph, trigger_input, workflow_id, user_id)
        finally:
            self._running = False
            self.services.current_node_id = None
            clear_trace_context()
            if outer_trace:
                set_trace_context(**outer_trace)

    # -------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------

    async def _run(
        self,
        graph: ExecutionGraph,
        trigger_input: Any,
        workflow_id: str,
        user_id: str,
    ) -> ExecutionResult:
        execution_id = await self.recorder.start_run(workflow_id, user_id, trigger_input)
        ctx = ExecutionContext(
            workflow_id=workflow_id,
            execution_id=execution_id,
            user_id=user_id,
        )
        self.context = ctx
        self.services.user_id = user_id
        set_trace_context(workflow_id=workflow_id, execution_id=execution_id)

        start = time.monotonic()
        label = workflow_id or "<unsaved>"
        logger.info(f"▶ Starting workflow {label} ({len(graph.nodes)} nodes)")
        await self._log(
            None,
            "info",
            "Workflow execution started",
            {
                "workflowId": workflow_id,
                "nodeCount": len(graph.nodes),
                "edgeCount": sum(len(t) for t in graph.adjacency.values()),
                "triggerData": trigger_input,
            },
        )
        for warning in graph.diagnostics.warnings:
            await self._log(None, "warning", warning)

        try:
            await self._visit(graph, graph.start, trigger_input)
        except Exception as exc:
            duration_ms = int((time.monotonic() - start) * 1000)
            message = str(exc) or type(exc).__name__
            logger.error(f"✗ Workflow failed after {duration_ms}ms: {message}")
            await self._log(
                None,
                "error",
                f"Workflow execution failed: {message}",
                {"failedAt": _origin(ctx)},
            )
            await self.recorder.fail_run(
                message, [e.to_dict() for e in ctx.errors], ctx.last_checkpoint
            )
            raise WorkflowFailure(
                message,
                execution_id=execution_id,
                errors=ctx.errors,
                last_checkpoint=ctx.last_checkpoint,
                duration_ms=duration_ms,
                outputs=ctx.outputs,
            ) from exc

        duration_ms = int((time.monotonic() - start) * 1000)
        await self.recorder.finish_run(
            dict(ctx.outputs),
            {
                "startedAt": ctx.started_at.isoformat(),
                "completedAt": datetime.now(UTC).isoformat(),
                "durationMs": duration_ms,
            },
        )
        logger.info(
            f"✓ Workflow completed in {duration_ms}ms ({ctx.nodes_executed} nodes executed)"
        )
        await self._log(
            None,
            "success",
            f"Workflow completed successfully in {duration_ms}ms",
            {"nodesExecuted": ctx.nodes_executed, "totalTime": duration_ms},
        )
        return ExecutionResult(
            success=True,
            execution_id=execution_id,
            duration_ms=duration_ms,
            nodes_executed=ctx.nodes_executed,
            outputs=dict(ctx.outputs),
            errors=list(ctx.errors),
            diagnostics=graph.diagnostics,
        )

    # -------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------

    async def _visit(self, graph: ExecutionGraph, node: Node, previous_output: Any) -> None:
        ctx = self.context
        ctx.record_checkpoint(node.id)
        set_trace_context(node_id=node.id)
        self.services.current_node_id = node.id

        entry = self.registry.resolve(node.type)
        if entry is None:
            logger.warning(f"No handler for node type '{node.type}' ({node.id}), skipping")
            await self._log(node.id, "warning", f"No executor found for node type: {node.type}")
            return

        logger.info(f"▶ Executing node {node.id} ({node.type})")
        await self._log(node.id, "info", f"Executing node: {node.label or node.type}")

        try:
            self.validator.ensure_valid(node)
            result = await self._invoke(node, entry, previous_output)
            ctx.record_output(node.id, result)
            if (
                entry.flow_class == FlowClass.LOOP
                and ctx.loop_depth >= self.config.max_loop_depth
            ):
                raise LoopDepthExceeded(node.id, self.config.max_loop_depth)

            logger.info(f"✓ Node {node.id} completed")
            await self._log(node.id, "info", "Node executed successfully")

            # A child failure nothing below recovered lands in this node's except
            if entry.flow_class == FlowClass.BRANCH:
                await self._dispatch_branch(graph, node, result)
            elif entry.flow_class == FlowClass.SWITCH:
                await self._dispatch_switch(graph, node, result)
            elif entry.flow_class == FlowClass.LOOP and _get(result, "success", True):
                await self._dispatch_loop(graph, node, result)
            else:
                await self._dispatch_sequential(graph, node, result)
        except Exception as exc:
            await self._recover(graph, node, exc)

    async def _invoke(self, node: Node, entry: RegisteredHandler, previous_output: Any) -> Any:
        config = dict(node.config)
        resource_key = entry.breaker_key(config) if entry.breaker_key else None
        if not resource_key:
            return await entry.handler(config, previous_output)
        return await self.breakers.execute(
            resource_key, lambda: entry.handler(config, previous_output)
        )

    async def _recover(self, graph: ExecutionGraph, node: Node, exc: Exception) -> None:
        """Record a node failure and hand it to a direct error_handler child, or re-raise."""
        self.context.record_error(node.id, exc)
        logger.error(f"✗ Node {node.id} failed: {exc}")
        await self._log(
            node.id,
            "error",
            f"Node execution failed: {exc}",
            {"errorType": type(exc).__name__},
        )

        handler_node = next(
            (c for c in graph.children(node.id) if c.type == self.config.error_handler_type),
            None,
        )
        if handler_node is None:
            raise exc

        logger.info(f"Routing failure of {node.id} to error handler {handler_node.id}")
        await self._visit(graph, handler_node, {"error": str(exc), "failedNode": node.id})

    async def _dispatch_sequential(self, graph: ExecutionGraph, node: Node, result: Any) -> None:
        for child in graph.children(node.id):
            await self._visit(graph, child, result)

    async def _dispatch_branch(self, graph: ExecutionGraph, node: Node, result: Any) -> None:
        target = "true" if _get(result, "conditionMet", False) is True else "false"
        child = next((c for c in graph.children(node.id) if c.branch == target), None)
        if child is not None:
            await self._visit(graph, child, result)

    async def _dispatch_switch(self, graph: ExecutionGraph, node: Node, result: Any) -> None:
        if not _get(result, "matched", False):
            return
        case = str(_get(result, "case", ""))
        child = next((c for c in graph.children(node.id) if c.case == case), None)
        if child is not None:
            await self._visit(graph, child, result)

    async def _dispatch_loop(self, graph: ExecutionGraph, node: Node, result: Any) -> None:
        ctx = self.context
        iterations = _to_int(_get(result, "iterations", 1)) or 1
        children = graph.children(node.id)

        frame = ctx.push_loop(node.id, iterations)
        try:
            for i in range(iterations):
                frame.iteration = i + 1
                await self._log(node.id, "info", f"Loop iteration {i + 1} of {iterations}")
                payload = {
                    **(result if isinstance(result, dict) else {"value": result}),
                    "currentIteration": i + 1,
                    "isLastIteration": i == iterations - 1,
                }
                for child in children:
                    await self._visit(graph, child, payload)
        finally:
            ctx.pop_loop()

    # -------------------------------------------------------------------
    # Collaborators
    # -------------------------------------------------------------------

    async def _log(self, node_id: str | None, level: str, message: str, data: Any = None) -> None:
        await self.recorder.log(node_id, level, message, data)

    def _spawn(self) -> "WorkflowEngine":
        """Fresh engine for a sub-workflow: same handlers, new context and breakers."""
        child = WorkflowEngine(
            sink=self.sink,
            credentials=self.credentials,
            workflow_source=self.workflow_source,
            config=self.config,
            handler_packs=self.handler_packs,
            http_transport=self.http_transport,
            _depth=self._depth + 1,
        )
        for type_tag, handler, flow_class, breaker_key in self._custom_handlers:
            child.register_handler(type_tag, handler, flow_class, breaker_key)
        return child

    async def _run_subworkflow(self, workflow_id: str, trigger_input: Any) -> dict[str, Any]:
        if self.workflow_source is None:
            raise SubWorkflowError("No workflow source configured for sub-workflows")
        if self._depth + 1 > self.config.max_subworkflow_depth:
            raise SubWorkflowError(
                f"Maximum sub-workflow depth of {self.config.max_subworkflow_depth} exceeded"
            )

        workflow = await self.workflow_source.get_workflow(workflow_id)
        if workflow is None:
            raise SubWorkflowError(f"Sub-workflow {workflow_id} not found")

        user_id = self.context.user_id if self.context else ""
        logger.info(f"Starting sub-workflow {workflow_id} (depth {self._depth + 1})")
        result = await self._spawn().execute(
            workflow.nodes,
            workflow.edges,
            trigger_input,
            workflow_id=workflow_id,
            user_id=user_id,
        )
        return result.to_dict()


def _get(result: Any, key: str, default: Any) -> Any:
    if isinstance(result, dict):
        return result.get(key, default)
    return default


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _origin(ctx: ExecutionContext) -> dict[str, Any] | None:
    # Ancestors re-record a propagated failure; the node that raised it was entered last
    error = next((e for e in reversed(ctx.errors) if e.node_id == ctx.last_checkpoint), None)
    return error.to_dict() if error else None
