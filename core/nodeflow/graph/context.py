"""
Execution Context - per-run mutable state.

One context belongs to one engine for one run. It records which nodes were
entered (checkpoints), what each node produced (outputs), every node-level
error, and the stack of loops currently being iterated.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ExecutionError:
    """A node-level failure recorded during a run."""

    node_id: str
    message: str
    error_type: str = "Exception"
    transient: bool = False
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "error": self.message,
            "errorType": self.error_type,
            "transient": self.transient,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class LoopFrame:
    """One active loop: which node, which iteration, how many in total."""

    node_id: str
    iteration: int
    max_iterations: int


@dataclass
class ExecutionContext:
    """State of a single workflow run."""

    workflow_id: str = ""
    execution_id: str = ""
    user_id: str = ""
    started_at: datetime = field(default_factory=_now)

    variables: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    checkpoints: dict[str, datetime] = field(default_factory=dict)
    errors: list[ExecutionError] = field(default_factory=list)
    loop_stack: list[LoopFrame] = field(default_factory=list)

    def record_checkpoint(self, node_id: str) -> None:
        # Re-recording moves the node to the end so last_checkpoint stays accurate
        self.checkpoints.pop(node_id, None)
        self.checkpoints[node_id] = _now()

    def record_output(self, node_id: str, result: Any) -> None:
        self.outputs[node_id] = result

    def record_error(self, node_id: str, exc: BaseException) -> ExecutionError:
        error = ExecutionError(
            node_id=node_id,
            message=str(exc),
            error_type=type(exc).__name__,
            transient=bool(getattr(exc, "transient", False)),
        )
        self.errors.append(error)
        return error

    def push_loop(self, node_id: str, max_iterations: int) -> LoopFrame:
        frame = LoopFrame(node_id=node_id, iteration=0, max_iterations=max_iterations)
        self.loop_stack.append(frame)
        return frame

    def pop_loop(self) -> LoopFrame | None:
        return self.loop_stack.pop() if self.loop_stack else None

    @property
    def loop_depth(self) -> int:
        return len(self.loop_stack)

    @property
    def last_checkpoint(self) -> str | None:
        """Id of the most recently entered node."""
        return next(reversed(self.checkpoints), None)

    @property
    def nodes_executed(self) -> int:
        """Number of distinct nodes entered during the run."""
        return len(self.checkpoints)
