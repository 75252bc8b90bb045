"""
Error taxonomy for workflow execution.

Structural errors are raised before any node runs. Node-level errors are
recorded in the execution context and may be recovered by an error-handler
node wired directly to the failing node. A run that ends with an unrecovered
error raises WorkflowFailure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from nodeflow.graph.context import ExecutionError


class NodeflowError(Exception):
    """Base class for all nodeflow errors."""


# ---------------------------------------------------------------------------
# Structural errors (bad graph, fatal before execution)
# ---------------------------------------------------------------------------


class StructuralError(NodeflowError):
    """The workflow graph is malformed and cannot be executed."""


class NoTriggerError(StructuralError):
    """The workflow has no trigger node to start from."""

    def __init__(self, message: str = "Workflow must have at least one trigger node"):
        super().__init__(message)


class CircularDependencyError(StructuralError):
    """The workflow graph contains a directed cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Workflow contains circular dependency: {' -> '.join(cycle)}")


# ---------------------------------------------------------------------------
# Node-level errors
# ---------------------------------------------------------------------------


class NodeExecutionError(NodeflowError):
    """An error attributed to a specific node."""

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(message)


class ConfigValidationError(NodeExecutionError):
    """A node is missing a required configuration field."""

    def __init__(self, node_id: str, errors: list[str]):
        self.errors = errors
        super().__init__(node_id, "; ".join(errors))


class LoopDepthExceeded(NodeExecutionError):
    """Loop nesting would exceed the configured maximum."""

    def __init__(self, node_id: str, max_depth: int):
        self.max_depth = max_depth
        super().__init__(
            node_id, f"Maximum loop depth of {max_depth} exceeded for node {node_id}"
        )


class HandlerError(NodeflowError):
    """A node handler's underlying call failed."""

    transient = False


class CircuitOpenError(HandlerError):
    """The circuit breaker for a resource is open; the call was not attempted."""

    transient = True

    def __init__(self, resource_key: str, retry_after: float = 0.0):
        self.resource_key = resource_key
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker for '{resource_key}' is OPEN "
            f"(retry in {retry_after:.1f}s)"
        )


class SubWorkflowError(HandlerError):
    """A sub-workflow could not be loaded or started."""


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialError(NodeflowError):
    """Credentials for an external service are unavailable."""


class CredentialNotFoundError(CredentialError):
    """No credentials are configured for the requested service."""

    def __init__(self, service_type: str):
        self.service_type = service_type
        super().__init__(
            f"No active {service_type} credentials found. "
            "Please connect your account in settings."
        )


# ---------------------------------------------------------------------------
# Run-level failure
# ---------------------------------------------------------------------------


class WorkflowFailure(NodeflowError):
    """
    A workflow run ended with an unrecovered error.

    Carries the partial error log and the last node whose checkpoint was
    recorded so callers can analyse where the run stopped. The original
    exception is available as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        execution_id: str = "",
        errors: list[ExecutionError] | None = None,
        last_checkpoint: str | None = None,
        duration_ms: int = 0,
        outputs: dict[str, Any] | None = None,
    ):
        self.execution_id = execution_id
        self.errors = list(errors or [])
        self.last_checkpoint = last_checkpoint
        self.duration_ms = duration_ms
        self.outputs = dict(outputs or {})
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        """True when the unrecovered error was a short-circuited breaker call."""
        return isinstance(self.__cause__, CircuitOpenError)
