"""
Nodeflow - execute node/edge workflow graphs against real services.

A workflow is a directed graph of typed nodes (triggers, actions, logic, AI
calls). The WorkflowEngine walks it depth-first from the trigger, runs each
node's handler, passes results from parent to child, honours branching,
switching, looping and error-handler recovery, and isolates failing
external services behind per-resource circuit breakers.

Quick start:
    from nodeflow import WorkflowEngine

    engine = WorkflowEngine()
    result = await engine.execute(
        nodes=[
            {"id": "t", "type": "trigger_manual"},
            {"id": "check", "type": "if_else",
             "config": {"condition": 5, "operator": "greater_than", "compareTo": 3}},
            {"id": "yes", "type": "data_transform", "branch": "true",
             "config": {"transformation": "uppercase"}},
        ],
        edges=[{"source": "t", "target": "check"}, {"source": "check", "target": "yes"}],
    )
"""

from nodeflow.config import EngineConfig
from nodeflow.errors import (
    CircuitOpenError,
    CircularDependencyError,
    ConfigValidationError,
    HandlerError,
    LoopDepthExceeded,
    NodeflowError,
    NoTriggerError,
    StructuralError,
    WorkflowFailure,
)
from nodeflow.graph import (
    Edge,
    ExecutionResult,
    GraphBuilder,
    Node,
    NodeRegistry,
    NodeType,
    WorkflowEngine,
)
from nodeflow.resilience import CircuitBreaker, CircuitBreakerRegistry, CircuitState

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "WorkflowEngine",
    "ExecutionResult",
    "GraphBuilder",
    "NodeRegistry",
    "Node",
    "Edge",
    "NodeType",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "NodeflowError",
    "StructuralError",
    "NoTriggerError",
    "CircularDependencyError",
    "ConfigValidationError",
    "LoopDepthExceeded",
    "HandlerError",
    "CircuitOpenError",
    "WorkflowFailure",
]
