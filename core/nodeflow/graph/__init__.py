"""Graph structures: Nodes, Edges, the builder, the registry and the engine."""

from nodeflow.graph.builder import ExecutionGraph, GraphBuilder, GraphDiagnostics
from nodeflow.graph.conditions import evaluate_condition
from nodeflow.graph.context import ExecutionContext, ExecutionError, LoopFrame
from nodeflow.graph.executor import ExecutionResult, WorkflowEngine
from nodeflow.graph.node import Edge, FlowClass, Node, NodeType, WorkflowDefinition
from nodeflow.graph.registry import NodeRegistry, RegisteredHandler
from nodeflow.graph.source import InMemoryWorkflowSource, WorkflowSource
from nodeflow.graph.validator import ConfigValidator, ValidationResult

__all__ = [
    # Model
    "Node",
    "Edge",
    "NodeType",
    "FlowClass",
    "WorkflowDefinition",
    # Builder
    "GraphBuilder",
    "ExecutionGraph",
    "GraphDiagnostics",
    # Registry
    "NodeRegistry",
    "RegisteredHandler",
    # Context
    "ExecutionContext",
    "ExecutionError",
    "LoopFrame",
    # Validation
    "ConfigValidator",
    "ValidationResult",
    "evaluate_condition",
    # Sources
    "WorkflowSource",
    "InMemoryWorkflowSource",
    # Engine
    "WorkflowEngine",
    "ExecutionResult",
]
