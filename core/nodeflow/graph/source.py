"""Workflow sources - where sub-workflow nodes load stored workflows from."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from nodeflow.graph.node import WorkflowDefinition


@runtime_checkable
class WorkflowSource(Protocol):
    """Looks up stored workflows by id."""

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        ...


class InMemoryWorkflowSource:
    """WorkflowSource backed by a dict."""

    def __init__(self, workflows: list[WorkflowDefinition | dict[str, Any]] | None = None):
        self._workflows: dict[str, WorkflowDefinition] = {}
        for workflow in workflows or []:
            self.add(workflow)

    def add(self, workflow: WorkflowDefinition | dict[str, Any]) -> WorkflowDefinition:
        if not isinstance(workflow, WorkflowDefinition):
            workflow = WorkflowDefinition.model_validate(workflow)
        self._workflows[workflow.id] = workflow
        return workflow

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        return self._workflows.get(workflow_id)
