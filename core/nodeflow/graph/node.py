"""
Node and Edge models - the static shape of a workflow.

A workflow is a set of typed nodes joined by directed edges. Each node
carries a type tag that selects its handler, a free-form config dict, and
optional branch/case tags that parent control-flow nodes use to pick which
child to enter.

Nodes arrive either flat::

    {"id": "n1", "type": "http_request", "config": {"url": "..."}}

or in the authoring tool's nested shape::

    {"id": "n1", "data": {"type": "http_request", "label": "Fetch", "config": {...}}}

Both are normalised into the same immutable Node.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class NodeType(StrEnum):
    """Built-in node type tags."""

    # Triggers
    TRIGGER_MANUAL = "trigger_manual"
    TRIGGER_SCHEDULE = "trigger_schedule"
    TRIGGER_WEBHOOK = "trigger_webhook"
    TRIGGER_HEALTH = "trigger_health"
    TRIGGER_FORM = "trigger_form"
    TRIGGER_CHAT = "trigger_chat"
    TRIGGER_ERROR = "trigger_error"

    # Logic and control flow
    IF_ELSE = "if_else"
    SWITCH = "switch"
    LOOP = "loop"
    WAIT = "wait"
    DELAY = "delay"
    FILTER = "filter"
    CODE_MERGE = "code_merge"
    CODE_SPLIT = "code_split"
    SUB_WORKFLOW = "sub_workflow"
    ERROR_HANDLER = "error_handler"

    # Data
    JSON_PARSE = "json_parse"
    DATA_TRANSFORM = "data_transform"

    # Integrations
    HTTP_REQUEST = "http_request"
    DISCORD_SEND = "discord_send"
    SLACK_SEND = "slack_send"
    TELEGRAM_SEND = "telegram_send"
    AI_CHATGPT = "ai_chatgpt"
    AI_CLAUDE = "ai_claude"
    AI_GEMINI = "ai_gemini"


class FlowClass(StrEnum):
    """How the engine chooses which children of a node to visit."""

    SEQUENTIAL = "sequential"  # All children, in edge order
    BRANCH = "branch"  # The child tagged with the condition outcome
    SWITCH = "switch"  # The child tagged with the matched case
    LOOP = "loop"  # All children, once per iteration


class Node(BaseModel):
    """A single step of a workflow."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    label: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    branch: str | None = Field(default=None, description="Branch tag under an if_else parent")
    case: str | None = Field(default=None, description="Case tag under a switch parent")

    @model_validator(mode="before")
    @classmethod
    def _flatten_data(cls, value: Any) -> Any:
        """Lift fields out of the authoring tool's nested ``data`` block."""
        if not isinstance(value, dict) or "data" not in value:
            return value
        data = value.get("data") or {}
        flat = {k: v for k, v in value.items() if k != "data"}
        for key in ("type", "label", "config", "branch", "case"):
            if key not in flat and data.get(key) is not None:
                flat[key] = data[key]
        return flat


class Edge(BaseModel):
    """A directed connection from one node to another."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    id: str | None = None


class WorkflowDefinition(BaseModel):
    """A stored workflow: what a sub-workflow node loads and runs."""

    id: str
    name: str = ""
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    model_config = {"extra": "allow"}
