"""Pydantic models for workflow run records and run logs.

RunRecord - one per workflow execution: status, timing, outputs or errors
RunLogEntry - one per engine event: run start/end, node progress, loop iterations
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RunStatus(StrEnum):
    """Status of a workflow run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LogLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class RunRecord(BaseModel):
    """A single workflow execution as seen by the persistence sink."""

    id: str
    workflow_id: str = ""
    user_id: str = ""
    status: RunStatus = RunStatus.RUNNING
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    error_message: str | None = None
    trigger_input: Any = None
    execution_data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}

    def apply(self, patch: dict[str, Any]) -> RunRecord:
        """Return a copy with the patch fields merged in."""
        return self.model_validate({**self.model_dump(), **patch})


class RunLogEntry(BaseModel):
    """One log line attached to a run."""

    id: str
    run_id: str
    node_id: str | None = None
    level: str = LogLevel.INFO
    message: str
    data: Any = None
    timestamp: datetime = Field(default_factory=_utcnow)
