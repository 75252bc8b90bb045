"""Persistence sink contract for run records and run logs.

The engine never talks to a database directly; it writes through a RunSink.
InMemoryRunSink keeps everything in dicts and is what tests and embedded
callers use. FileRunSink (run_store.py) writes to disk.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol, runtime_checkable

from nodeflow.runtime.run_schemas import RunLogEntry, RunRecord


@runtime_checkable
class RunSink(Protocol):
    """Where the engine records run state and run logs."""

    async def create_run(self, workflow_id: str, user_id: str, trigger_input: Any) -> str:
        """Create a run record in ``running`` state and return its id."""
        ...

    async def update_run(self, run_id: str, patch: dict[str, Any]) -> None:
        """Merge fields (status, completed_at, execution_data, ...) into a run."""
        ...

    async def append_log(
        self,
        run_id: str,
        node_id: str | None,
        level: str,
        message: str,
        data: Any = None,
    ) -> None:
        """Attach one log entry to a run."""
        ...


class InMemoryRunSink:
    """RunSink that keeps runs and logs in memory."""

    def __init__(self) -> None:
        self.runs: dict[str, RunRecord] = {}
        self.logs: dict[str, list[RunLogEntry]] = {}

    async def create_run(self, workflow_id: str, user_id: str, trigger_input: Any) -> str:
        run_id = uuid.uuid4().hex
        self.runs[run_id] = RunRecord(
            id=run_id,
            workflow_id=workflow_id,
            user_id=user_id,
            trigger_input=trigger_input,
        )
        self.logs[run_id] = []
        return run_id

    async def update_run(self, run_id: str, patch: dict[str, Any]) -> None:
        record = self.runs.get(run_id)
        if record is None:
            raise KeyError(f"Unknown run: {run_id}")
        self.runs[run_id] = record.apply(patch)

    async def append_log(
        self,
        run_id: str,
        node_id: str | None,
        level: str,
        message: str,
        data: Any = None,
    ) -> None:
        entry = RunLogEntry(
            id=uuid.uuid4().hex,
            run_id=run_id,
            node_id=node_id,
            level=level,
            message=message,
            data=data,
        )
        self.logs.setdefault(run_id, []).append(entry)

    def messages(self, run_id: str) -> list[str]:
        """Log messages of a run in order (handy in tests)."""
        return [entry.message for entry in self.logs.get(run_id, [])]
