"""RunRecorder: writes run state and run logs through a RunSink.

Injected into WorkflowEngine. The engine calls start_run() once, log()
per node event and finish_run()/fail_run() at the end.

Safety: every sink call is wrapped and failures are logged via the Python
logger. A broken sink must never kill a run. When the sink cannot create a
run, a local run id is generated so logging still has something to key on.

Usage::

    recorder = RunRecorder(FileRunSink(Path(work_dir)))
    run_id = await recorder.start_run("wf-1", "user-1", {"x": 1})
    await recorder.log("node-a", "info", "Executing node")
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from nodeflow.runtime.run_schemas import RunStatus
from nodeflow.runtime.run_sink import RunSink

logger = logging.getLogger(__name__)


class RunRecorder:
    """Records one run at a time through an optional sink."""

    def __init__(self, sink: RunSink | None = None) -> None:
        self._sink = sink
        self._run_id = ""

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def sink(self) -> RunSink | None:
        return self._sink

    async def start_run(self, workflow_id: str, user_id: str, trigger_input: Any) -> str:
        """Create the run record and return the run id."""
        run_id = ""
        if self._sink is not None:
            try:
                run_id = await self._sink.create_run(workflow_id, user_id, trigger_input)
            except Exception:
                logger.exception("Failed to create run record (non-fatal)")
        if not run_id:
            ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
            run_id = f"{ts}_{uuid.uuid4().hex[:8]}"
        self._run_id = run_id
        return run_id

    async def log(
        self,
        node_id: str | None,
        level: str,
        message: str,
        data: Any = None,
    ) -> None:
        if self._sink is None or not self._run_id:
            return
        try:
            await self._sink.append_log(self._run_id, node_id, level, message, data)
        except Exception:
            logger.exception(f"Failed to append run log for {self._run_id} (non-fatal)")

    async def finish_run(self, outputs: dict[str, Any], metadata: dict[str, Any]) -> None:
        await self._update(
            {
                "status": RunStatus.COMPLETED,
                "completed_at": datetime.now(UTC),
                "execution_data": {**outputs, "_metadata": metadata},
            }
        )

    async def fail_run(
        self,
        error_message: str,
        errors: list[dict[str, Any]],
        last_successful_node: str | None,
    ) -> None:
        await self._update(
            {
                "status": RunStatus.FAILED,
                "completed_at": datetime.now(UTC),
                "error_message": error_message,
                "execution_data": {
                    "errors": errors,
                    "lastSuccessfulNode": last_successful_node,
                },
            }
        )

    async def _update(self, patch: dict[str, Any]) -> None:
        if self._sink is None or not self._run_id:
            return
        try:
            await self._sink.update_run(self._run_id, patch)
        except Exception:
            logger.exception(f"Failed to update run {self._run_id} (non-fatal)")
