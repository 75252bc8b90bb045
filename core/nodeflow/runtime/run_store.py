"""File-based storage for workflow runs.

Each run gets its own directory under ``runs/``. No shared index:
``list_runs()`` scans the directory and loads run.json from each run.

Logs use JSONL (one JSON object per line) for append-on-write, so entries
are on disk as soon as they are logged even if the process dies mid-run.

Storage layout::

    {base_path}/
      runs/
        {run_id}/
          run.json     # RunRecord, rewritten atomically on every update
          logs.jsonl   # RunLogEntry, appended per event
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from nodeflow.runtime.run_schemas import RunLogEntry, RunRecord

logger = logging.getLogger(__name__)


class FileRunSink:
    """RunSink persisting runs as JSON and logs as JSONL on local disk."""

    def __init__(self, base_path: Path | str) -> None:
        self._base_path = Path(base_path)
        self._runs_dir = self._base_path / "runs"

    def _run_dir(self, run_id: str) -> Path:
        return self._runs_dir / run_id

    # -------------------------------------------------------------------
    # RunSink
    # -------------------------------------------------------------------

    async def create_run(self, workflow_id: str, user_id: str, trigger_input: Any) -> str:
        ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
        run_id = f"{ts}_{uuid.uuid4().hex[:8]}"
        record = RunRecord(
            id=run_id,
            workflow_id=workflow_id,
            user_id=user_id,
            trigger_input=trigger_input,
        )
        run_dir = self._run_dir(run_id)
        await asyncio.to_thread(run_dir.mkdir, parents=True, exist_ok=True)
        await self._write_json(run_dir / "run.json", record.model_dump(mode="json"))
        return run_id

    async def update_run(self, run_id: str, patch: dict[str, Any]) -> None:
        record = await self.load_run(run_id)
        if record is None:
            raise KeyError(f"Unknown run: {run_id}")
        updated = record.apply(patch)
        await self._write_json(self._run_dir(run_id) / "run.json", updated.model_dump(mode="json"))

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
        path = self._run_dir(run_id) / "logs.jsonl"
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False, default=str) + "\n"

        def _append() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)

        await asyncio.to_thread(_append)

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    async def load_run(self, run_id: str) -> RunRecord | None:
        data = await self._read_json(self._run_dir(run_id) / "run.json")
        return RunRecord.model_validate(data) if data is not None else None

    async def load_logs(self, run_id: str) -> list[RunLogEntry]:
        path = self._run_dir(run_id) / "logs.jsonl"
        return await asyncio.to_thread(_read_jsonl_entries, path)

    async def list_runs(
        self,
        workflow_id: str = "",
        status: str = "",
        limit: int = 20,
    ) -> list[RunRecord]:
        """Load run records, newest first, optionally filtered."""
        run_ids = await asyncio.to_thread(self._scan_run_dirs)
        records: list[RunRecord] = []
        for run_id in run_ids:
            record = await self.load_run(run_id)
            if record is None:
                continue
            if workflow_id and record.workflow_id != workflow_id:
                continue
            if status and record.status != status:
                continue
            records.append(record)

        records.sort(key=lambda r: r.started_at, reverse=True)
        return records[:limit]

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _scan_run_dirs(self) -> list[str]:
        if not self._runs_dir.exists():
            return []
        return [d.name for d in self._runs_dir.iterdir() if d.is_dir()]

    @staticmethod
    async def _write_json(path: Path, data: dict) -> None:
        """Write JSON atomically: write to .tmp then rename."""
        tmp = path.with_suffix(".tmp")
        content = json.dumps(data, indent=2, ensure_ascii=False, default=str)

        def _write() -> None:
            tmp.write_text(content, encoding="utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)

    @staticmethod
    async def _read_json(path: Path) -> dict | None:
        """Read and parse a JSON file. Returns None if missing or corrupt."""

        def _read() -> dict | None:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Failed to read %s: %s", path, e)
                return None

        return await asyncio.to_thread(_read)


def _read_jsonl_entries(path: Path) -> list[RunLogEntry]:
    """Parse logs.jsonl, skipping blank and corrupt lines (partial writes)."""
    entries: list[RunLogEntry] = []
    if not path.exists():
        return entries
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(RunLogEntry.model_validate(json.loads(line)))
            except ValueError as e:
                logger.warning("Skipping corrupt JSONL line in %s: %s", path, e)
    return entries
