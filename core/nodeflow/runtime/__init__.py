"""Run records, persistence sinks and the recorder the engine writes through."""

from nodeflow.runtime.run_recorder import RunRecorder
from nodeflow.runtime.run_schemas import LogLevel, RunLogEntry, RunRecord, RunStatus
from nodeflow.runtime.run_sink import InMemoryRunSink, RunSink
from nodeflow.runtime.run_store import FileRunSink

__all__ = [
    "FileRunSink",
    "InMemoryRunSink",
    "LogLevel",
    "RunLogEntry",
    "RunRecord",
    "RunRecorder",
    "RunSink",
    "RunStatus",
]
