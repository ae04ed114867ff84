"""Execution layer — live and simulated contract execution, event sinks."""

from __future__ import annotations

from derivbot.execution.audit import AuditLogger
from derivbot.execution.events import LoggingEventSink
from derivbot.execution.live import LiveExecutor
from derivbot.execution.simulator import SimulatedExecutor

__all__ = [
    "AuditLogger",
    "LiveExecutor",
    "LoggingEventSink",
    "SimulatedExecutor",
]
