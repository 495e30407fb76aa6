"""Run gate and timer trigger."""

from .apsched_adapter import APSchedulerAdapter
from .run_gate import RunGate, ScheduleCleanupReport, ScheduleDecision, ScheduleMark

__all__ = [
    "APSchedulerAdapter",
    "RunGate",
    "ScheduleCleanupReport",
    "ScheduleDecision",
    "ScheduleMark",
]
