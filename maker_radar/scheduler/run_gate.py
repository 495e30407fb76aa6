"""Interval based run gate persisted as per-job marks in the record store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable

import structlog

from ..infra.storage import RecordStore, StoreError

SCHEDULE_PREFIX = "schedule:"
HEALTH_PROBE_KEY = f"{SCHEDULE_PREFIX}health_test"


def schedule_key(job_name: str) -> str:
    return f"{SCHEDULE_PREFIX}{job_name}"


def _parse_timestamp(value: Any) -> datetime:
    stamp = datetime.fromisoformat(str(value))
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


def _format_hours(hours: float) -> str:
    return f"{hours:g}"


@dataclass(slots=True)
class ScheduleMark:
    """Last recorded run of a job."""

    job_name: str
    timestamp: datetime
    results: dict[str, Any] = field(default_factory=dict)
    recorded_at: datetime | None = None

    def to_store(self) -> dict[str, Any]:
        return {
            "jobName": self.job_name,
            "timestamp": self.timestamp.isoformat(),
            "results": self.results,
            "recordedAt": (self.recorded_at or self.timestamp).isoformat(),
        }

    @classmethod
    def from_store(cls, payload: Any) -> "ScheduleMark":
        if not isinstance(payload, dict) or not payload.get("timestamp"):
            raise ValueError("Malformed schedule mark")
        recorded = payload.get("recordedAt")
        return cls(
            job_name=str(payload.get("jobName") or ""),
            timestamp=_parse_timestamp(payload["timestamp"]),
            results=dict(payload.get("results") or {}),
            recorded_at=_parse_timestamp(recorded) if recorded else None,
        )


@dataclass(slots=True)
class ScheduleDecision:
    should_run: bool
    reason: str
    last_run: ScheduleMark | None = None
    elapsed: timedelta | None = None
    next_run_allowed: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_run": self.should_run,
            "reason": self.reason,
            "last_run": self.last_run.to_store() if self.last_run else None,
            "hours_since_last_run": (
                round(self.elapsed.total_seconds() / 3600, 2) if self.elapsed is not None else None
            ),
            "next_run_allowed": self.next_run_allowed.isoformat() if self.next_run_allowed else None,
            "error": self.error,
        }


@dataclass
class ScheduleCleanupReport:
    checked: int = 0
    removed: int = 0
    kept: int = 0
    errors: list[str] = field(default_factory=list)


class RunGate:
    """Decide whether a named job may run given its last recorded run."""

    def __init__(
        self,
        store: RecordStore,
        default_interval: timedelta = timedelta(hours=0.05),
        clock: Callable[[], datetime] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.default_interval = default_interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or structlog.get_logger("maker_radar.run_gate")
        self._marks: dict[str, ScheduleMark] = {}
        self._lock = Lock()

    # ------------------------------------------------------------------
    def should_run(self, job_name: str, interval: timedelta | None = None) -> ScheduleDecision:
        interval = self.default_interval if interval is None else interval
        hours = interval.total_seconds() / 3600
        now = self._clock()
        try:
            mark = self._load_mark(job_name)
        except (StoreError, ValueError) as exc:
            # Fail open: a broken gate must not stop ingestion.
            self.logger.error("schedule_check_failed", job=job_name, error=str(exc))
            return ScheduleDecision(
                should_run=True,
                reason="Error checking schedule, allowing run",
                error=str(exc),
            )

        if mark is None:
            return ScheduleDecision(
                should_run=True, reason="Job has never been run", next_run_allowed=now
            )

        elapsed = now - mark.timestamp
        if elapsed >= interval:
            return ScheduleDecision(
                should_run=True,
                reason=f"Interval of {_format_hours(hours)} hours has passed",
                last_run=mark,
                elapsed=elapsed,
                next_run_allowed=now,
            )
        remaining_minutes = round((interval - elapsed).total_seconds() / 60)
        return ScheduleDecision(
            should_run=False,
            reason=f"Job ran too recently. Next run allowed in {remaining_minutes} minutes",
            last_run=mark,
            elapsed=elapsed,
            next_run_allowed=mark.timestamp + interval,
        )

    def record_run(self, job_name: str, results: dict[str, Any] | None = None) -> bool:
        now = self._clock()
        mark = ScheduleMark(job_name=job_name, timestamp=now, results=results or {}, recorded_at=now)
        try:
            self.store.set(schedule_key(job_name), mark.to_store())
        except StoreError as exc:
            self.logger.error("schedule_record_failed", job=job_name, error=str(exc))
            return False
        with self._lock:
            self._marks[job_name] = mark
        self.logger.info("job_run_recorded", job=job_name, timestamp=now.isoformat())
        return True

    def last_run(self, job_name: str) -> ScheduleMark | None:
        try:
            return self._load_mark(job_name)
        except (StoreError, ValueError) as exc:
            self.logger.error("schedule_read_failed", job=job_name, error=str(exc))
            return None

    def force_runnable(self, job_name: str) -> bool:
        try:
            self.store.delete(schedule_key(job_name))
        except StoreError as exc:
            self.logger.error("schedule_force_failed", job=job_name, error=str(exc))
            return False
        with self._lock:
            self._marks.pop(job_name, None)
        self.logger.info("job_forced_runnable", job=job_name)
        return True

    def job_names(self) -> list[str]:
        try:
            keys = self.store.list_keys(f"{SCHEDULE_PREFIX}*")
        except StoreError as exc:
            self.logger.error("schedule_list_failed", error=str(exc))
            return []
        return [key[len(SCHEDULE_PREFIX):] for key in keys]

    def cleanup_old(self, days_to_keep: int = 30) -> ScheduleCleanupReport:
        report = ScheduleCleanupReport()
        cutoff = self._clock() - timedelta(days=days_to_keep)
        try:
            keys = self.store.list_keys(f"{SCHEDULE_PREFIX}*")
        except StoreError as exc:
            report.errors.append(f"Failed to cleanup schedules: {exc}")
            return report
        report.checked = len(keys)
        for key in keys:
            job_name = key[len(SCHEDULE_PREFIX):]
            try:
                try:
                    mark = ScheduleMark.from_store(self.store.get(key))
                except ValueError:
                    mark = None
                if mark is None or mark.timestamp < cutoff:
                    self.store.delete(key)
                    with self._lock:
                        self._marks.pop(job_name, None)
                    report.removed += 1
                else:
                    report.kept += 1
            except StoreError as exc:
                report.errors.append(f"Failed to process {key}: {exc}")
        self.logger.info("schedule_cleanup", removed=report.removed, kept=report.kept)
        return report

    def status(self) -> dict[str, Any]:
        status: dict[str, Any] = {
            "jobs": {},
            "settings": {
                "default_interval_hours": self.default_interval.total_seconds() / 3600,
                "in_memory_marks": len(self._marks),
            },
        }
        for job_name in self.job_names():
            status["jobs"][job_name] = self.should_run(job_name).to_dict()
        return status

    def health_check(self) -> dict[str, Any]:
        health: dict[str, Any] = {
            "healthy": True,
            "timestamp": self._clock().isoformat(),
            "checks": {},
        }
        try:
            self.store.set(HEALTH_PROBE_KEY, {"test": True, "timestamp": self._clock().isoformat()})
            retrieved = self.store.get(HEALTH_PROBE_KEY)
            self.store.delete(HEALTH_PROBE_KEY)
        except StoreError as exc:
            health["healthy"] = False
            health["checks"]["store"] = {"status": "error", "message": str(exc)}
        else:
            ok = retrieved is not None
            health["healthy"] = ok
            health["checks"]["store"] = {
                "status": "healthy" if ok else "error",
                "message": "Store read/write successful" if ok else "Store read/write failed",
            }
        health["checks"]["cache"] = {"status": "healthy", "size": len(self._marks)}
        return health

    # ------------------------------------------------------------------
    def _load_mark(self, job_name: str) -> ScheduleMark | None:
        with self._lock:
            cached = self._marks.get(job_name)
        if cached is not None:
            return cached
        payload = self.store.get(schedule_key(job_name))
        if payload is None:
            return None
        mark = ScheduleMark.from_store(payload)
        with self._lock:
            self._marks[job_name] = mark
        return mark


__all__ = [
    "RunGate",
    "ScheduleCleanupReport",
    "ScheduleDecision",
    "ScheduleMark",
    "SCHEDULE_PREFIX",
    "schedule_key",
]
