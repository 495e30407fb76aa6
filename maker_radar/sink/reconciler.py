"""Reconcile approved records into the tabular sink with duplicate suppression."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

import structlog

from ..engine.normalizer import same_link
from ..records import Record
from .base import SINK_HEADERS, SinkError, SinkUnavailable, TabularSink

UNKNOWN_MAKER = "Unknown"

_MAKER_COLUMN = 1
_NAME_COLUMN = 3
_LINK_COLUMN = 5


@dataclass(slots=True)
class SyncResult:
    synced: bool
    duplicate: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"synced": self.synced, "duplicate": self.duplicate, "error": self.error}


def _cell(row: Sequence[str], index: int) -> str:
    return row[index].strip() if len(row) > index and row[index] else ""


class SinkReconciler:
    """Append approved records once; report failures as values, never raise."""

    def __init__(
        self,
        sink: TabularSink,
        headers: Sequence[str] = SINK_HEADERS,
        clock: Callable[[], datetime] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.sink = sink
        self.headers = tuple(headers)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or structlog.get_logger("maker_radar.sink")
        self._ready = False

    def build_row(self, record: Record) -> list[str]:
        approved = record.approved_at or self._clock()
        return [
            approved.date().isoformat(),
            record.maker_name or UNKNOWN_MAKER,
            record.profile_url or "",
            record.name or "",
            record.category or "",
            record.source_link or "",
        ]

    def is_duplicate(self, rows: Sequence[Sequence[str]], record: Record) -> bool:
        maker = record.maker_name or UNKNOWN_MAKER
        for row in rows:
            if _cell(row, _NAME_COLUMN) == record.name and _cell(row, _MAKER_COLUMN) == maker:
                return True
            if same_link(_cell(row, _LINK_COLUMN), record.source_link):
                return True
        return False

    def add_approved_record(self, record: Record) -> SyncResult:
        try:
            self._ensure_ready()
            rows = self.sink.read_rows()
            if self.is_duplicate(rows, record):
                self.logger.info("sink_duplicate_skipped", record_id=record.id, name=record.name)
                return SyncResult(synced=True, duplicate=True)
            self.sink.append_row(self.build_row(record))
        except SinkUnavailable as exc:
            self.logger.info("sink_unavailable", record_id=record.id, error=str(exc))
            return SyncResult(synced=False, error=str(exc))
        except SinkError as exc:
            self._ready = False
            self.logger.error("sink_sync_failed", record_id=record.id, error=str(exc))
            return SyncResult(synced=False, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            self._ready = False
            self.logger.error("sink_sync_failed", record_id=record.id, error=str(exc))
            return SyncResult(synced=False, error=str(exc))
        self.logger.info("sink_row_appended", record_id=record.id, name=record.name)
        return SyncResult(synced=True)

    def status(self) -> dict[str, Any]:
        status: dict[str, Any] = {"available": False, **self.sink.describe()}
        try:
            self._ensure_ready()
            status["total_rows"] = len(self.sink.read_rows())
            status["available"] = True
        except SinkError as exc:
            status["error"] = str(exc)
        return status

    def _ensure_ready(self) -> None:
        if self._ready:
            return
        if not self.sink.available():
            raise SinkUnavailable(f"{self.sink.name} sink is not configured")
        self.sink.connect()
        self.sink.ensure_header(self.headers)
        self._ready = True


__all__ = ["SyncResult", "SinkReconciler", "UNKNOWN_MAKER"]
