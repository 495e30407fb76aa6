"""Deduplication index and record repository on top of the key-value store."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock
from typing import Any, Iterable

import structlog
from pydantic import ValidationError

from ..infra.storage import RecordStore
from ..records import Record, RecordStatus, utcnow
from .normalizer import NormalizedEntry, same_link

RECORD_PREFIX = "record:"
RECORD_LIST_KEY = "record:list"


class RecordNotFoundError(LookupError):
    """Raised when an update targets a record id that does not exist."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


@dataclass(slots=True)
class Admission:
    """Outcome of admitting one normalized entry."""

    record: Record
    created: bool

    @property
    def rejected(self) -> bool:
        return not self.created and self.record.status is RecordStatus.REJECTED


def record_key(record_id: str) -> str:
    return f"{RECORD_PREFIX}{record_id}"


class DeduplicationIndex:
    """Admit records by normalized link and expose record level helpers."""

    def __init__(self, store: RecordStore, logger: structlog.BoundLogger | None = None) -> None:
        self.store = store
        self.logger = logger or structlog.get_logger("maker_radar.dedup")
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def admit(self, entry: NormalizedEntry) -> Admission:
        with self._lock:
            existing = self.find_by_link(entry.source_link)
            if existing is not None:
                if existing.status is RecordStatus.REJECTED:
                    self.logger.info(
                        "admission_skipped_rejected", record_id=existing.id, link=entry.source_link
                    )
                else:
                    self.logger.debug("admission_duplicate", record_id=existing.id, link=entry.source_link)
                return Admission(record=existing, created=False)

            now = utcnow()
            record = Record(
                source_link=entry.source_link,
                original_link=entry.original_link,
                name=entry.name,
                description=entry.description,
                category=entry.category,
                maker_name=entry.maker_name,
                published_at=entry.published_at,
                created_at=now,
                updated_at=now,
            )
            self.store.set(record_key(record.id), record.to_store())
            ids = self.record_ids()
            if record.id not in ids:
                ids.append(record.id)
                self.store.set(RECORD_LIST_KEY, ids)
            self.logger.info(
                "record_created", record_id=record.id, name=record.name, category=record.category
            )
            return Admission(record=record, created=True)

    def find_by_link(self, link: str) -> Record | None:
        if not link:
            return None
        for record in self._iter_records():
            if same_link(record.source_link, link):
                return record
        return None

    # ------------------------------------------------------------------
    # Repository helpers
    # ------------------------------------------------------------------
    def record_ids(self) -> list[str]:
        ids = self.store.get(RECORD_LIST_KEY)
        return list(ids) if isinstance(ids, list) else []

    def get(self, record_id: str) -> Record | None:
        payload = self.store.get(record_key(record_id))
        if not payload:
            return None
        return Record.from_store(payload)

    def require(self, record_id: str) -> Record:
        record = self.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def save(self, record: Record) -> Record:
        self.store.set(record_key(record.id), record.to_store())
        return record

    def update_fields(self, record_id: str, **fields: Any) -> Record:
        """Read-modify-write ``fields`` onto a stored record."""

        record = self.require(record_id).with_fields(**fields)
        return self.save(record)

    def set_status(self, record_id: str, status: RecordStatus) -> Record:
        now = utcnow()
        fields: dict[str, Any] = {"status": status, "updated_at": now}
        if status is RecordStatus.APPROVED:
            fields["approved_at"] = now
        elif status is RecordStatus.REJECTED:
            fields["rejected_at"] = now
        record = self.update_fields(record_id, **fields)
        self.logger.info("record_status_changed", record_id=record_id, status=status.value)
        return record

    def mark_synced(self, record_id: str, synced: bool) -> Record:
        fields: dict[str, Any] = {"synced_to_sink": synced}
        if synced:
            fields["synced_at"] = utcnow()
        return self.update_fields(record_id, **fields)

    def all_records(self) -> list[Record]:
        records = list(self._iter_records())
        return sorted(records, key=lambda record: record.published_at, reverse=True)

    def records_by_status(self, status: RecordStatus) -> list[Record]:
        return [record for record in self.all_records() if record.status is status]

    def records_by_category(self, category: str) -> list[Record]:
        return [record for record in self.all_records() if record.category == category]

    def adjust_upvotes(self, record_id: str, delta: int) -> Record:
        """Add ``delta`` to the local upvote count, never dropping below zero."""

        with self._lock:
            record = self.require(record_id)
            return self.save(record.with_fields(upvotes=max(0, record.upvotes + delta)))

    def records_needing_profile(self) -> list[Record]:
        return [
            record
            for record in self.all_records()
            if record.status is RecordStatus.PENDING
            and record.profile_url is None
            and record.maker_name
        ]

    def approved_needing_sync(self) -> list[Record]:
        return [
            record
            for record in self.all_records()
            if record.status is RecordStatus.APPROVED and not record.synced_to_sink
        ]

    def stats(self) -> dict[str, Any]:
        records = self.all_records()
        by_status = Counter(record.status.value for record in records)
        by_category = Counter(record.category or "uncategorised" for record in records)
        return {
            "total_records": len(records),
            "profiles_found": sum(1 for record in records if record.profile_url),
            "total_upvotes": sum(record.upvotes for record in records),
            "needing_profile": len(
                [
                    record
                    for record in records
                    if record.status is RecordStatus.PENDING
                    and record.profile_url is None
                    and record.maker_name
                ]
            ),
            "detail_enriched": sum(1 for record in records if record.detail_enriched_at),
            "approved": by_status.get(RecordStatus.APPROVED.value, 0),
            "synced_to_sink": sum(1 for record in records if record.synced_to_sink),
            "needing_sync": sum(
                1
                for record in records
                if record.status is RecordStatus.APPROVED and not record.synced_to_sink
            ),
            "by_status": dict(by_status),
            "by_category": dict(by_category),
        }

    def _iter_records(self) -> Iterable[Record]:
        for record_id in self.record_ids():
            try:
                record = self.get(record_id)
            except ValidationError as exc:
                self.logger.warning("record_unreadable", record_id=record_id, error=str(exc))
                continue
            if record is not None:
                yield record


__all__ = [
    "Admission",
    "DeduplicationIndex",
    "RECORD_LIST_KEY",
    "RECORD_PREFIX",
    "RecordNotFoundError",
    "record_key",
]
