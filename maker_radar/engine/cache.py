"""Two-tier enrichment cache: a bounded in-process map backed by the record store."""

from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable

import structlog

from ..infra.storage import RecordStore, StoreError

KEY_MAX_LENGTH = 50
_NON_KEY_CHARS = re.compile(r"[^\w\s\-.]")
_WHITESPACE = re.compile(r"\s+")


def clean_key(text: str) -> str:
    """Derive a cache key so cosmetically different inputs collide."""

    lowered = _NON_KEY_CHARS.sub("", (text or "").lower()).strip()
    return _WHITESPACE.sub("_", lowered)[:KEY_MAX_LENGTH]


@dataclass(slots=True)
class CacheEntry:
    key: str
    payload: Any
    timestamp: datetime
    ttl_seconds: float | None = None

    def to_store(self) -> dict[str, Any]:
        return {
            "data": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "ttl_seconds": self.ttl_seconds,
        }

    @classmethod
    def from_store(cls, key: str, payload: Any) -> "CacheEntry":
        """Rebuild an entry; raises ``ValueError`` on malformed payloads."""

        if not isinstance(payload, dict) or "timestamp" not in payload:
            raise ValueError(f"Malformed cache entry for {key}")
        timestamp = datetime.fromisoformat(str(payload["timestamp"]))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        ttl = payload.get("ttl_seconds")
        return cls(
            key=key,
            payload=payload.get("data"),
            timestamp=timestamp,
            ttl_seconds=float(ttl) if ttl is not None else None,
        )


@dataclass
class InvalidationReport:
    memory_cleared: int = 0
    store_cleared: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class CleanupReport:
    checked: int = 0
    removed: int = 0
    kept: int = 0
    errors: list[str] = field(default_factory=list)


class EnrichmentCache:
    """Read-through, write-through cache for external lookups.

    ``get`` returns a ``CacheEntry`` (whose payload may be ``None`` for a cached
    negative result) or ``None`` when nothing valid is cached. Expiry is
    evaluated against each entry's own TTL, falling back to ``default_ttl``.
    The volatile tier evicts by insertion order once ``max_in_memory`` is hit.
    """

    def __init__(
        self,
        store: RecordStore,
        default_ttl: timedelta = timedelta(hours=24),
        max_in_memory: int = 1000,
        clock: Callable[[], datetime] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.default_ttl = default_ttl
        self.max_in_memory = max_in_memory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or structlog.get_logger("maker_radar.cache")
        self._memory: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = Lock()

    # ------------------------------------------------------------------
    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            cached = self._memory.get(key)
            if cached is not None:
                if not self.is_expired(cached):
                    self.logger.debug("cache_memory_hit", key=key)
                    return cached
                del self._memory[key]

        try:
            stored = self.store.get(key)
        except StoreError as exc:
            self.logger.error("cache_read_failed", key=key, error=str(exc))
            return None
        if stored is None:
            return None
        try:
            entry = CacheEntry.from_store(key, stored)
        except ValueError:
            self._delete_from_store(key)
            return None
        if self.is_expired(entry):
            self._delete_from_store(key)
            return None
        self.logger.debug("cache_store_hit", key=key)
        with self._lock:
            self._remember(entry)
        return entry

    def set(self, key: str, payload: Any, ttl: timedelta | None = None) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            payload=payload,
            timestamp=self._clock(),
            ttl_seconds=(ttl if ttl is not None else self.default_ttl).total_seconds(),
        )
        with self._lock:
            self._remember(entry)
        try:
            self.store.set(key, entry.to_store())
        except StoreError as exc:
            self.logger.error("cache_write_failed", key=key, error=str(exc))
        else:
            self.logger.debug("cache_set", key=key, negative=payload is None)
        return entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._memory.pop(key, None)
        self._delete_from_store(key)

    def is_expired(self, entry: CacheEntry) -> bool:
        ttl = (
            timedelta(seconds=entry.ttl_seconds)
            if entry.ttl_seconds is not None
            else self.default_ttl
        )
        return self._clock() - entry.timestamp > ttl

    # ------------------------------------------------------------------
    # Sweeps and observability
    # ------------------------------------------------------------------
    def memory_keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [key for key in self._memory if key.startswith(prefix)]

    def keys(self, prefix: str = "") -> list[str]:
        store_keys = self.store.list_keys(f"{prefix}*")
        merged = dict.fromkeys(self.memory_keys(prefix))
        merged.update(dict.fromkeys(store_keys))
        return list(merged)

    def invalidate_by_prefix(self, prefix: str) -> InvalidationReport:
        report = InvalidationReport()
        with self._lock:
            doomed = [key for key in self._memory if key.startswith(prefix)]
            for key in doomed:
                del self._memory[key]
            report.memory_cleared = len(doomed)
        try:
            keys = self.store.list_keys(f"{prefix}*")
        except StoreError as exc:
            report.errors.append(f"Failed to list {prefix}*: {exc}")
            return report
        for key in keys:
            try:
                if self.store.delete(key):
                    report.store_cleared += 1
            except StoreError as exc:
                report.errors.append(f"Failed to delete {key}: {exc}")
        self.logger.info(
            "cache_invalidated",
            prefix=prefix,
            memory_cleared=report.memory_cleared,
            store_cleared=report.store_cleared,
        )
        return report

    def cleanup_expired(self, prefix: str = "") -> CleanupReport:
        report = CleanupReport()
        with self._lock:
            for key in [k for k, v in self._memory.items() if k.startswith(prefix) and self.is_expired(v)]:
                del self._memory[key]
        try:
            keys = self.store.list_keys(f"{prefix}*")
        except StoreError as exc:
            report.errors.append(f"Failed to list {prefix}*: {exc}")
            return report
        report.checked = len(keys)
        for key in keys:
            try:
                stored = self.store.get(key)
                try:
                    entry = CacheEntry.from_store(key, stored) if stored is not None else None
                except ValueError:
                    entry = None
                if entry is None or self.is_expired(entry):
                    self.store.delete(key)
                    with self._lock:
                        self._memory.pop(key, None)
                    report.removed += 1
                else:
                    report.kept += 1
            except StoreError as exc:
                report.errors.append(f"Failed to process {key}: {exc}")
        self.logger.info(
            "cache_cleanup", prefix=prefix, checked=report.checked, removed=report.removed
        )
        return report

    def stats(self, prefix: str = "") -> dict[str, Any]:
        stats: dict[str, Any] = {
            "in_memory": {"size": len(self.memory_keys(prefix)), "max_size": self.max_in_memory},
            "store": {"total_entries": 0, "valid_entries": 0, "expired_entries": 0},
            "settings": {
                "expiry_hours": self.default_ttl.total_seconds() / 3600,
                "max_in_memory_size": self.max_in_memory,
            },
        }
        try:
            keys = self.store.list_keys(f"{prefix}*")
        except StoreError as exc:
            stats["error"] = str(exc)
            return stats
        stats["store"]["total_entries"] = len(keys)
        for key in keys:
            try:
                entry = CacheEntry.from_store(key, self.store.get(key))
            except (StoreError, ValueError):
                stats["store"]["expired_entries"] += 1
                continue
            bucket = "expired_entries" if self.is_expired(entry) else "valid_entries"
            stats["store"][bucket] += 1
        return stats

    def entries(self, prefix: str = "") -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for key in self.store.list_keys(f"{prefix}*"):
            try:
                entry = CacheEntry.from_store(key, self.store.get(key))
            except (StoreError, ValueError) as exc:
                rows.append({"key": key, "error": str(exc)})
                continue
            rows.append(
                {
                    "key": key,
                    "data": entry.payload,
                    "timestamp": entry.timestamp.isoformat(),
                    "expired": self.is_expired(entry),
                }
            )
        return rows

    # ------------------------------------------------------------------
    def _remember(self, entry: CacheEntry) -> None:
        if entry.key in self._memory:
            del self._memory[entry.key]
        elif len(self._memory) >= self.max_in_memory:
            self._memory.popitem(last=False)
        self._memory[entry.key] = entry

    def _delete_from_store(self, key: str) -> None:
        try:
            self.store.delete(key)
        except StoreError as exc:
            self.logger.error("cache_delete_failed", key=key, error=str(exc))


__all__ = [
    "CacheEntry",
    "CleanupReport",
    "EnrichmentCache",
    "InvalidationReport",
    "clean_key",
]
