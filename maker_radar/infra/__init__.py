"""Infra layer utilities (record store backends)."""

from .storage import MemoryRecordStore, RecordStore, SQLiteManager, SQLiteRecordStore, StoreError

__all__ = ["MemoryRecordStore", "RecordStore", "SQLiteManager", "SQLiteRecordStore", "StoreError"]
