"""Record model shared by the pipeline, workers and sink reconciler."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

RECORD_SCHEMA_VERSION = 1

# Fields the enrichment workers are allowed to write.
ENRICHMENT_FIELDS = (
    "profile_url",
    "upvotes",
    "day_rank",
    "topics",
    "company_website",
    "company_info",
    "launch_year",
    "accelerator",
    "repository_url",
    "thumbnail_url",
    "detail_enriched_at",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return uuid.uuid4().hex


class RecordStatus(str, Enum):
    """Review lifecycle of a discovered listing."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Record(BaseModel):
    """A discovered listing with every enrichment field present from creation."""

    schema_version: int = RECORD_SCHEMA_VERSION
    id: str = Field(default_factory=new_record_id)
    source_link: str
    original_link: str | None = None
    name: str
    description: str = ""
    category: str | None = None
    maker_name: str | None = None
    published_at: datetime = Field(default_factory=utcnow)
    status: RecordStatus = RecordStatus.PENDING

    profile_url: str | None = None
    upvotes: int = 0
    day_rank: int | None = None
    topics: list[str] = Field(default_factory=list)
    company_website: str | None = None
    company_info: str | None = None
    launch_year: str | None = None
    accelerator: str | None = None
    repository_url: str | None = None
    thumbnail_url: str | None = None
    detail_enriched_at: datetime | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    synced_to_sink: bool = False
    synced_at: datetime | None = None

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_store(cls, payload: dict[str, Any]) -> "Record":
        return cls.model_validate(payload)

    def with_fields(self, **fields: Any) -> "Record":
        """Return a copy with ``fields`` applied and ``updated_at`` bumped."""

        fields.setdefault("updated_at", utcnow())
        return self.model_copy(update=fields)

    def enrichment_snapshot(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in ENRICHMENT_FIELDS}


__all__ = [
    "ENRICHMENT_FIELDS",
    "RECORD_SCHEMA_VERSION",
    "Record",
    "RecordStatus",
    "new_record_id",
    "utcnow",
]
