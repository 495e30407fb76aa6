"""Pipeline orchestrator wiring feed ingestion, enrichment, scheduling and the sink."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable

import httpx
import structlog

from .config import AppConfig
from .engine import (
    DeduplicationIndex,
    EnrichmentCache,
    EntryRejected,
    FeedError,
    FeedPreview,
    FeedSource,
    Normalizer,
    PageFetcher,
)
from .engine.cache import InvalidationReport
from .enrichment import DetailReport, DetailScrapeWorker, ProfileLookupWorker, ProfileReport
from .enrichment.detail_scrape import DETAIL_CACHE_PREFIX
from .enrichment.profile_lookup import PROFILE_CACHE_PREFIX, SearchClient
from .infra.storage import RecordStore, StoreError
from .records import Record, RecordStatus
from .scheduler import RunGate, ScheduleDecision
from .sink import SinkReconciler, SyncResult, TabularSink, build_sink

IN_PROGRESS_REASON = "Run already in progress"


@dataclass
class IngestionReport:
    categories: int = 0
    fetched: int = 0
    created: int = 0
    duplicates: int = 0
    rejected_skipped: int = 0
    dropped: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class RunSummary:
    """Everything one pipeline invocation did, recorded as the job's mark."""

    job_name: str
    started_at: datetime
    finished_at: datetime | None = None
    skipped: bool = False
    reason: str | None = None
    decision: ScheduleDecision | None = None
    ingestion: IngestionReport = field(default_factory=IngestionReport)
    profile: ProfileReport | None = None
    detail: DetailReport | None = None
    stage_errors: list[dict[str, Any]] = field(default_factory=list)
    aborted: str | None = None

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds(), 3)

    @property
    def errors(self) -> list[dict[str, Any]]:
        collected = list(self.ingestion.errors)
        if self.profile is not None:
            collected.extend(self.profile.errors)
        if self.detail is not None:
            collected.extend(self.detail.errors)
        collected.extend(self.stage_errors)
        return collected

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration,
            "skipped": self.skipped,
            "reason": self.reason,
            "schedule": (
                {"should_run": self.decision.should_run, "reason": self.decision.reason}
                if self.decision
                else None
            ),
            "ingestion": asdict(self.ingestion),
            "profile": self.profile.to_dict() if self.profile else None,
            "detail": self.detail.to_dict() if self.detail else None,
            "errors": self.errors,
            "aborted": self.aborted,
        }


@dataclass(slots=True)
class ApprovalResult:
    record: Record
    approved: bool
    sink: SyncResult


@dataclass
class ResyncReport:
    attempted: int = 0
    synced: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)


class PipelineOrchestrator:
    """Central coordinator exposing the upward operations."""

    def __init__(
        self,
        config: AppConfig,
        store: RecordStore,
        feed_source: FeedSource,
        normalizer: Normalizer,
        index: DeduplicationIndex,
        cache: EnrichmentCache,
        run_gate: RunGate,
        profile_worker: ProfileLookupWorker,
        detail_worker: DetailScrapeWorker,
        reconciler: SinkReconciler,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.feed_source = feed_source
        self.normalizer = normalizer
        self.index = index
        self.cache = cache
        self.run_gate = run_gate
        self.profile_worker = profile_worker
        self.detail_worker = detail_worker
        self.reconciler = reconciler
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = structlog.get_logger("maker_radar.orchestrator").bind(component="orchestrator")
        self._job_locks: dict[str, Lock] = {}
        self._locks_guard = Lock()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        store: RecordStore,
        base_dir: Path | None = None,
        sink: TabularSink | None = None,
        search_client: SearchClient | None = None,
        feed_client: httpx.Client | None = None,
        page_client: httpx.Client | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "PipelineOrchestrator":
        """Wire the default object graph from configuration."""

        index = DeduplicationIndex(store)
        cache = EnrichmentCache(
            store,
            default_ttl=config.cache.ttl,
            max_in_memory=config.cache.max_in_memory,
            clock=clock,
        )
        return cls(
            config=config,
            store=store,
            feed_source=FeedSource(config.feeds, client=feed_client),
            normalizer=Normalizer(clock=clock),
            index=index,
            cache=cache,
            run_gate=RunGate(store, default_interval=config.schedule.interval, clock=clock),
            profile_worker=ProfileLookupWorker(
                config.profile_lookup,
                cache,
                index,
                search_client=search_client,
                ttl=config.cache.ttl,
                sleep=sleep,
            ),
            detail_worker=DetailScrapeWorker(
                config.detail_scrape,
                cache,
                index,
                fetcher=PageFetcher(config.detail_scrape, client=page_client),
                clock=clock,
                sleep=sleep,
            ),
            reconciler=SinkReconciler(sink or build_sink(config.sink, base_dir), clock=clock),
            clock=clock,
        )

    def close(self) -> None:
        self.feed_source.close()
        self.detail_worker.fetcher.close()
        self.store.close()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def run_pipeline(self, job_name: str | None = None, interval: timedelta | None = None) -> RunSummary:
        job_name = job_name or self.config.schedule.job_name
        lock = self._job_lock(job_name)
        if not lock.acquire(blocking=False):
            self.logger.info("pipeline_skipped_in_progress", job=job_name)
            now = self._clock()
            return RunSummary(
                job_name=job_name,
                started_at=now,
                finished_at=now,
                skipped=True,
                reason=IN_PROGRESS_REASON,
            )
        try:
            return self._run_locked(job_name, interval)
        finally:
            lock.release()

    def run_scheduled(self, job_name: str) -> None:
        """Timer entry point; failures are logged, never raised into the scheduler."""

        try:
            self.run_pipeline(job_name)
        except Exception as exc:  # noqa: BLE001
            self.logger.error("scheduled_run_failed", job=job_name, error=str(exc))

    def _run_locked(self, job_name: str, interval: timedelta | None) -> RunSummary:
        summary = RunSummary(job_name=job_name, started_at=self._clock())
        decision = self.run_gate.should_run(job_name, interval)
        summary.decision = decision
        if not decision.should_run:
            summary.skipped = True
            summary.reason = decision.reason
            summary.finished_at = self._clock()
            self.logger.info("pipeline_skipped", job=job_name, reason=decision.reason)
            return summary

        self.logger.info("pipeline_started", job=job_name, reason=decision.reason)
        try:
            new_records = self._ingest(summary.ingestion)
            summary.profile = self._profile_stage(summary)
            summary.detail = self._detail_stage(new_records, summary)
        except StoreError as exc:
            summary.aborted = str(exc)
            self.logger.error("pipeline_aborted", job=job_name, error=str(exc))

        summary.finished_at = self._clock()
        if summary.aborted is None or summary.ingestion.created > 0:
            self.run_gate.record_run(job_name, summary.to_dict())
        self.logger.info(
            "pipeline_completed",
            job=job_name,
            created=summary.ingestion.created,
            errors=len(summary.errors),
            duration=summary.duration,
        )
        return summary

    def fetch_category(self, category: str) -> IngestionReport:
        """Ingest one configured category outside the run gate; enrichment is left to later runs."""

        self.feed_source.require_category(category)
        report = IngestionReport()
        self._ingest(report, [category])
        self.logger.info("category_fetch_completed", category=category, created=report.created)
        return report

    def preview_feed(self, category: str, sample_size: int = 3) -> FeedPreview:
        return self.feed_source.preview(category, sample_size=sample_size)

    def enrich_pending(self) -> ProfileReport:
        return self.profile_worker.enrich_records(self.index.records_needing_profile())

    def _ingest(self, report: IngestionReport, categories: list[str] | None = None) -> list[Record]:
        created: list[Record] = []
        for category in categories or self.feed_source.categories:
            created.extend(self._ingest_category(category, report))
        return created

    def _ingest_category(self, category: str, report: IngestionReport) -> list[Record]:
        created: list[Record] = []
        try:
            entries = self.feed_source.fetch(category)
        except FeedError as exc:
            self.logger.warning("category_fetch_failed", category=category, error=str(exc))
            report.errors.append({"category": category, "error": str(exc)})
            return created
        except Exception as exc:  # noqa: BLE001
            self.logger.error("category_fetch_error", category=category, error=str(exc))
            report.errors.append({"category": category, "error": str(exc)})
            return created

        report.categories += 1
        report.fetched += len(entries)
        for entry in entries:
            try:
                normalized = self.normalizer.normalize(entry, category)
            except EntryRejected as exc:
                report.dropped += 1
                self.logger.info("entry_dropped", category=category, reason=exc.reason, link=exc.link)
                continue
            try:
                admission = self.index.admit(normalized)
            except StoreError:
                raise
            except Exception as exc:  # noqa: BLE001
                self.logger.error(
                    "entry_admission_error", category=category, link=normalized.source_link, error=str(exc)
                )
                report.errors.append(
                    {"category": category, "link": normalized.source_link, "error": str(exc)}
                )
                continue
            if admission.created:
                report.created += 1
                created.append(admission.record)
            elif admission.rejected:
                report.rejected_skipped += 1
            else:
                report.duplicates += 1
        self.logger.info("category_ingested", category=category, items=len(entries))
        return created

    def _profile_stage(self, summary: RunSummary) -> ProfileReport | None:
        try:
            return self.profile_worker.enrich_records(self.index.records_needing_profile())
        except StoreError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.error("profile_stage_failed", error=str(exc))
            summary.stage_errors.append({"stage": "profile", "error": str(exc)})
            return None

    def _detail_stage(self, new_records: list[Record], summary: RunSummary) -> DetailReport | None:
        try:
            fresh = [self.index.get(record.id) or record for record in new_records]
            return self.detail_worker.enrich_new_records(fresh)
        except StoreError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.error("detail_stage_failed", error=str(exc))
            summary.stage_errors.append({"stage": "detail", "error": str(exc)})
            return None

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------
    def enrich_one(self, record_id: str) -> Record:
        """Run both workers for one record; raises ``RecordNotFoundError`` or ``FetchError``."""

        record = self.index.require(record_id)
        if record.maker_name and record.profile_url is None:
            outcome = self.profile_worker.lookup(record.maker_name)
            record = self.index.update_fields(record.id, profile_url=outcome.profile_url)
        self.detail_worker.enrich_record(record)
        return self.index.require(record_id)

    def approve(self, record_id: str) -> ApprovalResult:
        record = self.index.set_status(record_id, RecordStatus.APPROVED)
        result = self.reconciler.add_approved_record(record)
        if result.synced:
            record = self.index.mark_synced(record_id, True)
        else:
            self.logger.warning("approval_not_synced", record_id=record_id, error=result.error)
        return ApprovalResult(record=record, approved=True, sink=result)

    def reject(self, record_id: str) -> Record:
        return self.index.set_status(record_id, RecordStatus.REJECTED)

    def upvote(self, record_id: str) -> Record:
        return self.index.adjust_upvotes(record_id, 1)

    def unvote(self, record_id: str) -> Record:
        return self.index.adjust_upvotes(record_id, -1)

    def resync_pending(self) -> ResyncReport:
        report = ResyncReport()
        for record in self.index.approved_needing_sync():
            report.attempted += 1
            result = self.reconciler.add_approved_record(record)
            if result.synced:
                self.index.mark_synced(record.id, True)
                report.synced += 1
                if result.duplicate:
                    report.duplicates += 1
            else:
                report.failed += 1
                report.errors.append({"record_id": record.id, "name": record.name, "error": result.error})
        self.logger.info("resync_completed", attempted=report.attempted, synced=report.synced)
        return report

    # ------------------------------------------------------------------
    # Observability and maintenance
    # ------------------------------------------------------------------
    def get_cache_stats(self) -> dict[str, Any]:
        return {
            "profile": self.cache.stats(PROFILE_CACHE_PREFIX),
            "detail": self.cache.stats(DETAIL_CACHE_PREFIX),
        }

    def get_schedule_status(self) -> dict[str, Any]:
        return self.run_gate.status()

    def clear_profile_cache(self) -> InvalidationReport:
        return self.profile_worker.clear_cache()

    def cleanup(self) -> dict[str, Any]:
        return {
            "profile_cache": asdict(self.cache.cleanup_expired(PROFILE_CACHE_PREFIX)),
            "detail_cache": asdict(self.cache.cleanup_expired(DETAIL_CACHE_PREFIX)),
            "schedule": asdict(self.run_gate.cleanup_old(self.config.schedule.retention_days)),
        }

    def stats(self) -> dict[str, Any]:
        return self.index.stats()

    def sink_status(self) -> dict[str, Any]:
        return self.reconciler.status()

    def _job_lock(self, job_name: str) -> Lock:
        with self._locks_guard:
            lock = self._job_locks.get(job_name)
            if lock is None:
                lock = self._job_locks[job_name] = Lock()
            return lock


__all__ = [
    "ApprovalResult",
    "IngestionReport",
    "PipelineOrchestrator",
    "ResyncReport",
    "RunSummary",
]
