"""Typer CLI entrypoint for Maker Radar."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Iterable, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import AppConfig, ConfigRepository
from .engine import FeedError, FetchError, RecordNotFoundError, UnknownCategoryError
from .infra import SQLiteManager, SQLiteRecordStore
from .logging_conf import configure_logging, log_path, tail_log
from .orchestrator import IngestionReport, PipelineOrchestrator, RunSummary
from .records import Record, RecordStatus
from .scheduler import APSchedulerAdapter

app = typer.Typer(help="Maker Radar command line tool", no_args_is_help=True, rich_markup_mode=None)
cache_app = typer.Typer(name="cache", help="Enrichment cache commands", no_args_is_help=True)
schedule_app = typer.Typer(name="schedule", help="Run gate commands", no_args_is_help=True)
sink_app = typer.Typer(name="sink", help="Sink commands", no_args_is_help=True)
feed_app = typer.Typer(name="feed", help="Feed inspection commands", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Log viewing commands", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: AppConfig
    orchestrator: PipelineOrchestrator
    scheduler: APSchedulerAdapter


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    config = repository.load()
    configure_logging(verbose=verbose, log_dir=repository.locator.logs_dir)
    store = SQLiteRecordStore(
        SQLiteManager(), config.storage.resolved_db_path(repository.locator.project_root)
    )
    orchestrator = PipelineOrchestrator.from_config(
        config, store, base_dir=repository.locator.project_root
    )
    return AppState(
        repository=repository,
        config=config,
        orchestrator=orchestrator,
        scheduler=APSchedulerAdapter(),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _key_value_table(title: str, rows: Iterable[tuple[str, Any]]) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="green", overflow="fold")
    for key, value in rows:
        if isinstance(value, (dict, list)):
            value = json.dumps(value, ensure_ascii=False, default=str)
        table.add_row(key, "-" if value is None else str(value))
    return table


def _ingestion_line(ingestion: IngestionReport) -> str:
    return (
        f"categories={ingestion.categories} fetched={ingestion.fetched} created={ingestion.created} "
        f"duplicates={ingestion.duplicates} dropped={ingestion.dropped}"
    )


def _print_errors(errors: Iterable[dict[str, Any]]) -> None:
    for error in errors:
        console.print(f"- {json.dumps(error, ensure_ascii=False)}", style="red", markup=False)


def _render_summary(summary: RunSummary) -> Table:
    table = Table(title=f"Run {summary.job_name}", box=box.SIMPLE_HEAD)
    table.add_column("Stage", style="cyan")
    table.add_column("Result", style="green", overflow="fold")
    table.add_row("ingestion", _ingestion_line(summary.ingestion))
    if summary.profile is not None:
        profile = summary.profile
        table.add_row(
            "profile",
            f"processed={profile.processed} found={profile.found} "
            f"not_found={profile.not_found} cache_hits={profile.cache_hits}",
        )
    if summary.detail is not None:
        detail = summary.detail
        table.add_row(
            "detail",
            f"processed={detail.processed} enriched={detail.enriched} skipped={detail.skipped}",
        )
    table.add_row("errors", str(len(summary.errors)))
    table.add_row("duration", f"{summary.duration}s")
    return table


def _render_records(records: Iterable[Record]) -> Table:
    table = Table(title="Records", box=box.SIMPLE_HEAD)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="cyan")
    table.add_column("Maker", style="magenta")
    table.add_column("Category")
    table.add_column("Status", style="yellow")
    table.add_column("Profile", overflow="fold")
    table.add_column("Upvotes", justify="right")
    table.add_column("Synced")
    for record in records:
        table.add_row(
            record.id,
            record.name,
            record.maker_name or "-",
            record.category or "-",
            record.status.value,
            record.profile_url or "-",
            str(record.upvotes),
            "yes" if record.synced_to_sink else "no",
        )
    return table


def _not_found(record_id: str) -> typer.Exit:
    console.print(f"Record `{record_id}` not found.", style="red")
    return typer.Exit(code=1)


app.add_typer(cache_app, name="cache")
app.add_typer(schedule_app, name="schedule")
app.add_typer(sink_app, name="sink")
app.add_typer(feed_app, name="feed")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="Run the pipeline once (subject to the run gate).")
def run(
    ctx: typer.Context,
    job: Optional[str] = typer.Option(None, "--job", help="Job name used by the run gate."),
    interval_hours: Optional[float] = typer.Option(
        None, "--interval-hours", help="Override the minimum interval between runs."
    ),
    force: bool = typer.Option(False, "--force", help="Clear the job's mark before running.", is_flag=True),
    category: Optional[str] = typer.Option(
        None, "--category", help="Only ingest this configured category (bypasses the run gate)."
    ),
) -> None:
    state = _get_state(ctx)
    if category is not None:
        _run_category(state, category)
        return
    job_name = job or state.config.schedule.job_name
    if force:
        state.orchestrator.run_gate.force_runnable(job_name)
    interval = timedelta(hours=interval_hours) if interval_hours is not None else None
    summary = state.orchestrator.run_pipeline(job_name, interval)
    if summary.skipped:
        console.print(f"Skipped: {summary.reason}", style="yellow")
        return
    if summary.aborted:
        console.print(f"Aborted: {summary.aborted}", style="red")
    console.print(_render_summary(summary))
    _print_errors(summary.errors)
    if summary.aborted:
        raise typer.Exit(code=1)


def _run_category(state: AppState, category: str) -> None:
    try:
        report = state.orchestrator.fetch_category(category)
    except UnknownCategoryError as exc:
        console.print(str(exc), style="red", markup=False)
        raise typer.Exit(code=1)
    console.print(f"Category {category}: {_ingestion_line(report)}", style="green", markup=False)
    _print_errors(report.errors)
    if report.errors:
        raise typer.Exit(code=1)


@app.command("records", help="List stored records.")
def records(
    ctx: typer.Context,
    status: Optional[RecordStatus] = typer.Option(None, "--status", help="Filter by status."),
    category: Optional[str] = typer.Option(None, "--category", help="Filter by feed category."),
) -> None:
    state = _get_state(ctx)
    index = state.orchestrator.index
    items = index.records_by_category(category) if category else index.all_records()
    if status:
        items = [record for record in items if record.status is status]
    if not items:
        console.print("No records yet. Use `maker-radar run` first.", style="dim")
        return
    console.print(_render_records(items))


@app.command("enrich", help="Run profile lookup and detail scrape for one record.")
def enrich(ctx: typer.Context, record_id: str = typer.Argument(..., help="Record id")) -> None:
    state = _get_state(ctx)
    try:
        record = state.orchestrator.enrich_one(record_id)
    except RecordNotFoundError:
        raise _not_found(record_id)
    except FetchError as exc:
        console.print(f"Detail scrape failed: {exc}", style="red")
        raise typer.Exit(code=1)
    console.print(_key_value_table(record.name, record.enrichment_snapshot().items()))


@app.command("approve", help="Approve a record and sync it to the sink.")
def approve(ctx: typer.Context, record_id: str = typer.Argument(..., help="Record id")) -> None:
    state = _get_state(ctx)
    try:
        result = state.orchestrator.approve(record_id)
    except RecordNotFoundError:
        raise _not_found(record_id)
    console.print(f"Record `{result.record.name}` approved.", style="green")
    if result.sink.duplicate:
        console.print("Already present in sink; nothing appended.", style="dim")
    elif result.sink.synced:
        console.print("Synced to sink.", style="green")
    else:
        console.print(f"Not synced (retry with `maker-radar resync`): {result.sink.error}", style="yellow")


@app.command("reject", help="Reject a record; it will never be re-admitted.")
def reject(ctx: typer.Context, record_id: str = typer.Argument(..., help="Record id")) -> None:
    state = _get_state(ctx)
    try:
        record = state.orchestrator.reject(record_id)
    except RecordNotFoundError:
        raise _not_found(record_id)
    console.print(f"Record `{record.name}` rejected.", style="green")


@app.command("upvote", help="Add one local upvote to a record.")
def upvote(ctx: typer.Context, record_id: str = typer.Argument(..., help="Record id")) -> None:
    state = _get_state(ctx)
    try:
        record = state.orchestrator.upvote(record_id)
    except RecordNotFoundError:
        raise _not_found(record_id)
    console.print(f"Record `{record.name}` has {record.upvotes} upvotes.", style="green")


@app.command("unvote", help="Remove one local upvote from a record.")
def unvote(ctx: typer.Context, record_id: str = typer.Argument(..., help="Record id")) -> None:
    state = _get_state(ctx)
    try:
        record = state.orchestrator.unvote(record_id)
    except RecordNotFoundError:
        raise _not_found(record_id)
    console.print(f"Record `{record.name}` has {record.upvotes} upvotes.", style="green")


@app.command("enrich-pending", help="Look up maker profiles for every pending record still missing one.")
def enrich_pending(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    report = state.orchestrator.enrich_pending()
    rows = report.to_dict()
    errors = rows.pop("errors")
    console.print(_key_value_table("Profile enrichment", rows.items()))
    _print_errors(errors)


@app.command("resync", help="Retry sink sync for approved records not yet synced.")
def resync(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    report = state.orchestrator.resync_pending()
    console.print(_key_value_table("Resync", asdict(report).items()))


@app.command("stats", help="Show record statistics.")
def stats(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(_key_value_table("Records", state.orchestrator.stats().items()))


@app.command("serve", help="Trigger the pipeline on a timer until interrupted.")
def serve(
    ctx: typer.Context,
    minutes: Optional[float] = typer.Option(None, "--minutes", help="Timer period in minutes."),
    job: Optional[str] = typer.Option(None, "--job", help="Job name used by the run gate."),
) -> None:
    state = _get_state(ctx)
    job_name = job or state.config.schedule.job_name
    period = minutes or state.config.schedule.timer_minutes
    state.scheduler.schedule_pipeline(job_name, period, state.orchestrator.run_scheduled)
    state.scheduler.start()
    console.print(f"Timer running every {period} minutes for `{job_name}`. Ctrl+C to stop.", style="cyan")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping timer.", style="yellow")
    finally:
        state.scheduler.shutdown()
        state.orchestrator.close()


@cache_app.command("stats", help="Show cache statistics per namespace.")
def cache_stats(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    for namespace, payload in state.orchestrator.get_cache_stats().items():
        console.print(_key_value_table(f"{namespace} cache", payload.items()))


@cache_app.command("clear", help="Clear the profile lookup cache.")
def cache_clear(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    report = state.orchestrator.clear_profile_cache()
    console.print(
        f"Cleared {report.memory_cleared} in-memory and {report.store_cleared} stored entries.",
        style="green",
    )
    for error in report.errors:
        console.print(f"- {error}", style="red", markup=False)


@cache_app.command("cleanup", help="Remove expired cache entries and old schedule marks.")
def cache_cleanup(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    for section, payload in state.orchestrator.cleanup().items():
        console.print(_key_value_table(section, payload.items()))


@schedule_app.command("status", help="Show the run gate state for every job.")
def schedule_status(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    status = state.orchestrator.get_schedule_status()
    table = Table(title="Jobs", box=box.SIMPLE_HEAD)
    table.add_column("Job", style="cyan", no_wrap=True)
    table.add_column("Runnable", style="green")
    table.add_column("Reason", overflow="fold")
    table.add_column("Next run allowed", style="magenta")
    for job_name, decision in status["jobs"].items():
        table.add_row(
            job_name,
            "yes" if decision["should_run"] else "no",
            decision["reason"],
            str(decision.get("next_run_allowed") or "-"),
        )
    console.print(table)
    console.print(_key_value_table("Settings", status["settings"].items()))


@schedule_app.command("force", help="Clear a job's mark so the next run is allowed.")
def schedule_force(ctx: typer.Context, job: str = typer.Argument(..., help="Job name")) -> None:
    state = _get_state(ctx)
    if state.orchestrator.run_gate.force_runnable(job):
        console.print(f"Job `{job}` is runnable.", style="green")
    else:
        console.print(f"Could not clear the mark for `{job}`.", style="red")
        raise typer.Exit(code=1)


@schedule_app.command("cleanup", help="Delete schedule marks older than the retention window.")
def schedule_cleanup(
    ctx: typer.Context,
    days: Optional[int] = typer.Option(None, "--days", help="Days of history to keep."),
) -> None:
    state = _get_state(ctx)
    report = state.orchestrator.run_gate.cleanup_old(days or state.config.schedule.retention_days)
    console.print(_key_value_table("Schedule cleanup", asdict(report).items()))


@schedule_app.command("health", help="Probe the record store used by the run gate.")
def schedule_health(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    health = state.orchestrator.run_gate.health_check()
    console.print(_key_value_table("Health", health.items()))
    if not health["healthy"]:
        raise typer.Exit(code=1)


@sink_app.command("status", help="Show sink availability and row count.")
def sink_status(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(_key_value_table("Sink", state.orchestrator.sink_status().items()))


@feed_app.command("test", help="Fetch and parse one category feed without storing anything.")
def feed_test(
    ctx: typer.Context,
    category: str = typer.Argument(..., help="Feed category"),
    samples: int = typer.Option(3, "--samples", help="Number of sample items to show."),
) -> None:
    state = _get_state(ctx)
    try:
        preview = state.orchestrator.preview_feed(category, sample_size=samples)
    except FeedError as exc:
        console.print(f"Feed test failed: {exc}", style="red", markup=False)
        raise typer.Exit(code=1)
    console.print(
        _key_value_table(
            f"Feed {category}",
            [("url", preview.url), ("title", preview.title), ("item_count", preview.item_count)],
        )
    )
    table = Table(title="Sample items", box=box.SIMPLE_HEAD)
    table.add_column("Title", style="cyan")
    table.add_column("Link", overflow="fold")
    table.add_column("Published")
    for item in preview.sample_items:
        table.add_row(item["title"] or "-", item["link"] or "-", item["published"] or "-")
    console.print(table)


@log_app.command("tail", help="Show the last lines of a log file.")
def log_tail(
    ctx: typer.Context,
    name: str = typer.Option("pipeline", "--name", help="Log name: pipeline or error."),
    tail: int = typer.Option(100, "--tail", help="Number of lines."),
) -> None:
    state = _get_state(ctx)
    try:
        path = log_path(state.repository.locator.logs_dir, name)
    except ValueError as exc:
        console.print(str(exc), style="red", markup=False)
        raise typer.Exit(code=1)
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log lines yet.", style="dim")
        return
    console.print(f"{name}.log · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
