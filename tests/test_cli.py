from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest
from rich.console import Console
from typer.testing import CliRunner

from maker_radar.app import AppState, app
from maker_radar.engine import RawFeedEntry
from maker_radar.enrichment import SearchResponse
from maker_radar.infra import MemoryRecordStore
from maker_radar.orchestrator import PipelineOrchestrator
from maker_radar.records import RecordStatus
from maker_radar.sink import CsvSink

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Launches</title>
  <item><title>Acme Tool</title><link>https://x.com/posts/acme</link><author>Jane Doe</author></item>
</channel></rss>
"""


class StubScheduler:
    def __init__(self) -> None:
        self.scheduled: list[tuple[str, float]] = []

    def schedule_pipeline(self, job_name, minutes, callback):  # noqa: ANN001
        self.scheduled.append((job_name, minutes))

    def start(self) -> None:
        return

    def shutdown(self) -> None:
        return


def make_state(app_config, tmp_path: Path, clock) -> AppState:
    config = app_config(sink={"kind": "csv"})
    orchestrator = PipelineOrchestrator.from_config(
        config,
        MemoryRecordStore(),
        sink=CsvSink(tmp_path / "approved.csv"),
        search_client=SimpleNamespace(search=lambda query: SearchResponse()),
        feed_client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, text=FEED))),
        page_client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html></html>"))),
        clock=clock,
        sleep=lambda seconds: None,
    )
    repository = SimpleNamespace(locator=SimpleNamespace(logs_dir=tmp_path / "logs"))
    return AppState(repository=repository, config=config, orchestrator=orchestrator, scheduler=StubScheduler())


@pytest.fixture
def state(app_config, tmp_path: Path, clock, monkeypatch: pytest.MonkeyPatch) -> AppState:
    built = make_state(app_config, tmp_path, clock)
    monkeypatch.setattr("maker_radar.app.build_state", lambda verbose: built)
    monkeypatch.setattr("maker_radar.app.console", Console(width=200))
    return built


def _seed(state: AppState) -> str:
    normalized = state.orchestrator.normalizer.normalize(
        RawFeedEntry(title="Seeded App", link="https://x.com/posts/seeded", author="Sam Smith"), "ai"
    )
    return state.orchestrator.index.admit(normalized).record.id


def test_cli_run_then_gated(state: AppState) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["run"])
    assert result.exit_code == 0, result.stdout
    assert "Run feed-fetch" in result.stdout
    assert "created=1" in result.stdout

    blocked = runner.invoke(app, ["run"])
    assert blocked.exit_code == 0, blocked.stdout
    assert "Skipped: Job ran too recently" in blocked.stdout

    forced = runner.invoke(app, ["run", "--force"])
    assert forced.exit_code == 0, forced.stdout
    assert "created=0" in forced.stdout


def test_cli_records_and_stats(state: AppState) -> None:
    runner = CliRunner()
    empty = runner.invoke(app, ["records"])
    assert "No records yet" in empty.stdout

    _seed(state)
    listed = runner.invoke(app, ["records", "--status", "pending"])
    assert listed.exit_code == 0, listed.stdout
    assert "Seeded App" in listed.stdout

    stats = runner.invoke(app, ["stats"])
    assert stats.exit_code == 0, stats.stdout
    assert "total_records" in stats.stdout


def test_cli_approve_syncs_to_csv(state: AppState, tmp_path: Path) -> None:
    record_id = _seed(state)
    result = CliRunner().invoke(app, ["approve", record_id])
    assert result.exit_code == 0, result.stdout
    assert "approved" in result.stdout
    assert "Synced to sink." in result.stdout
    assert state.orchestrator.index.require(record_id).status is RecordStatus.APPROVED
    assert (tmp_path / "approved.csv").exists()


def test_cli_reject_and_missing_record(state: AppState) -> None:
    runner = CliRunner()
    record_id = _seed(state)
    rejected = runner.invoke(app, ["reject", record_id])
    assert rejected.exit_code == 0, rejected.stdout
    assert state.orchestrator.index.require(record_id).status is RecordStatus.REJECTED

    missing = runner.invoke(app, ["approve", "does-not-exist"])
    assert missing.exit_code == 1
    assert "not found" in missing.stdout


def test_cli_enrich_shows_snapshot(state: AppState) -> None:
    record_id = _seed(state)
    result = CliRunner().invoke(app, ["enrich", record_id])
    assert result.exit_code == 0, result.stdout
    assert "detail_enriched_at" in result.stdout


def test_cli_cache_and_schedule_commands(state: AppState) -> None:
    runner = CliRunner()
    runner.invoke(app, ["run"])

    for args in (
        ["cache", "stats"],
        ["cache", "clear"],
        ["cache", "cleanup"],
        ["schedule", "status"],
        ["schedule", "health"],
        ["schedule", "cleanup", "--days", "7"],
        ["sink", "status"],
        ["resync"],
    ):
        result = runner.invoke(app, args)
        assert result.exit_code == 0, f"{args}: {result.stdout}"

    status = runner.invoke(app, ["schedule", "status"])
    assert "feed-fetch" in status.stdout

    forced = runner.invoke(app, ["schedule", "force", "feed-fetch"])
    assert forced.exit_code == 0, forced.stdout
    assert state.orchestrator.run_gate.should_run("feed-fetch").should_run is True


def test_cli_serve_registers_timer(state: AppState, monkeypatch: pytest.MonkeyPatch) -> None:
    def interrupt(seconds: float) -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr("maker_radar.app.time.sleep", interrupt)
    result = CliRunner().invoke(app, ["serve", "--minutes", "2"])
    assert result.exit_code == 0, result.stdout
    assert state.scheduler.scheduled == [("feed-fetch", 2.0)]
    assert "Stopping timer." in result.stdout


def test_cli_log_tail(state: AppState, tmp_path: Path) -> None:
    runner = CliRunner()
    empty = runner.invoke(app, ["log", "tail"])
    assert "No log lines yet." in empty.stdout

    logs_dir = tmp_path / "logs"
    logs_dir.mkdir()
    (logs_dir / "pipeline.log").write_text('{"event": "one"}\n{"event": "two"}\n', encoding="utf-8")
    result = runner.invoke(app, ["log", "tail", "--tail", "1"])
    assert result.exit_code == 0, result.stdout
    assert "two" in result.stdout
    assert "one" not in result.stdout


def test_cli_build_state_uses_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAKER_RADAR_HOME", str(tmp_path))
    monkeypatch.delenv("SERPAPI_API_KEY", raising=False)
    monkeypatch.setattr("maker_radar.app.configure_logging", lambda verbose, log_dir: None)
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "config.yaml").write_text("sink:\n  kind: none\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["stats"])

    assert result.exit_code == 0, result.stdout
    assert (tmp_path / "data" / "records.db").exists()


def test_cli_category_fetch_and_filter(state: AppState) -> None:
    runner = CliRunner()
    bad = runner.invoke(app, ["run", "--category", "gaming"])
    assert bad.exit_code == 1
    assert "Invalid category: gaming" in bad.stdout

    fetched = runner.invoke(app, ["run", "--category", "ai"])
    assert fetched.exit_code == 0, fetched.stdout
    assert "created=1" in fetched.stdout
    assert state.orchestrator.run_gate.last_run("feed-fetch") is None

    listed = runner.invoke(app, ["records", "--category", "ai"])
    assert "Acme Tool" in listed.stdout
    other = runner.invoke(app, ["records", "--category", "saas"])
    assert "No records yet" in other.stdout


def test_cli_feed_test_and_enrich_pending(state: AppState) -> None:
    runner = CliRunner()
    preview = runner.invoke(app, ["feed", "test", "ai"])
    assert preview.exit_code == 0, preview.stdout
    assert "Launches" in preview.stdout
    assert "Acme Tool" in preview.stdout
    assert state.orchestrator.index.record_ids() == []

    _seed(state)
    enriched = runner.invoke(app, ["enrich-pending"])
    assert enriched.exit_code == 0, enriched.stdout
    assert "not_found" in enriched.stdout


def test_cli_upvote_and_unvote(state: AppState) -> None:
    runner = CliRunner()
    record_id = _seed(state)
    up = runner.invoke(app, ["upvote", record_id])
    assert up.exit_code == 0, up.stdout
    assert "has 1 upvotes" in up.stdout
    down = runner.invoke(app, ["unvote", record_id])
    assert "has 0 upvotes" in down.stdout
    assert runner.invoke(app, ["upvote", "does-not-exist"]).exit_code == 1


def test_cli_log_tail_rejects_unknown_name(state: AppState) -> None:
    result = CliRunner().invoke(app, ["log", "tail", "--name", "../secrets"])
    assert result.exit_code == 1
    assert "Unknown log" in result.stdout
