from __future__ import annotations

from types import SimpleNamespace

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from maker_radar.scheduler import APSchedulerAdapter


class StubScheduler:
    def __init__(self) -> None:
        self.jobs: dict[str, dict] = {}
        self.started = False
        self.stopped = False

    def add_job(self, callback, trigger, id, args, replace_existing, max_instances, coalesce):  # noqa: ANN001
        self.jobs[id] = {
            "callback": callback,
            "trigger": trigger,
            "args": args,
            "replace_existing": replace_existing,
            "max_instances": max_instances,
            "coalesce": coalesce,
        }

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            raise KeyError(job_id)
        del self.jobs[job_id]

    def get_jobs(self):
        return [
            SimpleNamespace(id=job_id, next_run_time="soon", trigger=job["trigger"])
            for job_id, job in self.jobs.items()
        ]

    def start(self) -> None:
        self.started = True

    def shutdown(self, wait: bool = True) -> None:
        self.stopped = True


def test_schedule_pipeline_registers_interval_job() -> None:
    stub = StubScheduler()
    adapter = APSchedulerAdapter(scheduler=stub)
    calls: list[str] = []

    job_id = adapter.schedule_pipeline("feed-fetch", 5, calls.append)

    assert job_id == "pipeline::feed-fetch"
    job = stub.jobs[job_id]
    assert isinstance(job["trigger"], IntervalTrigger)
    assert job["trigger"].interval.total_seconds() == 300
    assert job["args"] == ["feed-fetch"]
    assert job["replace_existing"] is True
    assert job["max_instances"] == 1
    assert job["coalesce"] is True

    job["callback"](*job["args"])
    assert calls == ["feed-fetch"]
    assert adapter.list_jobs()[0]["id"] == job_id


def test_schedule_pipeline_rejects_non_positive_period() -> None:
    adapter = APSchedulerAdapter(scheduler=StubScheduler())
    with pytest.raises(ValueError):
        adapter.schedule_pipeline("feed-fetch", 0, lambda job: None)


def test_start_shutdown_and_remove() -> None:
    stub = StubScheduler()
    adapter = APSchedulerAdapter(scheduler=stub)
    adapter.schedule_pipeline("feed-fetch", 1, lambda job: None)

    adapter.start()
    adapter.start()
    assert stub.started is True
    adapter.shutdown()
    assert stub.stopped is True
    assert adapter.started is False

    adapter.remove_pipeline("feed-fetch")
    adapter.remove_pipeline("feed-fetch")
    assert adapter.list_jobs() == []
