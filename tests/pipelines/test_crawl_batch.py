from __future__ import annotations

import asyncio
import json
import logging
import threading
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import httpx
import pytest

from app.models.source import CrawlFrequency, CrawlStatus
from app.services.leads.reconciliation import LeadReconciler
from app.services.leads.repositories import InMemoryLeadRepository
from app.services.sources.repositories import InMemorySourceRepository
from pipelines.crawl import CrawlError
from pipelines.crawl import run_batch as cli
from pipelines.crawl.crawler import SourceCrawler
from pipelines.crawl.pipeline import BatchSummary, CrawlPipeline
from pipelines.crawl.scheduler import CrawlScheduler, next_fire_time
from tests.utils import FIXED_NOW, NEWS_PAGE, RecordingSleep, make_source

IST = ZoneInfo("Asia/Kolkata")


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "broken.example.com":
        return httpx.Response(500)
    return httpx.Response(200, text=NEWS_PAGE)


def _pipeline(sources: InMemorySourceRepository, leads: InMemoryLeadRepository | None = None) -> CrawlPipeline:
    crawler = SourceCrawler(
        sources,
        http_client=httpx.Client(transport=httpx.MockTransport(_handler)),
        sleep=RecordingSleep(),
        clock=lambda: FIXED_NOW,
        max_attempts=1,
        default_delay=0.0,
    )
    reconciler = LeadReconciler(leads or InMemoryLeadRepository(), sources, clock=lambda: FIXED_NOW)
    return CrawlPipeline(sources, crawler, reconciler)


def test_batch_selects_active_sources_for_the_frequency():
    daily = make_source("daily.example.com")
    hourly = make_source("hourly.example.com", crawl_frequency=CrawlFrequency.HOURLY)
    paused = make_source("paused.example.com", crawl_status=CrawlStatus.PAUSED)
    pipeline = _pipeline(InMemorySourceRepository([daily, hourly, paused]))

    assert [source.domain for source in pipeline.select_sources(CrawlFrequency.DAILY)] == [
        "daily.example.com"
    ]
    assert [source.domain for source in pipeline.select_sources(CrawlFrequency.HOURLY)] == [
        "hourly.example.com"
    ]


def test_failing_source_does_not_stop_the_batch(stub_metrics):
    broken = make_source("broken.example.com")
    healthy = make_source("news.example.com")
    sources = InMemorySourceRepository([broken, healthy])
    leads = InMemoryLeadRepository()

    summary = _pipeline(sources, leads).run_batch("daily")

    assert summary.failed == 1
    assert summary.succeeded == 1
    broken_result, healthy_result = summary.results
    assert broken_result.error == "E_FETCH_HTTP"
    assert healthy_result.leads_created == 2
    assert sources.get(broken.id).statistics.failed_crawls == 1
    assert sources.get(broken.id).statistics.total_crawls == 1
    assert sources.get(healthy.id).statistics.leads_generated == 2
    assert leads.find_by_company("Acme Steel") is not None
    assert stub_metrics.gauges("crawl.batch.failed_sources") == [1]


def test_source_failure_is_logged_with_context(caplog):
    broken = make_source("broken.example.com")
    pipeline = _pipeline(InMemorySourceRepository([broken]))

    with caplog.at_level(logging.INFO, logger="pipelines.crawl.batch"):
        pipeline.run_batch(CrawlFrequency.DAILY)

    errors = [record for record in caplog.records if record.getMessage() == "crawl.source.error"]
    assert len(errors) == 1
    assert errors[0].domain == "broken.example.com"
    assert errors[0].exc_info is not None
    assert any(record.getMessage() == "crawl.batch.completed" for record in caplog.records)


def test_rerunning_a_batch_merges_into_existing_leads():
    source = make_source()
    sources = InMemorySourceRepository([source])
    leads = InMemoryLeadRepository()
    pipeline = _pipeline(sources, leads)

    pipeline.run_batch(CrawlFrequency.DAILY)
    second = pipeline.run_batch(CrawlFrequency.DAILY)

    assert second.leads_created == 0
    assert second.leads_updated == 2
    assert len(leads.find_by_company("Acme Steel").signals) == 2
    assert sources.get(source.id).statistics.leads_generated == 2
    assert sources.get(source.id).statistics.successful_crawls == 2


def test_summary_serializes_for_logs():
    source = make_source()
    summary = _pipeline(InMemorySourceRepository([source])).run_batch("hourly")

    payload = summary.as_dict()
    assert payload["frequency"] == "hourly"
    assert payload["sources"] == 0
    assert payload["finished_at"] is not None
    json.dumps(payload)


@pytest.mark.parametrize("frequency", ["weekly", "yearly"])
def test_unscheduled_frequencies_are_rejected(frequency):
    with pytest.raises(CrawlError) as excinfo:
        _pipeline(InMemorySourceRepository()).run_batch(frequency)
    assert excinfo.value.code == "E_FREQUENCY"


# Scheduler --------------------------------------------------------------------


def test_daily_trigger_fires_at_two_am_local():
    # 12:00 UTC is 17:30 in Kolkata, so the next run is tomorrow 02:00.
    fire_at = next_fire_time(CrawlFrequency.DAILY, FIXED_NOW, tz=IST)
    assert fire_at == datetime(2025, 1, 16, 2, 0, tzinfo=IST)

    just_after_midnight = datetime(2025, 1, 15, 19, 0, tzinfo=UTC)
    assert next_fire_time(CrawlFrequency.DAILY, just_after_midnight, tz=IST) == datetime(
        2025, 1, 16, 2, 0, tzinfo=IST
    )

    exactly_two = datetime(2025, 1, 16, 2, 0, tzinfo=IST)
    assert next_fire_time(CrawlFrequency.DAILY, exactly_two, tz=IST) == datetime(
        2025, 1, 17, 2, 0, tzinfo=IST
    )


def test_hourly_trigger_fires_on_the_hour():
    assert next_fire_time(CrawlFrequency.HOURLY, FIXED_NOW, tz=IST) == datetime(
        2025, 1, 15, 18, 0, tzinfo=IST
    )


class _BlockingPipeline:
    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self.runs: list[CrawlFrequency] = []

    def run_batch(self, frequency):
        self.runs.append(frequency)
        if frequency is CrawlFrequency.DAILY:
            self.started.set()
            self.release.wait(timeout=5)
        return BatchSummary(frequency=frequency.value, started_at=FIXED_NOW)


def test_overlapping_trigger_is_skipped(stub_metrics):
    pipeline = _BlockingPipeline()
    scheduler = CrawlScheduler(lambda: pipeline, timezone="Asia/Kolkata")

    worker = threading.Thread(target=scheduler.trigger, args=("daily",))
    worker.start()
    assert pipeline.started.wait(timeout=5)
    try:
        assert scheduler.is_running(CrawlFrequency.DAILY)
        assert scheduler.trigger("daily") is None
        hourly = scheduler.trigger("hourly")
        assert hourly is not None and hourly.frequency == "hourly"
    finally:
        pipeline.release.set()
        worker.join(timeout=5)

    assert pipeline.runs == [CrawlFrequency.DAILY, CrawlFrequency.HOURLY]
    assert not scheduler.is_running(CrawlFrequency.DAILY)
    assert [call["metric"] for call in stub_metrics.increment_calls] == ["crawl.trigger.skipped"]


def test_scheduler_loop_launches_due_trigger_and_stops():
    pipeline = _BlockingPipeline()
    start = datetime(2025, 1, 15, 12, 10, tzinfo=UTC)
    late = datetime(2025, 1, 15, 12, 45, tzinfo=UTC)
    readings = iter([start, late])
    scheduler = CrawlScheduler(
        lambda: pipeline,
        timezone="Asia/Kolkata",
        clock=lambda: next(readings, late),
    )

    async def scenario() -> None:
        scheduler.start()
        for _ in range(100):
            await asyncio.sleep(0.01)
            if pipeline.runs:
                break
        await scheduler.stop()

    asyncio.run(scenario())

    assert pipeline.runs == [CrawlFrequency.HOURLY]


# CLI --------------------------------------------------------------------------


def test_cli_writes_summary_file(tmp_path):
    output = tmp_path / "reports" / "daily.json"
    source = make_source()

    summary = cli.run(
        ["--frequency", "daily", "--output", str(output)],
        pipeline=_pipeline(InMemorySourceRepository([source])),
    )

    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["frequency"] == "daily"
    assert payload["leads_created"] == summary.leads_created == 2


def test_cli_prints_to_stdout(capsys):
    cli.run(["--frequency", "hourly"], pipeline=_pipeline(InMemorySourceRepository()))
    assert json.loads(capsys.readouterr().out)["sources"] == 0


def test_cli_rejects_unknown_frequency():
    with pytest.raises(SystemExit):
        cli.parse_args(["--frequency", "weekly"])


def test_cli_main_exits_non_zero_on_crawl_error(monkeypatch):
    def _fail(argv=None, **_kwargs):
        raise CrawlError("boom", code="E_FREQUENCY")

    monkeypatch.setattr(cli, "run", _fail)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--frequency", "daily"])
    assert excinfo.value.code == 1
