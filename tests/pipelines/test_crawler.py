from __future__ import annotations

import httpx
import pytest

from app.models.source import CrawlPolicy, CrawlStatus, RateLimit, SourceCategory
from app.services.sources.repositories import InMemorySourceRepository
from pipelines.crawl import CrawlPolicyError, FetchError, TransientFetchError
from pipelines.crawl.crawler import SourceCrawler
from tests.utils import FIXED_NOW, NEWS_PAGE, RecordingSleep, make_source


class _Responder:
    """MockTransport handler that replays queued responses and counts requests."""

    def __init__(self, *responses) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _crawler(repository, responder, *, sleep=None, max_attempts=2, default_delay=0.0):
    client = httpx.Client(transport=httpx.MockTransport(responder))
    return SourceCrawler(
        repository,
        http_client=client,
        sleep=sleep or RecordingSleep(),
        clock=lambda: FIXED_NOW,
        max_attempts=max_attempts,
        default_delay=default_delay,
    )


def _stats(repository, source):
    stats = repository.get(source.id).statistics
    return stats.total_crawls, stats.successful_crawls, stats.failed_crawls


def test_successful_crawl_records_one_success(stub_metrics):
    source = make_source()
    repository = InMemorySourceRepository([source])
    responder = _Responder(httpx.Response(200, text=NEWS_PAGE))
    sleep = RecordingSleep()

    articles = _crawler(repository, responder, sleep=sleep, default_delay=1.5).crawl(source)

    assert [article.keywords for article in articles] == [["furnace oil", "boiler"], ["diesel", "bitumen"]]
    assert responder.requests[0].url.host == "news.example.com"
    assert responder.requests[0].url.scheme == "https"
    assert sleep.calls == [1.5]
    assert _stats(repository, source) == (1, 1, 0)
    assert repository.get(source.id).last_crawled == FIXED_NOW
    assert any(call["metric"] == "crawl.source.duration_ms" for call in stub_metrics.timing_calls)


def test_rate_limit_policy_sets_the_delay():
    source = make_source(crawl_policy=CrawlPolicy(rate_limit=RateLimit(requests=2, period="second")))
    repository = InMemorySourceRepository([source])
    sleep = RecordingSleep()

    _crawler(repository, _Responder(httpx.Response(200, text="")), sleep=sleep).crawl(source)

    assert sleep.calls == [0.5]


@pytest.mark.parametrize(
    ("overrides", "code"),
    [
        ({"crawl_status": CrawlStatus.PAUSED}, "E_SOURCE_INACTIVE"),
        ({"crawl_policy": CrawlPolicy(blocked_paths=["/"])}, "E_PATH_BLOCKED"),
    ],
)
def test_policy_refusal_counts_as_failed_attempt(overrides, code):
    source = make_source(**overrides)
    repository = InMemorySourceRepository([source])
    responder = _Responder(httpx.Response(200, text=NEWS_PAGE))

    with pytest.raises(CrawlPolicyError) as excinfo:
        _crawler(repository, responder).crawl(source)

    assert excinfo.value.code == code
    assert responder.requests == []
    assert _stats(repository, source) == (1, 0, 1)
    assert repository.get(source.id).last_crawled is None


def test_timeouts_are_retried_then_recorded_once():
    source = make_source()
    repository = InMemorySourceRepository([source])
    responder = _Responder(httpx.ReadTimeout("slow"))
    sleep = RecordingSleep()

    with pytest.raises(TransientFetchError) as excinfo:
        _crawler(repository, responder, sleep=sleep, max_attempts=3).crawl(source)

    assert excinfo.value.code == "E_FETCH_TIMEOUT"
    assert len(responder.requests) == 3
    assert len(sleep.calls) == 2
    assert _stats(repository, source) == (1, 0, 1)


def test_server_error_then_success_counts_as_success():
    source = make_source()
    repository = InMemorySourceRepository([source])
    responder = _Responder(httpx.Response(503), httpx.Response(200, text=NEWS_PAGE))

    articles = _crawler(repository, responder).crawl(source)

    assert len(articles) == 2
    assert len(responder.requests) == 2
    assert _stats(repository, source) == (1, 1, 0)


def test_client_errors_are_not_retried():
    source = make_source()
    repository = InMemorySourceRepository([source])
    responder = _Responder(httpx.Response(404))

    with pytest.raises(FetchError) as excinfo:
        _crawler(repository, responder, max_attempts=3).crawl(source)

    assert not isinstance(excinfo.value, TransientFetchError)
    assert excinfo.value.code == "E_FETCH_HTTP"
    assert len(responder.requests) == 1
    assert _stats(repository, source) == (1, 0, 1)


def test_transport_errors_are_transient():
    source = make_source()
    repository = InMemorySourceRepository([source])
    responder = _Responder(httpx.ConnectError("refused"))

    with pytest.raises(TransientFetchError) as excinfo:
        _crawler(repository, responder, max_attempts=1).crawl(source)

    assert excinfo.value.code == "E_FETCH_TRANSPORT"


def test_categories_without_extractor_are_skipped():
    source = make_source("tenders.example.gov", category=SourceCategory.TENDER)
    repository = InMemorySourceRepository([source])
    responder = _Responder(httpx.Response(200, text=NEWS_PAGE))

    assert _crawler(repository, responder).crawl(source) == []
    assert responder.requests == []
    assert _stats(repository, source) == (0, 0, 0)


def test_news_extraction_can_be_forced_for_any_category():
    source = make_source("portal.example.com", category=SourceCategory.INDUSTRY_PORTAL)
    repository = InMemorySourceRepository([source])
    responder = _Responder(httpx.Response(200, text=NEWS_PAGE))

    articles = _crawler(repository, responder).fetch_and_extract_news(source)

    assert len(articles) == 2
    assert _stats(repository, source) == (1, 1, 0)
