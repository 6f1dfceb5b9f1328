"""Fetch a source's root page politely and run its category extractor."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

import httpx

from app.config import settings
from app.core.retry import retry_call
from app.models.source import CrawlStatus, Source
from app.observability.metrics import metrics
from app.services.sources.repositories import SourceRepository
from pipelines.crawl import (
    CrawlPolicyError,
    FetchError,
    TransientFetchError,
    utc_now,
)
from pipelines.crawl.extract import ExtractedArticle, Extractor, extract_news_articles, extractor_for

logger = logging.getLogger("pipelines.crawl.crawler")

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
SleepFn = Callable[[float], None]
Clock = Callable[[], datetime]


class SourceCrawler:
    """Crawls one source at a time and records its statistics exactly once per attempt."""

    def __init__(
        self,
        repository: SourceRepository,
        *,
        http_client: httpx.Client | None = None,
        sleep: SleepFn | None = None,
        clock: Clock | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        default_delay: float | None = None,
    ) -> None:
        self._repository = repository
        self._timeout = timeout or settings.crawl_fetch_timeout_seconds
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            timeout=self._timeout,
            follow_redirects=True,
            headers={"User-Agent": settings.crawl_user_agent, "Accept": ACCEPT_HEADER},
        )
        self._sleep = sleep or time.sleep
        self._clock = clock or utc_now
        self._max_attempts = max(1, max_attempts or settings.crawl_fetch_max_attempts)
        self._default_delay = (
            settings.crawl_default_delay_seconds if default_delay is None else default_delay
        )

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def crawl(self, source: Source) -> list[ExtractedArticle]:
        """Crawl ``source`` with its category extractor.

        Categories without a registered extractor are skipped: nothing is
        fetched and the statistics are left untouched.
        """
        extractor = extractor_for(source.category)
        if extractor is None:
            logger.info(
                "crawl.source.no_extractor",
                extra={"source_id": source.id, "category": source.category.value},
            )
            return []
        return self._fetch_and_extract(source, extractor)

    def fetch_and_extract_news(self, source: Source) -> list[ExtractedArticle]:
        return self._fetch_and_extract(source, extract_news_articles)

    def _fetch_and_extract(self, source: Source, extractor: Extractor) -> list[ExtractedArticle]:
        start = time.perf_counter()
        url = source.root_url
        try:
            self._check_policy(source)
            self._respect_rate_limit(source)
            html = self._fetch(url)
            articles = extractor(html, url)
        except Exception as exc:
            self._repository.mark_crawled(source.id, success=False, at=self._clock())
            code = getattr(exc, "code", type(exc).__name__)
            logger.warning(
                "crawl.source.failed",
                extra={"source_id": source.id, "domain": source.domain, "code": code, "error": str(exc)},
            )
            metrics.increment("crawl.source.failed", tags={"code": code})
            raise

        self._repository.mark_crawled(source.id, success=True, at=self._clock())
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "crawl.source.completed",
            extra={"source_id": source.id, "domain": source.domain, "articles": len(articles)},
        )
        metrics.increment("crawl.source.completed", tags={"category": source.category.value})
        metrics.timing("crawl.source.duration_ms", duration_ms)
        return articles

    def _check_policy(self, source: Source) -> None:
        if source.crawl_status is not CrawlStatus.ACTIVE:
            raise CrawlPolicyError(
                f"Crawling not allowed for {source.domain} (status={source.crawl_status.value}).",
                code="E_SOURCE_INACTIVE",
            )
        if not source.crawl_policy.allows("/"):
            raise CrawlPolicyError(
                f"Crawl policy for {source.domain} blocks the root path.",
                code="E_PATH_BLOCKED",
            )

    def _respect_rate_limit(self, source: Source) -> None:
        rate_limit = source.crawl_policy.rate_limit
        delay = rate_limit.delay_seconds(self._default_delay) if rate_limit else self._default_delay
        if delay > 0:
            self._sleep(delay)

    def _fetch(self, url: str) -> str:
        return retry_call(
            lambda: self._get(url),
            retry_on=(TransientFetchError,),
            max_attempts=self._max_attempts,
            sleep=self._sleep,
            label="crawl.fetch",
        )

    def _get(self, url: str) -> str:
        try:
            response = self._http.get(url)
        except httpx.TimeoutException as exc:
            raise TransientFetchError(f"Timed out fetching {url}", code="E_FETCH_TIMEOUT") from exc
        except httpx.TransportError as exc:
            raise TransientFetchError(f"Transport error fetching {url}: {exc}", code="E_FETCH_TRANSPORT") from exc
        if response.status_code >= 500:
            raise TransientFetchError(f"{url} returned HTTP {response.status_code}", code="E_FETCH_HTTP")
        if response.status_code >= 400:
            raise FetchError(f"{url} returned HTTP {response.status_code}", code="E_FETCH_HTTP")
        return response.text

    def __enter__(self) -> SourceCrawler:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
