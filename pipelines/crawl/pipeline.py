"""Crawl batches: select sources, crawl each in turn, reconcile its candidates."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime

from app.models.source import CrawlFrequency, CrawlStatus, Source
from app.observability.metrics import metrics
from app.services.leads.reconciliation import LeadReconciler
from app.services.sources.repositories import SourceQuery, SourceRepository
from pipelines.crawl import resolve_frequency, utc_now
from pipelines.crawl.crawler import SourceCrawler

logger = logging.getLogger("pipelines.crawl.batch")


@dataclass
class SourceRunResult:
    source_id: str
    domain: str
    articles: int = 0
    leads_created: int = 0
    leads_updated: int = 0
    candidates_failed: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary:
    frequency: str
    started_at: datetime
    finished_at: datetime | None = None
    results: list[SourceRunResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.succeeded)

    @property
    def leads_created(self) -> int:
        return sum(result.leads_created for result in self.results)

    @property
    def leads_updated(self) -> int:
        return sum(result.leads_updated for result in self.results)

    def as_dict(self) -> dict:
        return {
            "frequency": self.frequency,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "sources": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "leads_created": self.leads_created,
            "leads_updated": self.leads_updated,
            "results": [asdict(result) for result in self.results],
        }


class CrawlPipeline:
    def __init__(
        self,
        sources: SourceRepository,
        crawler: SourceCrawler,
        reconciler: LeadReconciler,
    ) -> None:
        self._sources = sources
        self._crawler = crawler
        self._reconciler = reconciler

    def select_sources(self, frequency: CrawlFrequency) -> list[Source]:
        """Active sources for ``frequency`` in store order, re-read on every run."""
        return self._sources.find_many(
            SourceQuery(crawl_frequency=frequency, crawl_status=CrawlStatus.ACTIVE)
        )

    def process_source(self, source: Source) -> SourceRunResult:
        """Crawl one source and reconcile its candidates; crawl errors propagate."""
        articles = self._crawler.crawl(source)
        summary = self._reconciler.process_candidates(articles, source)
        return SourceRunResult(
            source_id=source.id,
            domain=source.domain,
            articles=len(articles),
            leads_created=summary.created,
            leads_updated=summary.updated,
            candidates_failed=summary.failed,
        )

    def run_batch(self, frequency: CrawlFrequency | str) -> BatchSummary:
        """Process every selected source sequentially; one failure never ends the batch."""
        frequency = resolve_frequency(frequency)
        start = time.perf_counter()
        summary = BatchSummary(frequency=frequency.value, started_at=utc_now())
        sources = self.select_sources(frequency)
        logger.info(
            "crawl.batch.started",
            extra={"frequency": frequency.value, "sources": len(sources)},
        )
        for source in sources:
            try:
                result = self.process_source(source)
            except Exception as exc:
                logger.exception(
                    "crawl.source.error",
                    extra={"source_id": source.id, "domain": source.domain},
                )
                result = SourceRunResult(
                    source_id=source.id,
                    domain=source.domain,
                    error=getattr(exc, "code", None) or str(exc) or type(exc).__name__,
                )
            summary.results.append(result)

        summary.finished_at = utc_now()
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "crawl.batch.completed",
            extra={
                "frequency": frequency.value,
                "sources": len(summary.results),
                "failed": summary.failed,
                "leads_created": summary.leads_created,
                "duration_ms": round(duration_ms, 2),
            },
        )
        metrics.increment("crawl.batch.completed", tags={"frequency": frequency.value})
        metrics.timing("crawl.batch.duration_ms", duration_ms, tags={"frequency": frequency.value})
        metrics.gauge("crawl.batch.failed_sources", summary.failed, tags={"frequency": frequency.value})
        return summary
