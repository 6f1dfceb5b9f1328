"""Shared errors and helpers for the source crawl pipeline."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from app.models.source import CrawlFrequency

logger = logging.getLogger("pipelines.crawl")

SCHEDULED_FREQUENCIES = (CrawlFrequency.DAILY, CrawlFrequency.HOURLY)


class CrawlError(RuntimeError):
    """Domain exception for crawl failures."""

    def __init__(self, message: str, code: str = "CRAWL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class CrawlPolicyError(CrawlError):
    """The source may not be crawled (inactive, or its root path is blocked)."""


class FetchError(CrawlError):
    """Network failure or unexpected HTTP status while fetching a page."""


class TransientFetchError(FetchError):
    """Timeout, transport failure or 5xx; eligible for retry."""


class ExtractionError(CrawlError):
    """The fetched document could not be parsed."""


def resolve_frequency(raw: str | CrawlFrequency) -> CrawlFrequency:
    """Normalize a trigger name; only daily and hourly batches are scheduled."""
    try:
        frequency = CrawlFrequency(str(getattr(raw, "value", raw)).strip().lower())
    except ValueError as exc:
        raise CrawlError(f"Unknown crawl frequency: {raw}", code="E_FREQUENCY") from exc
    if frequency not in SCHEDULED_FREQUENCIES:
        raise CrawlError(
            f"No scheduled trigger for frequency '{frequency.value}'.", code="E_FREQUENCY"
        )
    return frequency


def utc_now() -> datetime:
    return datetime.now(UTC)
