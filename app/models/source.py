"""Domain models for crawl targets."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, confloat, field_validator

from app.models.lead import SourceType

DEFAULT_DELAY_SECONDS = 2.0

_PERIOD_SECONDS = {"second": 1.0, "minute": 60.0, "hour": 3600.0}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceCategory(str, Enum):
    NEWS = "news"
    TENDER = "tender"
    COMPANY_SITE = "company_site"
    DIRECTORY = "directory"
    FILING = "filing"
    INDUSTRY_PORTAL = "industry_portal"

    @property
    def signal_type(self) -> SourceType:
        return _CATEGORY_SIGNAL_TYPES[self]


_CATEGORY_SIGNAL_TYPES = {
    SourceCategory.NEWS: SourceType.NEWS,
    SourceCategory.TENDER: SourceType.TENDER,
    SourceCategory.COMPANY_SITE: SourceType.COMPANY_WEBSITE,
    SourceCategory.DIRECTORY: SourceType.DIRECTORY,
    SourceCategory.FILING: SourceType.FILING,
    SourceCategory.INDUSTRY_PORTAL: SourceType.DIRECTORY,
}


class AccessMethod(str, Enum):
    API = "api"
    RSS = "rss"
    SCRAPING = "scraping"
    MANUAL = "manual"


class CrawlFrequency(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CrawlStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    FAILED = "failed"
    PENDING = "pending"


class RateLimit(BaseModel):
    """``requests`` allowed per ``period`` (second/minute/hour)."""

    requests: int | None = Field(default=None, gt=0)
    period: str = "second"

    def delay_seconds(self, default: float = DEFAULT_DELAY_SECONDS) -> float:
        if not self.requests:
            return default
        window = _PERIOD_SECONDS.get(self.period.lower(), 1.0)
        return window / self.requests


class CrawlPolicy(BaseModel):
    allowed_paths: list[str] = Field(default_factory=list)
    blocked_paths: list[str] = Field(default_factory=list)
    rate_limit: RateLimit | None = None

    def allows(self, path: str) -> bool:
        """Blocked prefixes win; a non-empty allow list must match."""
        path = path or "/"
        if any(path.startswith(prefix) for prefix in self.blocked_paths if prefix):
            return False
        if self.allowed_paths:
            return any(path.startswith(prefix) for prefix in self.allowed_paths)
        return True


class SourceStatistics(BaseModel):
    total_crawls: int = 0
    successful_crawls: int = 0
    failed_crawls: int = 0
    leads_generated: int = 0


STATISTIC_FIELDS = frozenset(SourceStatistics.model_fields)


class SourceMetadata(BaseModel):
    added_by: str | None = None
    added_at: datetime = Field(default_factory=_utcnow)
    notes: str | None = None


class Source(BaseModel):
    """Configured web origin subject to periodic crawling."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    domain: str = Field(min_length=1)
    category: SourceCategory
    access_method: AccessMethod = AccessMethod.SCRAPING
    crawl_frequency: CrawlFrequency = CrawlFrequency.DAILY
    trust_score: confloat(ge=0, le=1) = 0.5  # type: ignore[valid-type]
    crawl_policy: CrawlPolicy = Field(default_factory=CrawlPolicy)
    crawl_status: CrawlStatus = CrawlStatus.PENDING
    last_crawled: datetime | None = None
    statistics: SourceStatistics = Field(default_factory=SourceStatistics)
    metadata: SourceMetadata = Field(default_factory=SourceMetadata)

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        domain = value.strip().lower()
        for prefix in ("https://", "http://"):
            if domain.startswith(prefix):
                domain = domain[len(prefix) :]
        return domain.rstrip("/")

    @property
    def root_url(self) -> str:
        return f"https://{self.domain}"


class SourceCreate(BaseModel):
    domain: str = Field(min_length=1)
    category: SourceCategory
    access_method: AccessMethod = AccessMethod.SCRAPING
    crawl_frequency: CrawlFrequency = CrawlFrequency.DAILY
    trust_score: confloat(ge=0, le=1) = 0.5  # type: ignore[valid-type]
    crawl_policy: CrawlPolicy = Field(default_factory=CrawlPolicy)
    crawl_status: CrawlStatus = CrawlStatus.PENDING
    notes: str | None = None

    def to_source(self, *, added_by: str | None = None) -> Source:
        return Source(
            domain=self.domain,
            category=self.category,
            access_method=self.access_method,
            crawl_frequency=self.crawl_frequency,
            trust_score=self.trust_score,
            crawl_policy=self.crawl_policy,
            crawl_status=self.crawl_status,
            metadata=SourceMetadata(added_by=added_by, notes=self.notes),
        )


class SourceUpdate(BaseModel):
    """Configuration changes; statistics are never client-writable."""

    domain: str | None = None
    category: SourceCategory | None = None
    access_method: AccessMethod | None = None
    crawl_frequency: CrawlFrequency | None = None
    trust_score: confloat(ge=0, le=1) | None = None  # type: ignore[valid-type]
    crawl_policy: CrawlPolicy | None = None
    crawl_status: CrawlStatus | None = None
    notes: str | None = None

    def apply_to(self, source: Source) -> Source:
        data = source.model_dump()
        data.update(self.model_dump(exclude_unset=True, exclude={"notes"}, exclude_none=True))
        if "notes" in self.model_fields_set:
            data["metadata"]["notes"] = self.notes
        return Source.model_validate(data)
