"""Turn extracted candidates into new or merged leads."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from urllib.parse import urljoin

from app.config import settings
from app.models.catalog import DEFAULT_CATALOG, ProductCatalog
from app.models.lead import CompanyDetails, Lead, LeadStatus, Signal
from app.models.source import Source
from app.observability.metrics import metrics
from app.services.inference.engine import assess_signals
from app.services.leads.errors import LeadConflictError
from app.services.leads.repositories import LeadRepository
from app.services.sources.repositories import SourceRepository

logger = logging.getLogger("leads.reconcile")

UNKNOWN_COMPANY = "Unknown Company"
TITLE_SEPARATOR = "-"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class Candidate(Protocol):
    title: str
    description: str
    link: str | None
    keywords: list[str]
    organization: str | None
    industry: str | None


class KeyedLock:
    """Per-key mutexes; entries are dropped once no thread holds or waits on them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, waiters = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, waiters + 1)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, waiters = self._locks[key]
                if waiters <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, waiters - 1)


def derive_company_name(candidate: Candidate) -> str:
    """Organization, else the title text before the first separator, else a sentinel."""
    organization = (getattr(candidate, "organization", None) or "").strip()
    if organization:
        return organization
    title = (candidate.title or "").split(TITLE_SEPARATOR, 1)[0].strip()
    return title or UNKNOWN_COMPANY


def build_signal(candidate: Candidate, source: Source, *, now: datetime) -> Signal:
    link = (candidate.link or "").strip()
    return Signal(
        source=source.domain,
        source_url=urljoin(source.root_url + "/", link) if link else source.root_url,
        source_type=source.category.signal_type,
        extracted_text=f"{candidate.title} {candidate.description}",
        timestamp=now,
        keywords=list(candidate.keywords or []),
    )


def merge_signal(
    lead: Lead,
    signal: Signal,
    *,
    now: datetime,
    catalog: ProductCatalog = DEFAULT_CATALOG,
) -> Lead:
    """Append ``signal`` and re-assess the lead over its full signal history."""
    lead.signals.append(signal)
    rescore(lead, now=now, catalog=catalog)
    return lead


def rescore(lead: Lead, *, now: datetime, catalog: ProductCatalog = DEFAULT_CATALOG) -> Lead:
    assessment = assess_signals(lead.signals, lead.company_details, now=now, catalog=catalog)
    lead.product_recommendations = assessment.recommendations
    lead.lead_score = assessment.score
    lead.urgency = assessment.urgency
    lead.touch(now)
    return lead


@dataclass
class ReconcileOutcome:
    lead: Lead
    created: bool


@dataclass
class ReconcileSummary:
    created: int = 0
    updated: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"created": self.created, "updated": self.updated, "failed": self.failed}


class LeadReconciler:
    """Creates a lead for an unseen company or merges the signal into the existing one.

    Upserts for the same company are serialized in-process; the store's unique
    company constraint catches races with other processes.
    """

    def __init__(
        self,
        leads: LeadRepository,
        sources: SourceRepository,
        *,
        catalog: ProductCatalog = DEFAULT_CATALOG,
        clock: Clock | None = None,
        casefold_identity: bool | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._leads = leads
        self._sources = sources
        self._catalog = catalog
        self._clock = clock or utc_now
        self._casefold = (
            settings.lead_identity_casefold if casefold_identity is None else casefold_identity
        )
        self._locks = locks or KeyedLock()

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    def identity_key(self, company_name: str) -> str:
        return company_name.casefold() if self._casefold else company_name

    def find_existing(self, company_name: str) -> Lead | None:
        return self._leads.find_by_company(company_name, casefold=self._casefold)

    def reconcile(self, candidate: Candidate, source: Source) -> ReconcileOutcome:
        now = self._clock()
        company_name = derive_company_name(candidate)
        signal = build_signal(candidate, source, now=now)
        with self._locks.hold(self.identity_key(company_name)):
            existing = self.find_existing(company_name)
            if existing is not None:
                return ReconcileOutcome(self._merge(existing, signal, now), created=False)
            lead = self._new_lead(company_name, candidate, signal, now)
            try:
                self._leads.create(lead)
            except LeadConflictError:
                # Another process created the company between lookup and insert.
                existing = self.find_existing(company_name)
                if existing is None:
                    raise
                return ReconcileOutcome(self._merge(existing, signal, now), created=False)
        self._sources.increment(source.id, "leads_generated")
        logger.info(
            "leads.reconcile.created",
            extra={"lead_id": lead.id, "company": company_name, "source": source.domain},
        )
        metrics.increment("leads.reconcile.created", tags={"source": source.domain})
        return ReconcileOutcome(lead, created=True)

    def process_candidates(self, candidates: Iterable[Candidate], source: Source) -> ReconcileSummary:
        """Reconcile candidates in order; a failing candidate never blocks its siblings."""
        summary = ReconcileSummary()
        for candidate in candidates:
            try:
                outcome = self.reconcile(candidate, source)
            except Exception:
                summary.failed += 1
                logger.exception(
                    "leads.reconcile.failed",
                    extra={"source": source.domain, "title": getattr(candidate, "title", None)},
                )
                metrics.increment("leads.reconcile.failed", tags={"source": source.domain})
                continue
            if outcome.created:
                summary.created += 1
            else:
                summary.updated += 1
        return summary

    def _merge(self, lead: Lead, signal: Signal, now: datetime) -> Lead:
        merge_signal(lead, signal, now=now, catalog=self._catalog)
        self._leads.save(lead)
        logger.info(
            "leads.reconcile.merged",
            extra={"lead_id": lead.id, "company": lead.company_name, "signals": len(lead.signals)},
        )
        metrics.increment("leads.reconcile.merged", tags={"source": signal.source})
        return lead

    def _new_lead(self, company_name: str, candidate: Candidate, signal: Signal, now: datetime) -> Lead:
        industry = getattr(candidate, "industry", None)
        # Industry is recorded but not used for the first inference pass.
        assessment = assess_signals(
            [signal],
            CompanyDetails(industry=industry),
            now=now,
            catalog=self._catalog,
            include_industry=False,
        )
        lead = Lead(
            company_name=company_name,
            company_details=CompanyDetails(industry=industry),
            signals=[signal],
            product_recommendations=assessment.recommendations,
            lead_score=assessment.score,
            urgency=assessment.urgency,
            status=LeadStatus.NEW,
        )
        lead.metadata.discovered_at = now
        lead.metadata.last_updated = now
        return lead
