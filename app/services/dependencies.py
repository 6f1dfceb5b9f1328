"""Process-wide service wiring shared by the API and the crawl scheduler."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock

import httpx
from fastapi import Depends
from sqlalchemy.engine import Engine

from app.config import settings
from app.core import database
from app.models.catalog import DEFAULT_CATALOG
from app.services.leads.reconciliation import KeyedLock, LeadReconciler
from app.services.leads.repositories import (
    LeadRepository,
    OfficerRepository,
    build_lead_repository,
    build_officer_repository,
)
from app.services.leads.service import LeadService
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.sources.repositories import SourceRepository, build_source_repository
from pipelines.crawl.crawler import ACCEPT_HEADER, SourceCrawler
from pipelines.crawl.pipeline import CrawlPipeline

logger = logging.getLogger(__name__)


@dataclass
class Repositories:
    leads: LeadRepository
    sources: SourceRepository
    officers: OfficerRepository


_state_lock = Lock()
_repositories: Repositories | None = None
_dispatcher: NotificationDispatcher | None = None
_http_client: httpx.Client | None = None
# Shared so API intake and scheduled crawls serialize on the same company keys.
_identity_locks = KeyedLock()


def build_repositories(engine: Engine | None = None) -> Repositories:
    return Repositories(
        leads=build_lead_repository(engine),
        sources=build_source_repository(engine),
        officers=build_officer_repository(engine),
    )


def get_repositories() -> Repositories:
    global _repositories
    with _state_lock:
        if _repositories is None:
            _repositories = build_repositories(database.engine)
        return _repositories


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    with _state_lock:
        if _dispatcher is None:
            _dispatcher = NotificationDispatcher.from_settings()
        return _dispatcher


def get_http_client() -> httpx.Client:
    global _http_client
    with _state_lock:
        if _http_client is None:
            _http_client = httpx.Client(
                timeout=settings.crawl_fetch_timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": settings.crawl_user_agent, "Accept": ACCEPT_HEADER},
            )
        return _http_client


def build_reconciler(repositories: Repositories) -> LeadReconciler:
    return LeadReconciler(
        repositories.leads,
        repositories.sources,
        catalog=DEFAULT_CATALOG,
        locks=_identity_locks,
    )


def build_crawl_pipeline(
    repositories: Repositories, *, http_client: httpx.Client | None = None
) -> CrawlPipeline:
    crawler = SourceCrawler(repositories.sources, http_client=http_client or get_http_client())
    return CrawlPipeline(repositories.sources, crawler, build_reconciler(repositories))


def get_lead_service(
    repositories: Repositories = Depends(get_repositories),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> LeadService:
    return LeadService(
        repositories.leads,
        repositories.officers,
        build_reconciler(repositories),
        dispatcher,
        catalog=DEFAULT_CATALOG,
    )


def get_crawl_pipeline(
    repositories: Repositories = Depends(get_repositories),
    http_client: httpx.Client = Depends(get_http_client),
) -> CrawlPipeline:
    return build_crawl_pipeline(repositories, http_client=http_client)


def reset_dependencies() -> None:
    """Drop cached singletons (used on shutdown and by tests)."""
    global _repositories, _dispatcher, _http_client
    with _state_lock:
        if _http_client is not None:
            _http_client.close()
        _repositories = None
        _dispatcher = None
        _http_client = None
