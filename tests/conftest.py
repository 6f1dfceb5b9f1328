import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.dependencies import (
    Repositories,
    get_dispatcher,
    get_http_client,
    get_repositories,
    reset_dependencies,
)
from app.services.leads.repositories import InMemoryLeadRepository, InMemoryOfficerRepository
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.sources.repositories import InMemorySourceRepository
from tests.helpers.metrics_stub import StubMetrics
from tests.utils import FakeChannel


class _SyncASGIClient:
    """Minimal synchronous wrapper around httpx.AsyncClient for ASGI apps."""

    def __init__(self, app):
        transport = httpx.ASGITransport(app=app)
        self._client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    def request(self, method: str, url: str, **kwargs):
        return asyncio.run(self._client.request(method, url, **kwargs))

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs):
        return self.request("PUT", url, **kwargs)

    def delete(self, url: str, **kwargs):
        return self.request("DELETE", url, **kwargs)

    def close(self) -> None:
        asyncio.run(self._client.aclose())


@pytest.fixture
def client():
    """Create test client compatible with older/newer httpx releases."""
    try:
        test_client = TestClient(app)
        yield test_client
    except TypeError:
        fallback_client = _SyncASGIClient(app)
        try:
            yield fallback_client
        finally:
            fallback_client.close()


@pytest.fixture
def repositories() -> Repositories:
    return Repositories(
        leads=InMemoryLeadRepository(),
        sources=InMemorySourceRepository(),
        officers=InMemoryOfficerRepository(),
    )


@pytest.fixture
def channels() -> dict[str, FakeChannel]:
    return {name: FakeChannel(name) for name in ("email", "sms", "chat")}


@pytest.fixture
def dispatcher(channels) -> NotificationDispatcher:
    return NotificationDispatcher(channels)


@pytest.fixture
def api_overrides(repositories, dispatcher):
    """Route every API dependency to in-memory fakes for the duration of a test."""
    http_client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    app.dependency_overrides[get_repositories] = lambda: repositories
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_http_client] = lambda: http_client
    try:
        yield repositories
    finally:
        app.dependency_overrides.pop(get_repositories, None)
        app.dependency_overrides.pop(get_dispatcher, None)
        app.dependency_overrides.pop(get_http_client, None)
        http_client.close()
        reset_dependencies()


@pytest.fixture
def stub_metrics(monkeypatch: pytest.MonkeyPatch) -> StubMetrics:
    """Swap the shared metrics reporter for a recorder in every module that emits."""
    stub = StubMetrics()
    for target in (
        "app.services.leads.reconciliation.metrics",
        "app.services.leads.service.metrics",
        "app.services.notifications.dispatcher.metrics",
        "pipelines.crawl.crawler.metrics",
        "pipelines.crawl.pipeline.metrics",
        "pipelines.crawl.scheduler.metrics",
    ):
        monkeypatch.setattr(target, stub)
    return stub
