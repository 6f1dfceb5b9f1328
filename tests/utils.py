"""Builders shared across the lead, source and crawl tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from app.models.lead import Lead, Signal, SourceType
from app.models.officer import NotificationPreferences, SalesOfficer
from app.models.source import CrawlFrequency, CrawlStatus, Source, SourceCategory
from app.services.notifications.channels import DeliveryResult

FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

NEWS_PAGE = """
<html><body>
  <article>
    <h2>Acme Steel - commissions new boiler</h2>
    <p>Acme Steel will switch its furnace oil supply for the new boiler line.</p>
    <a href="/news/acme-boiler">Read more</a>
    <time>14 Jan 2025</time>
  </article>
  <article>
    <h2>Cricket season preview</h2>
    <p>Nothing about fuels here.</p>
    <a href="/sports/cricket">Read more</a>
  </article>
  <div class="news-item">
    <h3>Bharat Roads wins highway contract</h3>
    <p>Large bitumen and diesel requirement expected.</p>
    <a href="https://other.example.com/bharat">Story</a>
  </div>
</body></html>
"""


def make_signal(
    text: str = "",
    *,
    source_type: SourceType = SourceType.NEWS,
    days_ago: float = 0,
    now: datetime = FIXED_NOW,
    source: str = "news.example.com",
) -> Signal:
    return Signal(
        source=source,
        source_url=f"https://{source}/item",
        source_type=source_type,
        extracted_text=text,
        timestamp=now - timedelta(days=days_ago),
    )


def make_lead(company_name: str = "Acme Steel", **overrides: Any) -> Lead:
    data: dict[str, Any] = {"company_name": company_name}
    data.update(overrides)
    return Lead(**data)


def make_source(domain: str = "news.example.com", **overrides: Any) -> Source:
    data: dict[str, Any] = {
        "domain": domain,
        "category": SourceCategory.NEWS,
        "crawl_frequency": CrawlFrequency.DAILY,
        "crawl_status": CrawlStatus.ACTIVE,
    }
    data.update(overrides)
    return Source(**data)


def make_officer(
    name: str = "Priya",
    *,
    territory: str | None = "West",
    email: str | None = "priya@example.com",
    phone: str | None = "9876543210",
    sms: bool = False,
    chat: bool = False,
    chat_opt_in: bool = False,
    **overrides: Any,
) -> SalesOfficer:
    return SalesOfficer(
        name=name,
        email=email,
        phone=phone,
        territory=territory,
        notification_preferences=NotificationPreferences(email=True, sms=sms, chat=chat),
        chat_opt_in=chat_opt_in,
        **overrides,
    )


class FakeChannel:
    """Channel double that records every send and returns a canned result."""

    def __init__(self, name: str, result: DeliveryResult | None = None, *, error: Exception | None = None):
        self.name = name
        self.result = result or DeliveryResult(success=True, message_id=f"{name}-1")
        self.error = error
        self.sent: list[tuple[str, str]] = []

    def send(self, recipient: str, lead: Lead) -> DeliveryResult:
        self.sent.append((recipient, lead.id))
        if self.error is not None:
            raise self.error
        return self.result


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
