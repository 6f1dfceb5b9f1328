"""Fan a lead alert out to an officer's enabled channels."""
# ruff: noqa: UP017

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone

from app.models.lead import Lead
from app.models.officer import SalesOfficer
from app.observability.metrics import metrics
from app.services.notifications.channels import (
    ChatChannel,
    DeliveryResult,
    EmailChannel,
    NotificationChannel,
    SmsChannel,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def eligible_channels(officer: SalesOfficer) -> list[tuple[str, str]]:
    """Return (channel, recipient) pairs allowed by the officer's preferences."""
    prefs = officer.notification_preferences
    selected: list[tuple[str, str]] = []
    if prefs.email and officer.email:
        selected.append(("email", officer.email))
    if prefs.sms and officer.phone:
        selected.append(("sms", officer.phone))
    if prefs.chat and officer.chat_opt_in and officer.phone:
        selected.append(("chat", officer.phone))
    return selected


class NotificationDispatcher:
    """Sends one alert per eligible channel; a failing channel never blocks the others."""

    def __init__(
        self,
        channels: Mapping[str, NotificationChannel],
        *,
        clock: Clock | None = None,
    ) -> None:
        self._channels = dict(channels)
        self._clock = clock or _utcnow

    @classmethod
    def from_settings(cls) -> NotificationDispatcher:
        return cls(
            {
                "email": EmailChannel.from_settings(),
                "sms": SmsChannel.from_settings(),
                "chat": ChatChannel.from_settings(),
            }
        )

    def channel(self, name: str) -> NotificationChannel | None:
        return self._channels.get(name)

    def dispatch(self, officer: SalesOfficer, lead: Lead) -> dict[str, DeliveryResult]:
        """Deliver the alert and stamp the lead's notification metadata.

        The lead is marked as notified once every channel was attempted,
        whether or not delivery succeeded. The caller persists the lead.
        """
        results: dict[str, DeliveryResult] = {}
        for name, recipient in eligible_channels(officer):
            results[name] = self.send(name, recipient, lead)

        lead.metadata.notification_sent = True
        lead.metadata.notification_sent_at = self._clock()
        logger.info(
            "notifications.dispatch.completed",
            extra={
                "lead_id": lead.id,
                "officer_id": officer.id,
                "channels": sorted(results),
                "delivered": sorted(name for name, result in results.items() if result.success),
            },
        )
        return results

    def send(self, name: str, recipient: str, lead: Lead) -> DeliveryResult:
        channel = self._channels.get(name)
        if channel is None:
            result = DeliveryResult.not_configured()
        else:
            try:
                result = channel.send(recipient, lead)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "notifications.channel.crashed",
                    extra={"lead_id": lead.id, "channel": name},
                )
                result = DeliveryResult(success=False, reason=str(exc))
        outcome = "sent" if result.success else "failed"
        metrics.increment(f"notifications.{outcome}", tags={"channel": name})
        return result
