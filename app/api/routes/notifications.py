"""Send a sample alert over one channel to check delivery settings."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.models.lead import Lead, LeadScore, NextAction, ProductRecommendation, Urgency
from app.services.dependencies import get_dispatcher
from app.services.notifications.dispatcher import NotificationDispatcher

router = APIRouter()
logger = logging.getLogger(__name__)


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    CHAT = "chat"


class NotificationTestRequest(BaseModel):
    channel: Channel
    recipient: str = Field(min_length=3, description="Email address or phone number.")


def sample_lead() -> Lead:
    return Lead(
        company_name="Test Company Ltd.",
        urgency=Urgency.MEDIUM,
        lead_score=LeadScore(intent_strength=20, freshness=25, company_size=15, proximity=15),
        product_recommendations=[
            ProductRecommendation(
                product="HSD",
                product_name="High Speed Diesel",
                category="Industrial Fuels",
                confidence=0.85,
                reason_codes=["Direct mention: diesel"],
            )
        ],
        next_action=NextAction(action="Test notification"),
    )


@router.post("/test")
def send_test_notification(
    payload: NotificationTestRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    if dispatcher.channel(payload.channel.value) is None:
        raise HTTPException(status_code=400, detail=f"Channel unavailable: {payload.channel.value}")
    result = dispatcher.send(payload.channel.value, payload.recipient, sample_lead())
    logger.info(
        "notifications.test.sent",
        extra={"channel": payload.channel.value, "success": result.success},
    )
    return {"channel": payload.channel.value, **result.as_dict()}
