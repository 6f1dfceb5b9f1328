"""Sales officers that own leads and receive notifications."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class OfficerRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    SALES_OFFICER = "sales_officer"


class NotificationPreferences(BaseModel):
    email: bool = True
    sms: bool = False
    chat: bool = False


class SalesOfficer(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    email: str | None = None
    phone: str | None = None
    territory: str | None = None
    role: OfficerRole = OfficerRole.SALES_OFFICER
    is_active: bool = True
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences
    )
    chat_opt_in: bool = Field(
        default=False,
        description="Explicit consent required before chat messages are sent.",
    )
