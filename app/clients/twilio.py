"""Minimal client for the Twilio Messages REST API (SMS and chat)."""

from __future__ import annotations

from typing import Any

import httpx

from app.config import settings

DEFAULT_BASE_URL = "https://api.twilio.com/2010-04-01"


class TwilioError(RuntimeError):
    """Base error for Twilio client failures."""

    def __init__(self, message: str, code: str = "TWILIO_ERROR") -> None:
        super().__init__(message)
        self.code = code


class TwilioRateLimitError(TwilioError):
    def __init__(self, message: str = "Rate limited by Twilio") -> None:
        super().__init__(message, code="TWILIO_429")


class TwilioTimeoutError(TwilioError):
    def __init__(self, message: str = "Twilio request timed out") -> None:
        super().__init__(message, code="TWILIO_TIMEOUT")


class TwilioSchemaError(TwilioError):
    def __init__(self, message: str = "Unexpected Twilio response schema") -> None:
        super().__init__(message, code="TWILIO_SCHEMA_ERR")


class TwilioClient:
    """Sends messages through ``/Accounts/{sid}/Messages.json``."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not account_sid or not auth_token:
            raise ValueError("Twilio account SID and auth token are required.")
        self._account_sid = account_sid
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            auth=(account_sid, auth_token),
        )

    @classmethod
    def from_settings(cls) -> TwilioClient | None:
        """Return a client when credentials are configured, else None."""
        if not settings.twilio_configured:
            return None
        return cls(settings.twilio_account_sid or "", settings.twilio_auth_token or "")

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def send_message(self, *, from_: str, to: str, body: str) -> str:
        """Create a message and return its SID."""
        payload = {"From": from_, "To": to, "Body": body}
        path = f"/Accounts/{self._account_sid}/Messages.json"
        try:
            response = self._http.post(path, data=payload)
        except httpx.TimeoutException as exc:
            raise TwilioTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise TwilioError(f"HTTP error calling Twilio: {exc}") from exc

        if response.status_code == 429:
            raise TwilioRateLimitError()
        if response.status_code >= 400:
            detail: Any = response.text[:200]
            try:
                detail = response.json().get("message") or detail
            except ValueError:
                pass
            raise TwilioError(
                f"Twilio request failed: {response.status_code} - {detail}",
                code=f"TWILIO_{response.status_code}",
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise TwilioSchemaError("Failed to decode Twilio response JSON.") from exc
        sid = data.get("sid") if isinstance(data, dict) else None
        if not sid:
            raise TwilioSchemaError("`sid` missing from Twilio response.")
        return str(sid)

    def __enter__(self) -> TwilioClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
