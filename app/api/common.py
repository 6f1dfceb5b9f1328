"""Request helpers shared by the API routers."""

from __future__ import annotations

from fastapi import Header, HTTPException, status

from app.models.officer import OfficerRole
from app.services.leads.service import Actor

_CODE_STATUS = {
    "403_FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "404_LEAD_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "404_SOURCE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "409_LEAD_EXISTS": status.HTTP_409_CONFLICT,
    "409_SOURCE_EXISTS": status.HTTP_409_CONFLICT,
    "422_INVALID_LEAD": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "E_SOURCE_INACTIVE": status.HTTP_409_CONFLICT,
    "E_PATH_BLOCKED": status.HTTP_409_CONFLICT,
    "E_FETCH_TIMEOUT": status.HTTP_504_GATEWAY_TIMEOUT,
    "E_FETCH_TRANSPORT": status.HTTP_502_BAD_GATEWAY,
    "E_FETCH_HTTP": status.HTTP_502_BAD_GATEWAY,
}


def map_error_code(code: str) -> int:
    return _CODE_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Actor:
    """Build the caller identity from gateway-asserted headers."""
    if x_user_role is None:
        return Actor(user_id=x_user_id)
    try:
        role = OfficerRole(x_user_role.strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown role: {x_user_role}") from exc
    if role is OfficerRole.SALES_OFFICER and not x_user_id:
        raise HTTPException(status_code=400, detail="X-User-Id is required for sales officers.")
    return Actor(user_id=x_user_id, role=role)


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
