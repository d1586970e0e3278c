"""Shared request dependencies and error translation for API routes."""
import logging
from typing import NoReturn, Optional

from fastapi import Header, HTTPException, Request

from app.services.access.defaults import UnknownFieldError
from app.services.access.levels import InvalidAccessLevelError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


async def get_merchant_org_id(x_organization_id: Optional[str] = Header(default=None)) -> int:
    """Organization of the authenticated merchant, set by the upstream auth gateway."""
    if not x_organization_id:
        raise HTTPException(status_code=401, detail="Missing organization context")
    try:
        return int(x_organization_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid organization id")


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def raise_validation_error(exc: ValueError) -> NoReturn:
    """Translate access-model validation errors into HTTP 422."""
    if isinstance(exc, UnknownFieldError):
        raise HTTPException(
            status_code=422,
            detail={"error": str(exc), "unknown_fields": exc.field_names},
        )
    if isinstance(exc, InvalidAccessLevelError):
        raise HTTPException(
            status_code=422,
            detail={"error": str(exc), "invalid_level": exc.value},
        )
    raise HTTPException(status_code=422, detail=str(exc))
