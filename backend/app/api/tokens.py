"""Merchant routes for channel access tokens."""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_merchant_org_id, raise_validation_error
from app.api.products import get_org_product
from app.models.base import get_db
from app.services.access.catalog import get_catalog_payload, get_channel_preset
from app.services.access.levels import AccessLevel, coerce_access_level
from app.services.access.tokens import (
    build_public_url,
    create_access_token,
    list_product_tokens,
    revoke_access_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class TokenCreate(BaseModel):
    product_id: int
    preset_id: Optional[str] = None
    channel_id: Optional[str] = Field(default=None, max_length=120)
    channel_name: Optional[str] = Field(default=None, max_length=255)
    access_level: Optional[str] = None
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=3650)
    bound_ip: Optional[str] = None
    created_by: Optional[str] = None
    notes: Optional[str] = None


class TokenCreateResponse(BaseModel):
    token_id: int
    token: str
    url: str
    access_level: str
    expires_at: Optional[datetime]


class TokenResponse(BaseModel):
    id: int
    product_id: int
    channel_id: str
    channel_name: Optional[str]
    access_level: str
    expires_at: Optional[datetime]
    is_revoked: bool
    use_count: int
    first_used_at: Optional[datetime]
    last_used_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/presets")
async def get_presets():
    """Access level labels and channel presets for the link builder."""
    return get_catalog_payload()


@router.post("", response_model=TokenCreateResponse)
async def create_token(
    data: TokenCreate,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Issue a channel link. Explicit fields override the chosen preset."""
    product = await get_org_product(db, data.product_id, organization_id)

    preset = None
    if data.preset_id:
        preset = get_channel_preset(data.preset_id)
        if preset is None:
            raise HTTPException(status_code=400, detail=f"Unknown channel preset: {data.preset_id}")

    channel_id = data.channel_id or (preset.id if preset else None)
    if not channel_id:
        raise HTTPException(status_code=400, detail="channel_id or preset_id is required")

    try:
        if data.access_level is not None:
            level = coerce_access_level(data.access_level)
        else:
            level = preset.access_level if preset else AccessLevel.after_click
    except ValueError as exc:
        raise_validation_error(exc)

    issued = await create_access_token(
        db,
        product_id=product.id,
        organization_id=organization_id,
        slug=product.slug,
        channel_id=channel_id,
        channel_name=data.channel_name or (preset.name if preset else None),
        access_level=level,
        expires_in_days=data.expires_in_days or (preset.expires_in_days if preset else None),
        bound_ip=data.bound_ip,
        created_by=data.created_by,
        notes=data.notes,
    )
    return TokenCreateResponse(
        token_id=issued.token_id,
        token=issued.token,
        url=build_public_url(issued.url),
        access_level=issued.access_level.value,
        expires_at=issued.expires_at,
    )


@router.get("", response_model=List[TokenResponse])
async def list_tokens(
    product_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    await get_org_product(db, product_id, organization_id)
    tokens = await list_product_tokens(db, product_id, organization_id)
    return [
        TokenResponse(
            id=row.id,
            product_id=row.product_id,
            channel_id=row.channel_id,
            channel_name=row.channel_name,
            access_level=row.access_level,
            expires_at=row.expires_at,
            is_revoked=bool(row.is_revoked),
            use_count=int(row.use_count or 0),
            first_used_at=row.first_used_at,
            last_used_at=row.last_used_at,
            created_at=row.created_at,
        )
        for row in tokens
    ]


@router.post("/{token_id}:revoke")
async def revoke_token(
    token_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    if not await revoke_access_token(db, token_id, organization_id):
        raise HTTPException(status_code=404, detail="Token not found")
    logger.info("Revoked access token %s", token_id)
    return {"revoked": True, "token_id": token_id}
