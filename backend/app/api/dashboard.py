"""Merchant dashboard summary."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_merchant_org_id
from app.models.base import get_db
from app.services.analytics import get_dashboard_stats

router = APIRouter()


@router.get("/stats")
async def dashboard_stats(
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    return await get_dashboard_stats(db, organization_id)
