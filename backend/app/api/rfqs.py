"""Merchant routes for the RFQ inbox: list, filter and respond."""
import logging
import math
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_merchant_org_id
from app.models.base import get_db
from app.models.product import Product
from app.models.rfq import ProductRfq, RfqStatus

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class RfqUpdate(BaseModel):
    status: str
    response_message: Optional[str] = None
    responded_by: Optional[str] = Field(default=None, max_length=255)


class RfqResponse(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    access_id: Optional[int]
    name: str
    email: str
    company: str
    phone: Optional[str]
    message: str
    quantity: Optional[str]
    target_date: Optional[str]
    status: str
    response_message: Optional[str]
    responded_at: Optional[datetime]
    responded_by: Optional[str]
    submitted_at: Optional[datetime]


class RfqListResponse(BaseModel):
    rfqs: List[RfqResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Helpers
# ============================================================================

def parse_rfq_status(value: str) -> RfqStatus:
    try:
        return RfqStatus(value)
    except ValueError:
        allowed = ", ".join(status.value for status in RfqStatus)
        raise HTTPException(status_code=400, detail=f"Invalid status: {value}. Must be one of: {allowed}")


def rfq_filters(
    organization_id: int,
    status: Optional[RfqStatus] = None,
    product_id: Optional[int] = None,
    search: Optional[str] = None,
) -> list:
    conditions = [ProductRfq.organization_id == organization_id]
    if status is not None:
        conditions.append(ProductRfq.status == status)
    if product_id is not None:
        conditions.append(ProductRfq.product_id == product_id)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                ProductRfq.name.ilike(pattern),
                ProductRfq.email.ilike(pattern),
                ProductRfq.company.ilike(pattern),
                ProductRfq.message.ilike(pattern),
            )
        )
    return conditions


def apply_rfq_update(
    rfq: ProductRfq,
    status: RfqStatus,
    response_message: Optional[str] = None,
    responded_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ProductRfq:
    """Set the new status. Marking responded stamps when and by whom."""
    now = now or datetime.utcnow()
    rfq.status = status
    if status is RfqStatus.responded:
        rfq.responded_at = rfq.responded_at or now
        if responded_by:
            rfq.responded_by = responded_by
        if response_message:
            rfq.response_message = response_message
    rfq.updated_at = now
    return rfq


def serialize_rfq(rfq: ProductRfq, product_name: Optional[str] = None) -> RfqResponse:
    return RfqResponse(
        id=rfq.id,
        product_id=rfq.product_id,
        product_name=product_name,
        access_id=rfq.access_id,
        name=rfq.name,
        email=rfq.email,
        company=rfq.company,
        phone=rfq.phone,
        message=rfq.message,
        quantity=rfq.quantity,
        target_date=rfq.target_date,
        status=rfq.status.value if rfq.status else RfqStatus.new.value,
        response_message=rfq.response_message,
        responded_at=rfq.responded_at,
        responded_by=rfq.responded_by,
        submitted_at=rfq.submitted_at,
    )


async def get_org_rfq(db: AsyncSession, rfq_id: int, organization_id: int):
    result = await db.execute(
        select(ProductRfq, Product.product_name)
        .join(Product, Product.id == ProductRfq.product_id)
        .where(ProductRfq.id == rfq_id, ProductRfq.organization_id == organization_id)
    )
    row = result.first()
    if row is None:
        raise HTTPException(status_code=404, detail="RFQ not found")
    return row


# ============================================================================
# Routes
# ============================================================================

@router.get("", response_model=RfqListResponse)
async def list_rfqs(
    status: Optional[str] = None,
    product_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Newest first. ``status=all`` is the same as no status filter."""
    status_filter = parse_rfq_status(status) if status and status != "all" else None
    conditions = rfq_filters(organization_id, status_filter, product_id, search)

    total = (await db.execute(select(func.count(ProductRfq.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(ProductRfq, Product.product_name)
        .join(Product, Product.id == ProductRfq.product_id)
        .where(*conditions)
        .order_by(ProductRfq.submitted_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return RfqListResponse(
        rfqs=[serialize_rfq(rfq, product_name) for rfq, product_name in result.all()],
        total_count=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )


@router.get("/{rfq_id}", response_model=RfqResponse)
async def get_rfq(
    rfq_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    rfq, product_name = await get_org_rfq(db, rfq_id, organization_id)
    return serialize_rfq(rfq, product_name)


@router.patch("/{rfq_id}", response_model=RfqResponse)
async def update_rfq(
    rfq_id: int,
    data: RfqUpdate,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    status = parse_rfq_status(data.status)
    rfq, product_name = await get_org_rfq(db, rfq_id, organization_id)
    apply_rfq_update(rfq, status, data.response_message, data.responded_by)
    await db.commit()
    await db.refresh(rfq)
    logger.info("RFQ %s marked %s", rfq.id, status.value)
    return serialize_rfq(rfq, product_name)
