"""Anonymous product page routes: filtered product view, tracking, RFQ and link refresh.

The viewer's level is always resolved server-side from the channel token and
the access logs already recorded for the session. A level sent by the client
is never trusted.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from kombu.exceptions import OperationalError
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import EMAIL_PATTERN, client_ip
from app.api.documents import get_storage
from app.config import get_settings
from app.models.access import ProductAccessLog
from app.models.base import get_db
from app.models.document import DocumentExtraction
from app.models.organization import Organization
from app.models.product import Product, ProductStatus
from app.models.rfq import ProductRfq
from app.services.access.filtering import filter_product_payload
from app.services.access.levels import AccessLevel
from app.services.access.resolver import UPLOADED_FILES_FIELD, can_download
from app.services.access.tokens import (
    ResolvedAccess,
    build_public_url,
    create_access_token,
    create_rfq_upgrade_token,
    determine_access_level,
    session_access_level,
)
from app.services.analytics import (
    ACCESS_METHODS,
    InvalidActionTypeError,
    record_access,
    record_action,
)
from app.services.storage import DocumentStorage, StorageError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class TrackAccessRequest(BaseModel):
    product_id: int
    session_id: str = Field(min_length=1, max_length=255)
    access_method: str = "url"
    token: Optional[str] = None
    visitor_id: Optional[str] = None
    referrer: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    country_code: Optional[str] = None
    city: Optional[str] = None
    device_type: Optional[str] = None


class TrackAccessResponse(BaseModel):
    access_id: int
    access_level: str
    is_unique_visit: bool


class TrackActionRequest(BaseModel):
    access_id: int
    action_type: str
    action_target: Optional[str] = None
    action_metadata: Dict[str, Any] = Field(default_factory=dict)


class RfqRequest(BaseModel):
    product_id: int
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    company: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=64)
    message: str = Field(min_length=10)
    quantity: Optional[str] = Field(default=None, max_length=120)
    target_date: Optional[str] = Field(default=None, max_length=64)
    session_id: Optional[str] = None


class RfqResponse(BaseModel):
    rfq_id: int
    access_token: str
    access_url: str
    access_level: str
    expires_at: Optional[datetime]


class TokenRefreshRequest(BaseModel):
    product_id: int
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)


# ============================================================================
# Helpers
# ============================================================================

async def get_published_product(db: AsyncSession, *, slug: Optional[str] = None, product_id: Optional[int] = None) -> Product:
    query = select(Product).where(Product.status == ProductStatus.published)
    if slug is not None:
        query = query.where(Product.slug == slug)
    else:
        query = query.where(Product.id == product_id)
    result = await db.execute(query)
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


async def resolve_viewer(
    db: AsyncSession,
    product: Product,
    request: Request,
    token: Optional[str],
    session_id: Optional[str],
) -> ResolvedAccess:
    current = await session_access_level(db, product.id, session_id, client_ip=client_ip(request))
    return await determine_access_level(
        db,
        token=token,
        product_id=product.id,
        client_ip=client_ip(request),
        current_level=current,
    )


def product_file_query(product: Product, document_id: int):
    """Live (not soft-deleted) document of the product's organization."""
    return select(DocumentExtraction).where(
        DocumentExtraction.id == document_id,
        DocumentExtraction.organization_id == product.organization_id,
        DocumentExtraction.deleted_at.is_(None),
    )


def serialize_public_product(product: Product, organization: Optional[Organization]) -> Dict[str, Any]:
    return {
        "id": product.id,
        "slug": product.slug,
        "industry_code": product.industry_code,
        "product_name": product.product_name,
        "category": product.category,
        "product_data": dict(product.product_data or {}),
        "field_permissions": dict(product.field_permissions or {}),
        "published_at": product.published_at,
        "organization": {
            "name": organization.name if organization else None,
            "domain": organization.domain if organization else None,
        },
    }


# ============================================================================
# Product page
# ============================================================================

@router.get("/products/{slug}")
async def get_public_product(
    slug: str,
    request: Request,
    token: Optional[str] = None,
    session_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Published product filtered to the viewer's access level."""
    product = await get_published_product(db, slug=slug)
    access = await resolve_viewer(db, product, request, token, session_id)
    organization = await db.get(Organization, product.organization_id)

    payload = filter_product_payload(serialize_public_product(product, organization), access.access_level)
    payload["_access_source"] = access.source
    return payload


@router.get("/products/{slug}/files/{document_id}/download")
async def download_public_file(
    slug: str,
    document_id: int,
    request: Request,
    token: Optional[str] = None,
    session_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    storage: DocumentStorage = Depends(get_storage),
):
    """Short-lived download URL for a product file. Full access only."""
    product = await get_published_product(db, slug=slug)
    access = await resolve_viewer(db, product, request, token, session_id)
    if not can_download(access.access_level):
        raise HTTPException(status_code=403, detail="Request a quote to download product documents")

    files = (product.product_data or {}).get(UPLOADED_FILES_FIELD) or []
    if not any(isinstance(row, dict) and row.get("file_id") == document_id for row in files):
        raise HTTPException(status_code=404, detail="File not found")

    result = await db.execute(product_file_query(product, document_id))
    document = result.scalar_one_or_none()
    if not document:
        raise HTTPException(status_code=404, detail="File not found")

    try:
        url = await asyncio.to_thread(storage.create_signed_url, document.storage_path, None, document.filename)
    except StorageError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"url": url, "filename": document.filename, "expires_in": get_settings().signed_url_ttl_seconds}


# ============================================================================
# Tracking
# ============================================================================

@router.post("/track-access", response_model=TrackAccessResponse)
async def track_access(
    data: TrackAccessRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    if data.access_method not in ACCESS_METHODS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid access_method. Must be one of: {', '.join(ACCESS_METHODS)}",
        )
    product = await get_published_product(db, product_id=data.product_id)
    access = await resolve_viewer(db, product, request, data.token, data.session_id)

    log = await record_access(
        db,
        product,
        session_id=data.session_id,
        access_method=data.access_method,
        access_level=access.access_level,
        visitor_id=data.visitor_id,
        token_id=access.token_id,
        channel_id=access.channel_id,
        channel_name=access.channel_name,
        context={
            "ip_address": client_ip(request),
            "user_agent": request.headers.get("user-agent"),
            "referrer": data.referrer or request.headers.get("referer"),
            "utm_source": data.utm_source,
            "utm_medium": data.utm_medium,
            "utm_campaign": data.utm_campaign,
            "country_code": data.country_code,
            "city": data.city,
            "device_type": data.device_type,
        },
    )
    return TrackAccessResponse(
        access_id=log.id,
        access_level=log.access_level,
        is_unique_visit=bool(log.is_unique_visit),
    )


@router.post("/track-action")
async def track_action(data: TrackActionRequest, db: AsyncSession = Depends(get_db)):
    log = await db.get(ProductAccessLog, data.access_id)
    if not log:
        raise HTTPException(status_code=404, detail="Access record not found")
    try:
        action = await record_action(
            db,
            log,
            data.action_type,
            action_target=data.action_target,
            action_metadata=data.action_metadata,
        )
    except InvalidActionTypeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"action_id": action.id, "action_type": action.action_type}


# ============================================================================
# RFQ
# ============================================================================

@router.post("/rfq", response_model=RfqResponse)
async def submit_rfq(data: RfqRequest, db: AsyncSession = Depends(get_db)):
    """Store a request for quote and hand back a full-access link."""
    product = await get_published_product(db, product_id=data.product_id)

    access_log: Optional[ProductAccessLog] = None
    if data.session_id:
        result = await db.execute(
            select(ProductAccessLog)
            .where(
                ProductAccessLog.product_id == product.id,
                ProductAccessLog.session_id == data.session_id,
            )
            .order_by(ProductAccessLog.accessed_at.desc())
        )
        access_log = result.scalars().first()

    rfq = ProductRfq(
        product_id=product.id,
        organization_id=product.organization_id,
        access_id=access_log.id if access_log else None,
        name=data.name.strip(),
        email=data.email.strip().lower(),
        company=data.company.strip(),
        phone=data.phone,
        message=data.message,
        quantity=data.quantity,
        target_date=data.target_date,
    )
    db.add(rfq)
    await db.commit()
    await db.refresh(rfq)

    if access_log is not None:
        await record_action(db, access_log, "rfq_submit", action_target=str(rfq.id))

    issued = await create_rfq_upgrade_token(
        db,
        product_id=product.id,
        organization_id=product.organization_id,
        slug=product.slug,
        rfq_id=rfq.id,
    )

    from app.workers.extraction_tasks import send_rfq_notification_email
    try:
        send_rfq_notification_email.delay(rfq.id)
    except OperationalError as exc:
        logger.error("Could not queue notification for RFQ %s: %s", rfq.id, exc)

    logger.info("RFQ %s submitted for product %s", rfq.id, product.id)
    return RfqResponse(
        rfq_id=rfq.id,
        access_token=issued.token,
        access_url=build_public_url(issued.url),
        access_level=issued.access_level.value,
        expires_at=issued.expires_at,
    )


@router.post("/tokens:refresh")
async def refresh_access_token(data: TokenRefreshRequest, db: AsyncSession = Depends(get_db)):
    """Email a fresh full-access link to a buyer with a recent RFQ."""
    settings = get_settings()
    product = await get_published_product(db, product_id=data.product_id)

    result = await db.execute(
        select(ProductRfq)
        .where(
            ProductRfq.product_id == product.id,
            ProductRfq.email == data.email.strip().lower(),
        )
        .order_by(ProductRfq.submitted_at.desc())
    )
    rfq = result.scalars().first()
    if not rfq:
        raise HTTPException(status_code=404, detail="No RFQ found for this email and product")

    window = timedelta(days=settings.rfq_refresh_window_days)
    if rfq.submitted_at is None or datetime.utcnow() - rfq.submitted_at > window:
        raise HTTPException(status_code=403, detail="RFQ is too old. Please submit a new RFQ to regain access.")

    issued = await create_access_token(
        db,
        product_id=product.id,
        organization_id=product.organization_id,
        slug=product.slug,
        channel_id=f"rfq_refresh_{rfq.id}",
        channel_name="RFQ Token Refresh",
        access_level=AccessLevel.after_rfq,
        expires_in_days=settings.rfq_token_ttl_days,
        notes=f"Refreshed access for RFQ {rfq.id}",
    )

    from app.workers.extraction_tasks import send_access_link_email
    try:
        send_access_link_email.delay(
            rfq.email,
            product.product_name,
            build_public_url(issued.url),
            settings.rfq_token_ttl_days,
        )
    except OperationalError as exc:
        logger.error("Could not queue access link email for RFQ %s: %s", rfq.id, exc)
        raise HTTPException(status_code=503, detail="Unable to send access link right now")

    return {"message": "A new access link has been sent to your email"}
