"""Merchant product routes: CRUD, field permissions, preview, publish and analytics."""
import logging
import re
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_merchant_org_id, raise_validation_error
from app.models.base import get_db
from app.models.document import DocumentExtraction
from app.models.product import Product, ProductStatus
from app.services.access.defaults import (
    DEFAULT_FIELD_ACCESS_POLICY,
    apply_uniform_level,
    get_field_counts,
    normalize_field_permissions,
    seed_field_permissions,
    validate_public_fields,
)
from app.services.access.filtering import filter_product_payload
from app.services.access.levels import AccessLevel, coerce_access_level
from app.services.access.resolver import UPLOADED_FILES_FIELD
from app.services.access.tokens import build_public_url, product_path
from app.services.analytics import get_product_analytics
from app.services.extraction.parsing import product_values
from app.services.industries import (
    PRODUCT_LEVEL_FIELDS,
    IndustrySchema,
    UnsupportedIndustryError,
    get_default_industry,
    load_industry_schema,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class ProductCreate(BaseModel):
    product_name: str = Field(min_length=1, max_length=255)
    category: Optional[str] = None
    industry_code: Optional[str] = None
    product_data: Dict[str, Any] = Field(default_factory=dict)
    field_permissions: Optional[Dict[str, str]] = None


class ProductUpdate(BaseModel):
    product_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = None
    product_data: Optional[Dict[str, Any]] = None
    channel_links: Optional[List[Dict[str, Any]]] = None
    status: Optional[str] = None


class ProductResponse(BaseModel):
    id: int
    organization_id: int
    industry_code: str
    product_name: str
    category: Optional[str]
    slug: str
    status: str
    product_data: Dict[str, Any]
    field_permissions: Dict[str, str]
    channel_links: List[Dict[str, Any]]
    public_url: str
    published_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]


class PermissionsResponse(BaseModel):
    product_id: int
    field_permissions: Dict[str, str]
    counts: Dict[str, int]
    policy_version: str


class PermissionsReplace(BaseModel):
    field_permissions: Dict[str, str]


class PermissionUpdate(BaseModel):
    level: str


class BulkPermissionUpdate(BaseModel):
    level: str


# ============================================================================
# Helpers
# ============================================================================

def slugify(value: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", str(value or "").lower()).strip("-")[:80] or "product"
    return f"{base}-{secrets.token_hex(3)}"


def serialize_product(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "organization_id": product.organization_id,
        "industry_code": product.industry_code,
        "product_name": product.product_name,
        "category": product.category,
        "slug": product.slug,
        "status": product.status.value if product.status else ProductStatus.draft.value,
        "product_data": dict(product.product_data or {}),
        "field_permissions": dict(product.field_permissions or {}),
        "channel_links": list(product.channel_links or []),
        "public_url": build_public_url(product_path(product.slug)),
        "published_at": product.published_at,
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }


def product_fields(product_data: Dict[str, Any], product_name: str, category: Optional[str]) -> Dict[str, Any]:
    data = product_values(product_data)
    data["product_name"] = product_name
    if category is not None:
        data["category"] = category
    return data


def permission_fields(schema: IndustrySchema, product_data: Dict[str, Any]) -> set:
    """Fields a permission may be set on: the industry catalog plus the product's own fields."""
    return set(schema.known_fields) | set(product_data or {})


def seed_missing_permissions(
    permissions: Dict[str, str],
    product_data: Dict[str, Any],
    policy: Optional[Dict[str, Any]] = None,
) -> Dict[str, str]:
    """Give fields that have no permission yet their default level."""
    candidates = set(product_data or {}) | set(PRODUCT_LEVEL_FIELDS) | {UPLOADED_FILES_FIELD}
    missing = sorted(name for name in candidates if name not in permissions)
    return {**permissions, **seed_field_permissions(missing, policy or None)}


def ensure_public_requirements(permissions: Dict[str, str]) -> None:
    violations = validate_public_fields(permissions)
    if violations:
        raise HTTPException(status_code=422, detail={"error": "Invalid field permissions", "violations": violations})


def load_schema(industry_code: str) -> IndustrySchema:
    try:
        return load_industry_schema(industry_code)
    except UnsupportedIndustryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def status_change(current: ProductStatus, requested: str) -> ProductStatus:
    """Validate a status set through PATCH. Publishing only goes through ``:publish``."""
    try:
        status = ProductStatus(requested)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {requested}")
    if status is ProductStatus.published and current is not ProductStatus.published:
        raise HTTPException(status_code=409, detail="Use the :publish action to publish a product")
    return status


async def get_org_product(db: AsyncSession, product_id: int, organization_id: int) -> Product:
    result = await db.execute(
        select(Product).where(
            Product.id == product_id,
            Product.organization_id == organization_id,
        )
    )
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def permissions_response(product: Product) -> PermissionsResponse:
    permissions = dict(product.field_permissions or {})
    return PermissionsResponse(
        product_id=product.id,
        field_permissions=permissions,
        counts=get_field_counts(permissions),
        policy_version=DEFAULT_FIELD_ACCESS_POLICY["version"],
    )


# ============================================================================
# Products
# ============================================================================

@router.post("", response_model=ProductResponse)
async def create_product(
    data: ProductCreate,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a draft product with default field permissions."""
    schema = load_schema(data.industry_code or get_default_industry())
    product_data = product_fields(data.product_data, data.product_name, data.category)

    permissions = seed_missing_permissions({}, product_data, schema.default_field_access)
    if data.field_permissions:
        try:
            overrides = normalize_field_permissions(
                data.field_permissions,
                known_fields=permission_fields(schema, product_data),
            )
        except ValueError as exc:
            raise_validation_error(exc)
        permissions.update(overrides)
    ensure_public_requirements(permissions)

    product = Product(
        organization_id=organization_id,
        industry_code=schema.code,
        product_name=data.product_name,
        category=data.category,
        slug=slugify(data.product_name),
        status=ProductStatus.draft,
        product_data=product_data,
        field_permissions=permissions,
        channel_links=[],
    )
    db.add(product)
    await db.commit()
    await db.refresh(product)
    logger.info("Created product %s for organization %s", product.id, organization_id)
    return ProductResponse(**serialize_product(product))


@router.get("", response_model=List[ProductResponse])
async def list_products(
    status: Optional[str] = Query(default=None),
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Product).where(Product.organization_id == organization_id)
    if status:
        try:
            stmt = stmt.where(Product.status == ProductStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    result = await db.execute(stmt.order_by(Product.created_at.desc()))
    return [ProductResponse(**serialize_product(p)) for p in result.scalars().all()]


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    product = await get_org_product(db, product_id, organization_id)
    return ProductResponse(**serialize_product(product))


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    data: ProductUpdate,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Update product fields. Newly added fields get their default permission."""
    product = await get_org_product(db, product_id, organization_id)

    if data.product_name is not None:
        product.product_name = data.product_name
    if data.category is not None:
        product.category = data.category
    if data.channel_links is not None:
        product.channel_links = data.channel_links
    if data.status is not None:
        product.status = status_change(product.status, data.status)

    base_data = data.product_data if data.product_data is not None else dict(product.product_data or {})
    product.product_data = product_fields(base_data, product.product_name, product.category)
    product.field_permissions = seed_missing_permissions(
        dict(product.field_permissions or {}),
        product.product_data,
        load_schema(product.industry_code).default_field_access,
    )

    await db.commit()
    await db.refresh(product)
    return ProductResponse(**serialize_product(product))


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    product = await get_org_product(db, product_id, organization_id)
    # Documents outlive the product they were attached to.
    await db.execute(
        update(DocumentExtraction)
        .where(DocumentExtraction.product_id == product.id)
        .values(product_id=None)
    )
    await db.delete(product)
    await db.commit()
    return {"deleted": True}


# ============================================================================
# Field Permissions
# ============================================================================

@router.get("/{product_id}/permissions", response_model=PermissionsResponse)
async def get_permissions(
    product_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    product = await get_org_product(db, product_id, organization_id)
    return permissions_response(product)


@router.put("/{product_id}/permissions", response_model=PermissionsResponse)
async def replace_permissions(
    product_id: int,
    data: PermissionsReplace,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Replace the full permission mapping. Fields left out become public."""
    product = await get_org_product(db, product_id, organization_id)
    schema = load_schema(product.industry_code)
    try:
        permissions = normalize_field_permissions(
            data.field_permissions,
            known_fields=permission_fields(schema, product.product_data),
        )
    except ValueError as exc:
        raise_validation_error(exc)
    ensure_public_requirements(permissions)

    product.field_permissions = permissions
    await db.commit()
    await db.refresh(product)
    return permissions_response(product)


@router.patch("/{product_id}/permissions/{field_name}", response_model=PermissionsResponse)
async def update_field_permission(
    product_id: int,
    field_name: str,
    data: PermissionUpdate,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    product = await get_org_product(db, product_id, organization_id)
    schema = load_schema(product.industry_code)
    try:
        change = normalize_field_permissions(
            {field_name: data.level},
            known_fields=permission_fields(schema, product.product_data),
        )
    except ValueError as exc:
        raise_validation_error(exc)

    permissions = {**dict(product.field_permissions or {}), **change}
    ensure_public_requirements(permissions)
    product.field_permissions = permissions
    await db.commit()
    await db.refresh(product)
    return permissions_response(product)


@router.post("/{product_id}/permissions:bulk", response_model=PermissionsResponse)
async def bulk_update_permissions(
    product_id: int,
    data: BulkPermissionUpdate,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Set every field to one level ("all public" / "all after RFQ"); required fields stay public."""
    product = await get_org_product(db, product_id, organization_id)
    try:
        permissions = apply_uniform_level(
            seed_missing_permissions(dict(product.field_permissions or {}), product.product_data),
            data.level,
        )
    except ValueError as exc:
        raise_validation_error(exc)

    product.field_permissions = permissions
    await db.commit()
    await db.refresh(product)
    return permissions_response(product)


@router.post("/{product_id}/permissions:reset", response_model=PermissionsResponse)
async def reset_permissions(
    product_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    product = await get_org_product(db, product_id, organization_id)
    schema = load_schema(product.industry_code)
    product.field_permissions = seed_missing_permissions({}, product.product_data, schema.default_field_access)
    await db.commit()
    await db.refresh(product)
    return permissions_response(product)


# ============================================================================
# Preview, Publish, Analytics
# ============================================================================

@router.get("/{product_id}/preview")
async def preview_product(
    product_id: int,
    view_mode: str = Query(default=AccessLevel.public.value),
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Render the product exactly as a viewer at ``view_mode`` would see it."""
    try:
        level = coerce_access_level(view_mode)
    except ValueError as exc:
        raise_validation_error(exc)
    product = await get_org_product(db, product_id, organization_id)
    return filter_product_payload(serialize_product(product), level)


@router.post("/{product_id}:publish", response_model=ProductResponse)
async def publish_product(
    product_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    product = await get_org_product(db, product_id, organization_id)
    ensure_public_requirements(dict(product.field_permissions or {}))
    if not product.product_name:
        raise HTTPException(status_code=422, detail="product_name is required to publish")

    product.status = ProductStatus.published
    product.published_at = product.published_at or datetime.utcnow()
    await db.commit()
    await db.refresh(product)
    logger.info("Published product %s (%s)", product.id, product.slug)
    return ProductResponse(**serialize_product(product))


@router.get("/{product_id}/analytics")
async def product_analytics(
    product_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    product = await get_org_product(db, product_id, organization_id)
    summary = await get_product_analytics(db, product.id)
    return {"product_id": product.id, **summary}
