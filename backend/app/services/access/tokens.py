"""Channel link tokens and viewer access level determination.

Tokens are 256-bit random hex strings. Only their SHA-256 hash is stored;
the plain token is returned once, at creation, inside the shareable URL.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.models.access import ProductAccessLog, ProductAccessToken
from app.services.access.levels import AccessLevel, access_rank, coerce_access_level, promote

logger = logging.getLogger(__name__)


@dataclass
class TokenValidation:
    valid: bool
    access_level: Optional[AccessLevel] = None
    token_id: Optional[int] = None
    product_id: Optional[int] = None
    channel_id: Optional[str] = None
    channel_name: Optional[str] = None
    error: Optional[str] = None


@dataclass
class IssuedToken:
    token: str
    token_id: int
    url: str
    access_level: AccessLevel
    expires_at: Optional[datetime]


@dataclass
class ResolvedAccess:
    access_level: AccessLevel
    source: str  # token|merchant|session|public
    token_id: Optional[int] = None
    channel_id: Optional[str] = None
    channel_name: Optional[str] = None


def generate_secure_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_token(token: str, token_hash: str) -> bool:
    return hmac.compare_digest(hash_token(token), str(token_hash or ""))


def product_path(slug: str, token: Optional[str] = None) -> str:
    path = f"/products/{slug}"
    return f"{path}?token={token}" if token else path


def build_public_url(path: str) -> str:
    base = get_settings().public_app_url.rstrip("/")
    return f"{base}{path}"


def check_token_record(
    record: Optional[ProductAccessToken],
    *,
    product_id: Optional[int] = None,
    client_ip: Optional[str] = None,
    as_of: Optional[datetime] = None,
) -> TokenValidation:
    """Pure checks on a stored token row (revocation, expiry, product and IP binding)."""
    if record is None or record.is_revoked:
        return TokenValidation(valid=False, error="Invalid token")
    now = as_of or datetime.utcnow()
    if record.expires_at is not None and record.expires_at < now:
        return TokenValidation(valid=False, error="Token expired")
    if product_id is not None and record.product_id != product_id:
        return TokenValidation(valid=False, error="Token not valid for this product")
    if record.bound_ip and client_ip and record.bound_ip != client_ip:
        return TokenValidation(valid=False, error="Token not valid for this client")
    try:
        level = coerce_access_level(record.access_level)
    except ValueError:
        logger.error("Token %s has invalid stored access level %r", record.id, record.access_level)
        return TokenValidation(valid=False, error="Invalid token")
    return TokenValidation(
        valid=True,
        access_level=level,
        token_id=record.id,
        product_id=record.product_id,
        channel_id=record.channel_id,
        channel_name=record.channel_name,
    )


async def validate_access_token(
    db: AsyncSession,
    token: str,
    *,
    product_id: Optional[int] = None,
    client_ip: Optional[str] = None,
) -> TokenValidation:
    result = await db.execute(
        select(ProductAccessToken).where(ProductAccessToken.token_hash == hash_token(token))
    )
    record = result.scalar_one_or_none()
    validation = check_token_record(record, product_id=product_id, client_ip=client_ip)
    if not validation.valid:
        return validation

    now = datetime.utcnow()
    record.use_count = int(record.use_count or 0) + 1
    record.last_used_at = now
    if record.first_used_at is None:
        record.first_used_at = now
    await db.commit()
    return validation


async def create_access_token(
    db: AsyncSession,
    *,
    product_id: int,
    organization_id: int,
    slug: str,
    channel_id: str,
    access_level: Any,
    channel_name: Optional[str] = None,
    expires_in_days: Optional[int] = None,
    bound_ip: Optional[str] = None,
    created_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> IssuedToken:
    level = coerce_access_level(access_level)
    token = generate_secure_token()
    expires_at = None
    if expires_in_days:
        expires_at = datetime.utcnow() + timedelta(days=int(expires_in_days))

    record = ProductAccessToken(
        token_hash=hash_token(token),
        product_id=product_id,
        organization_id=organization_id,
        channel_id=channel_id,
        channel_name=channel_name,
        access_level=level.value,
        expires_at=expires_at,
        bound_ip=bound_ip,
        created_by=created_by,
        notes=notes,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    logger.info("Issued %s token %s for product %s (channel=%s)", level.value, record.id, product_id, channel_id)

    return IssuedToken(
        token=token,
        token_id=record.id,
        url=product_path(slug, token),
        access_level=level,
        expires_at=expires_at,
    )


async def create_rfq_upgrade_token(
    db: AsyncSession,
    *,
    product_id: int,
    organization_id: int,
    slug: str,
    rfq_id: int,
    channel_prefix: str = "rfq",
    channel_name: str = "RFQ Submission",
) -> IssuedToken:
    settings = get_settings()
    return await create_access_token(
        db,
        product_id=product_id,
        organization_id=organization_id,
        slug=slug,
        channel_id=f"{channel_prefix}_{rfq_id}",
        channel_name=channel_name,
        access_level=AccessLevel.after_rfq,
        expires_in_days=settings.rfq_token_ttl_days,
        notes=f"Generated after RFQ submission: {rfq_id}",
    )


async def revoke_access_token(db: AsyncSession, token_id: int, organization_id: int) -> bool:
    result = await db.execute(
        select(ProductAccessToken).where(
            ProductAccessToken.id == token_id,
            ProductAccessToken.organization_id == organization_id,
        )
    )
    record = result.scalar_one_or_none()
    if record is None:
        return False
    record.is_revoked = True
    await db.commit()
    return True


async def list_product_tokens(db: AsyncSession, product_id: int, organization_id: int) -> List[ProductAccessToken]:
    result = await db.execute(
        select(ProductAccessToken)
        .where(
            ProductAccessToken.product_id == product_id,
            ProductAccessToken.organization_id == organization_id,
        )
        .order_by(ProductAccessToken.created_at.desc())
    )
    return list(result.scalars().all())


async def determine_access_level(
    db: AsyncSession,
    *,
    token: Optional[str] = None,
    is_merchant: bool = False,
    product_id: Optional[int] = None,
    client_ip: Optional[str] = None,
    current_level: Optional[Any] = None,
) -> ResolvedAccess:
    """Resolve the viewer's level. Priority: token > merchant > public.

    ``current_level`` is the level the viewer already reached in this session;
    the result never drops below it.
    """
    current = coerce_access_level(current_level) if current_level is not None else AccessLevel.public

    if token:
        validation = await validate_access_token(db, token, product_id=product_id, client_ip=client_ip)
        if validation.valid:
            level = promote(current, validation.access_level)
            return ResolvedAccess(
                access_level=level,
                source="token",
                token_id=validation.token_id,
                channel_id=validation.channel_id,
                channel_name=validation.channel_name,
            )
        logger.info("Rejected access token for product %s: %s", product_id, validation.error)

    if is_merchant:
        return ResolvedAccess(access_level=AccessLevel.after_rfq, source="merchant")

    if current is not AccessLevel.public:
        return ResolvedAccess(access_level=current, source="session")
    return ResolvedAccess(access_level=AccessLevel.public, source="public")


async def session_access_level(
    db: AsyncSession,
    product_id: int,
    session_id: Optional[str],
    *,
    client_ip: Optional[str] = None,
    as_of: Optional[datetime] = None,
) -> AccessLevel:
    """Highest level recorded server-side for this visit session.

    A logged level only counts while the token that granted it still passes
    ``check_token_record`` (not revoked, not expired, same client IP) and the
    visit is inside the session window.
    """
    if not session_id:
        return AccessLevel.public
    now = as_of or datetime.utcnow()
    cutoff = now - timedelta(hours=get_settings().session_access_window_hours)
    result = await db.execute(
        select(ProductAccessLog.access_level, ProductAccessToken)
        .outerjoin(ProductAccessToken, ProductAccessToken.id == ProductAccessLog.token_id)
        .where(
            ProductAccessLog.product_id == product_id,
            ProductAccessLog.session_id == session_id,
            ProductAccessLog.accessed_at >= cutoff,
        )
    )
    level = AccessLevel.public
    for recorded, token_record in result.all():
        validation = check_token_record(token_record, product_id=product_id, client_ip=client_ip, as_of=now)
        if not validation.valid:
            continue
        try:
            recorded_level = coerce_access_level(recorded)
        except ValueError:
            logger.warning("Ignoring invalid access level %r in access log for session %s", recorded, session_id)
            continue
        # A log row never grants more than its token does today.
        level = promote(level, min(recorded_level, validation.access_level, key=access_rank))
    return level
