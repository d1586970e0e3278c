"""Product page access tracking and aggregation."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.access import ProductAccessAction, ProductAccessLog
from app.models.product import Product, ProductStatus
from app.models.rfq import ProductRfq, RfqStatus
from app.services.access.levels import ACCESS_LEVEL_ORDER, AccessLevel, coerce_access_level

logger = logging.getLogger(__name__)

ACCESS_METHODS = ("url", "qr_code")

VALID_ACTION_TYPES = (
    "page_view",
    "field_reveal",
    "document_view",
    "document_download",
    "rfq_submit",
    "email_click",
    "phone_click",
    "link_click",
    "share_click",
)

DIRECT_CHANNEL = "direct"


class InvalidActionTypeError(ValueError):
    def __init__(self, action_type: Any) -> None:
        super().__init__(f"Invalid action_type. Must be one of: {', '.join(VALID_ACTION_TYPES)}")
        self.action_type = action_type


async def is_unique_visit(db: AsyncSession, product_id: int, visitor_id: Optional[str]) -> bool:
    """First recorded visit of this visitor to this product. Anonymous visits count as unique."""
    if not visitor_id:
        return True
    result = await db.execute(
        select(func.count(ProductAccessLog.id)).where(
            ProductAccessLog.product_id == product_id,
            ProductAccessLog.visitor_id == visitor_id,
        )
    )
    return int(result.scalar_one() or 0) == 0


async def record_access(
    db: AsyncSession,
    product: Product,
    *,
    session_id: str,
    access_method: str = "url",
    access_level: Any = AccessLevel.public,
    visitor_id: Optional[str] = None,
    token_id: Optional[int] = None,
    channel_id: Optional[str] = None,
    channel_name: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> ProductAccessLog:
    if access_method not in ACCESS_METHODS:
        raise ValueError(f"Invalid access_method. Must be one of: {', '.join(ACCESS_METHODS)}")
    level = coerce_access_level(access_level)
    ctx = dict(context or {})

    log = ProductAccessLog(
        product_id=product.id,
        organization_id=product.organization_id,
        access_method=access_method,
        access_level=level.value,
        channel_id=channel_id,
        channel_name=channel_name,
        token_id=token_id,
        session_id=session_id,
        visitor_id=visitor_id,
        is_unique_visit=await is_unique_visit(db, product.id, visitor_id),
        ip_address=ctx.get("ip_address"),
        user_agent=ctx.get("user_agent"),
        referrer=ctx.get("referrer"),
        utm_source=ctx.get("utm_source"),
        utm_medium=ctx.get("utm_medium"),
        utm_campaign=ctx.get("utm_campaign"),
        country_code=ctx.get("country_code"),
        city=ctx.get("city"),
        device_type=ctx.get("device_type"),
    )
    db.add(log)
    await db.commit()
    await db.refresh(log)
    return log


async def record_action(
    db: AsyncSession,
    access_log: ProductAccessLog,
    action_type: str,
    *,
    action_target: Optional[str] = None,
    action_metadata: Optional[Dict[str, Any]] = None,
) -> ProductAccessAction:
    if action_type not in VALID_ACTION_TYPES:
        raise InvalidActionTypeError(action_type)
    action = ProductAccessAction(
        access_id=access_log.id,
        product_id=access_log.product_id,
        organization_id=access_log.organization_id,
        action_type=action_type,
        action_target=action_target,
        action_metadata=action_metadata or {},
    )
    db.add(action)
    await db.commit()
    await db.refresh(action)
    return action


def summarize_product_analytics(
    logs: Iterable[Any],
    actions: Iterable[Any],
    rfqs: Iterable[Any],
) -> Dict[str, Any]:
    """Aggregate access logs, actions and RFQs for one product."""
    logs = list(logs)
    actions = list(actions)
    rfq_count = len(list(rfqs))

    by_channel: Counter = Counter()
    by_method: Counter = Counter()
    by_level: Counter = Counter({level.value: 0 for level in ACCESS_LEVEL_ORDER})
    by_day: Counter = Counter()
    visitors = set()
    unique_visits = 0
    for log in logs:
        by_channel[log.channel_id or DIRECT_CHANNEL] += 1
        by_method[log.access_method or "url"] += 1
        try:
            by_level[coerce_access_level(log.access_level).value] += 1
        except ValueError:
            logger.warning("Skipping access log %s with invalid level %r", getattr(log, "id", None), log.access_level)
        if log.visitor_id:
            visitors.add(log.visitor_id)
        if log.is_unique_visit:
            unique_visits += 1
        accessed_at: Optional[datetime] = getattr(log, "accessed_at", None)
        if accessed_at is not None:
            by_day[accessed_at.date().isoformat()] += 1

    action_counts = Counter({action_type: 0 for action_type in VALID_ACTION_TYPES})
    for action in actions:
        action_counts[action.action_type] += 1

    total_views = len(logs)
    return {
        "total_views": total_views,
        "unique_visitors": len(visitors) if visitors else unique_visits,
        "views_by_channel": dict(by_channel.most_common()),
        "views_by_method": dict(by_method),
        "views_by_access_level": dict(by_level),
        "views_by_day": dict(sorted(by_day.items())),
        "actions": dict(action_counts),
        "rfq_count": rfq_count,
        "conversion_rate": round(rfq_count / total_views, 4) if total_views else 0.0,
    }


async def get_product_analytics(db: AsyncSession, product_id: int) -> Dict[str, Any]:
    logs = await db.execute(select(ProductAccessLog).where(ProductAccessLog.product_id == product_id))
    actions = await db.execute(select(ProductAccessAction).where(ProductAccessAction.product_id == product_id))
    rfqs = await db.execute(select(ProductRfq).where(ProductRfq.product_id == product_id))
    return summarize_product_analytics(
        logs.scalars().all(),
        actions.scalars().all(),
        rfqs.scalars().all(),
    )


async def _count(db: AsyncSession, stmt) -> int:
    result = await db.execute(stmt)
    return int(result.scalar_one() or 0)


async def get_dashboard_stats(db: AsyncSession, organization_id: int) -> Dict[str, Any]:
    products = select(func.count(Product.id)).where(Product.organization_id == organization_id)
    rfqs = select(func.count(ProductRfq.id)).where(ProductRfq.organization_id == organization_id)
    views = select(func.count(ProductAccessLog.id)).where(ProductAccessLog.organization_id == organization_id)
    return {
        "products": {
            "total": await _count(db, products),
            "published": await _count(db, products.where(Product.status == ProductStatus.published)),
            "draft": await _count(db, products.where(Product.status == ProductStatus.draft)),
        },
        "rfqs": {
            "total": await _count(db, rfqs),
            "new": await _count(db, rfqs.where(ProductRfq.status == RfqStatus.new)),
            "responded": await _count(db, rfqs.where(ProductRfq.status == RfqStatus.responded)),
        },
        "views": {
            "total": await _count(db, views),
            "unique": await _count(db, views.where(ProductAccessLog.is_unique_visit.is_(True))),
        },
    }
