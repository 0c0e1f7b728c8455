# core/business_context.py
"""
Cached business lookups for exports and notifications.

Snapshots are plain dataclasses so cached values never hold on to a
session-bound ORM instance.
"""
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.cache import TTLCache
from core.errors import NotFoundError
from db_models.business import Business


@dataclass(frozen=True)
class BusinessSnapshot:
    id: str
    name: str
    email: str | None
    is_active: bool


business_cache = TTLCache("business", ttl_seconds=settings.BUSINESS_CACHE_TTL_SECONDS)


async def get_business_snapshot(db: AsyncSession, business_id: str) -> BusinessSnapshot:
    cached = business_cache.get(business_id)
    if cached is not None:
        return cached

    result = await db.execute(select(Business).where(Business.id == business_id))
    business = result.scalar_one_or_none()
    if business is None:
        raise NotFoundError("Business not found", details={"business_id": business_id})

    snapshot = BusinessSnapshot(
        id=business.id,
        name=business.name,
        email=business.email,
        is_active=business.is_active,
    )
    business_cache.set(business_id, snapshot)
    return snapshot
