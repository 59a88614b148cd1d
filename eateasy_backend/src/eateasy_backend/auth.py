import logging
from functools import lru_cache
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlmodel.ext.asyncio.session import AsyncSession
from supabase import Client, create_client

from eateasy_backend.database import get_db
from eateasy_backend.models.restaurant_models import Restaurant
from eateasy_backend.settings import settings

logger = logging.getLogger("eateasy.auth")


@lru_cache
def get_supabase_admin() -> Client:
    """Privileged Supabase client (secret key), created on first use."""
    if not settings.NEXT_PUBLIC_SUPABASE_URL or not settings.SUPABASE_SECRET_KEY:
        raise RuntimeError("Supabase credentials are not configured")
    return create_client(settings.NEXT_PUBLIC_SUPABASE_URL, settings.SUPABASE_SECRET_KEY)


async def get_current_owner(authorization: str | None = Header(default=None)) -> str:
    """Resolve the dashboard user id from a Supabase access token."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()

    try:
        supabase_admin = get_supabase_admin()
    except RuntimeError as e:
        logger.error("Owner authentication unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Authentication is not configured")

    try:
        response = supabase_admin.auth.get_user(token)
    except Exception as e:
        logger.info("Rejected dashboard token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    if response is None or response.user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return response.user.id


async def require_restaurant_owner(
    restaurant_id: UUID,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> Restaurant:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    if restaurant.owner_id != owner_id:
        raise HTTPException(status_code=403, detail="Not the owner of this restaurant")
    return restaurant
