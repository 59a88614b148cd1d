"""
rate_limit.py
Fixed-window request counter kept in the database, so every backend
instance sees the same counts for a client.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlmodel.ext.asyncio.session import AsyncSession

from eateasy_backend.models.rate_limit_models import EmailRateLimit

logger = logging.getLogger("eateasy.rate_limit")


def window_start(now: datetime, window_seconds: int) -> datetime:
    epoch = datetime(1970, 1, 1, tzinfo=now.tzinfo)
    elapsed = int((now - epoch).total_seconds())
    return epoch + timedelta(seconds=elapsed - elapsed % window_seconds)


async def hit(db: AsyncSession, key: str, now: datetime, limit: int, window_seconds: int) -> bool:
    """Count one request for `key`; return False once the window's limit is exceeded."""
    start = window_start(now, window_seconds)

    await db.execute(
        delete(EmailRateLimit).where(EmailRateLimit.client_key == key, EmailRateLimit.window_start < start)
    )

    result = await db.execute(
        select(EmailRateLimit).where(EmailRateLimit.client_key == key, EmailRateLimit.window_start == start)
    )
    counter = result.scalar_one_or_none()
    if counter is None:
        counter = EmailRateLimit(client_key=key, window_start=start, hits=0)

    counter.hits += 1
    db.add(counter)
    try:
        await db.commit()
    except IntegrityError:
        # Another instance created this window first; count against its row
        await db.rollback()
        result = await db.execute(
            select(EmailRateLimit).where(EmailRateLimit.client_key == key, EmailRateLimit.window_start == start)
        )
        counter = result.scalar_one()
        counter.hits += 1
        db.add(counter)
        await db.commit()

    allowed = counter.hits <= limit
    if not allowed:
        logger.warning("Rate limit exceeded for %s (%d hits in window)", key, counter.hits)
    return allowed
