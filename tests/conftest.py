"""
Test configuration and fixtures for pytest.

The backend runs against an in-memory SQLite database; the Supabase owner
lookup, the clock and the email notifier are replaced per test.
"""

import asyncio
from datetime import datetime
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from eateasy_backend import notifications
from eateasy_backend.auth import get_current_owner
from eateasy_backend.database import get_db
from eateasy_backend.main import app, get_notifier, get_now
from eateasy_backend.models.hours_models import DayHours

OWNER_ID = "owner-123"

# 2026-10-19 is a Monday
MONDAY = datetime(2026, 10, 19)


def at(day: datetime, hhmm: str) -> datetime:
    hour, minute = map(int, hhmm.split(":"))
    return day.replace(hour=hour, minute=minute)


WEEK = [
    {"day": "monday", "open": "10:00", "close": "22:00", "closed": False},
    {"day": "tuesday", "open": "10:00", "close": "22:00", "closed": True},
    {"day": "wednesday", "open": "09:00", "close": "17:00", "closed": False},
    {"day": "thursday", "open": "09:00", "close": "17:00", "closed": False},
    {"day": "friday", "open": "09:00", "close": "17:00", "closed": False},
    {"day": "saturday", "open": "11:00", "close": "15:00", "closed": False},
    {"day": "sunday", "closed": True},
]


@pytest.fixture
def week_hours():
    """Fixture that provides a parsed weekly hours table."""
    return [DayHours.model_validate(entry) for entry in WEEK]


class FakeNotifier:
    """Records every email the backend tries to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def _record(self, kind, order):
        self.sent.append((kind, order.id))
        if self.fail:
            raise notifications.EmailDeliveryError("smtp down")
        return {"id": "email-1"}

    async def send_order_received(self, order):
        return await self._record("received", order)

    async def send_order_confirmation(self, order):
        return await self._record("confirmed", order)

    async def send_order_rejection(self, order):
        return await self._record("rejected", order)

    async def send_email(self, to, subject, html):
        self.sent.append(("email", to))
        return {"id": "email-2"}


async def drain_notifications():
    """Wait for fire-and-forget sends started by the code under test."""
    if notifications.background_tasks:
        await asyncio.gather(*list(notifications.background_tasks))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    """Mutable clock handed to the app through the get_now dependency."""
    return SimpleNamespace(now=at(MONDAY, "11:50"))


@pytest.fixture
async def client(session_factory, clock, notifier):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: clock.now
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_current_owner] = lambda: OWNER_ID

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
