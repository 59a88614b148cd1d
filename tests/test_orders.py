"""
Tests for the order submission gate and the owner order workflow.
"""
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from pydantic import ValidationError
from sqlalchemy import DateTime
from sqlalchemy.exc import OperationalError

from eateasy_backend.availability import list_available_dates, list_pickup_time_slots
from eateasy_backend.models.order_models import (
    Order,
    OrderCreate,
    OrderStatus,
    PickupMode,
    PickupSelection,
)
from eateasy_backend.models.rate_limit_models import EmailRateLimit
from eateasy_backend.models.restaurant_models import Restaurant
from eateasy_backend.orders import (
    AUTO_CANCEL_REASON,
    AsapUnavailable,
    DateClosed,
    InvalidStatusTransition,
    MissingEstimatedPickupTime,
    NoHoursConfigured,
    OrderNotFound,
    OrderStoreUnavailable,
    TimeUnavailable,
    auto_cancel_expired_orders,
    get_order,
    submit_order,
    update_order_status,
    validate_selection,
)

from conftest import MONDAY, FakeNotifier, at, drain_notifications

NOW = at(MONDAY, "11:50")


def order_request(pickup: dict) -> OrderCreate:
    return OrderCreate.model_validate({
        "customer": {"name": " Kari Nordmann ", "email": "kari@example.com", "phone": "+47 900 00 000"},
        "items": [{"itemName": "Pad Thai", "quantity": 2, "itemPrice": 149.0}],
        "total": 298.0,
        "pickup": pickup,
    })


@pytest.fixture
async def restaurant(db):
    restaurant = Restaurant(name="Bangkok Street", owner_id="owner-123")
    db.add(restaurant)
    await db.commit()
    await db.refresh(restaurant)
    return restaurant


class TestValidateSelection:
    def test_no_hours_configured(self):
        with pytest.raises(NoHoursConfigured):
            validate_selection([], NOW, PickupSelection(mode="asap"))

    def test_asap_ok(self, week_hours):
        validate_selection(week_hours, NOW, PickupSelection(mode="asap"))

    def test_asap_past_cutoff(self, week_hours):
        with pytest.raises(AsapUnavailable):
            validate_selection(week_hours, at(MONDAY, "21:50"), PickupSelection(mode="asap"))

    def test_closed_date(self, week_hours):
        selection = PickupSelection(mode="scheduled", date=date(2026, 10, 20), time="12:00 PM")
        with pytest.raises(DateClosed):
            validate_selection(week_hours, NOW, selection)

    def test_date_beyond_lookahead(self, week_hours):
        selection = PickupSelection(mode="scheduled", date=date(2026, 10, 26), time="12:00 PM")
        with pytest.raises(DateClosed):
            validate_selection(week_hours, NOW, selection)

    def test_time_inside_buffer(self, week_hours):
        selection = PickupSelection(mode="scheduled", date=MONDAY.date(), time="12:00 PM")
        with pytest.raises(TimeUnavailable):
            validate_selection(week_hours, NOW, selection)

    def test_time_compared_as_display_string(self, week_hours):
        selection = PickupSelection(mode="scheduled", date=MONDAY.date(), time="12:30PM")
        with pytest.raises(TimeUnavailable):
            validate_selection(week_hours, NOW, selection)

    def test_every_listed_slot_validates(self, week_hours):
        for day in list_available_dates(week_hours, NOW):
            for slot in list_pickup_time_slots(week_hours, NOW, day):
                validate_selection(week_hours, NOW, PickupSelection(mode="scheduled", date=day, time=slot))

    def test_scheduled_requires_date_and_time(self):
        with pytest.raises(ValidationError):
            PickupSelection(mode="scheduled", date=MONDAY.date())

    def test_asap_ignores_date_and_time(self):
        selection = PickupSelection(mode="asap", date=MONDAY.date(), time="1:00 PM")
        assert selection.date is None and selection.time is None


@pytest.mark.parametrize("table,column", [
    (Order, "created_at"),
    (Order, "updated_at"),
    (Order, "completed_at"),
    (Order, "auto_cancel_at"),
    (EmailRateLimit, "window_start"),
])
def test_timestamp_columns_are_plain_datetime(table, column):
    """Restaurant-local times are naive, so these columns must not demand a timezone."""
    column_type = table.__table__.c[column].type
    assert type(column_type) is DateTime
    assert column_type.timezone is False


class TestSubmitOrder:
    async def test_asap_order_written(self, db, restaurant, week_hours, notifier):
        order = await submit_order(db, restaurant.id, order_request({"mode": "asap"}), week_hours, NOW, notifier)
        await drain_notifications()

        stored = await get_order(db, restaurant.id, order.id)
        assert stored.id.startswith("order_")
        assert stored.customer_name == "Kari Nordmann"
        assert stored.pickup_option == PickupMode.ASAP
        assert stored.pickup_time == "asap"
        assert stored.pickup_date == MONDAY.date()
        assert stored.auto_cancel_at == NOW + timedelta(minutes=3)
        assert stored.status == OrderStatus.PENDING
        assert stored.estimated_pickup_time is None
        assert stored.items[0]["itemName"] == "Pad Thai"
        assert notifier.sent == [("received", order.id)]

    async def test_local_timestamps_stored_naive(self, db, restaurant, week_hours):
        order = await submit_order(db, restaurant.id, order_request({"mode": "asap"}), week_hours, NOW)
        db.expire_all()

        stored = await get_order(db, restaurant.id, order.id)
        assert stored.created_at == NOW
        assert stored.created_at.tzinfo is None
        assert stored.auto_cancel_at == NOW + timedelta(minutes=3)

    async def test_scheduled_order_written(self, db, restaurant, week_hours):
        request = order_request({"mode": "scheduled", "date": "2026-10-21", "time": "9:30 AM"})
        order = await submit_order(db, restaurant.id, request, week_hours, NOW)
        assert order.pickup_option == PickupMode.SCHEDULED
        assert order.pickup_date == date(2026, 10, 21)
        assert order.pickup_time == "9:30 AM"
        assert order.auto_cancel_at is None

    async def test_invalid_selection_writes_nothing(self, week_hours):
        db = MagicMock()
        db.commit = AsyncMock()
        with pytest.raises(AsapUnavailable):
            await submit_order(db, uuid4(), order_request({"mode": "asap"}), week_hours, at(MONDAY, "21:50"))
        db.add.assert_not_called()
        db.commit.assert_not_awaited()

    async def test_store_failure(self, week_hours, notifier):
        db = MagicMock()
        db.commit = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("connection lost")))
        db.rollback = AsyncMock()
        with pytest.raises(OrderStoreUnavailable):
            await submit_order(db, uuid4(), order_request({"mode": "asap"}), week_hours, NOW, notifier)
        db.rollback.assert_awaited_once()
        assert notifier.sent == []

    async def test_notification_failure_keeps_order(self, db, restaurant, week_hours):
        failing = FakeNotifier(fail=True)
        order = await submit_order(db, restaurant.id, order_request({"mode": "asap"}), week_hours, NOW, failing)
        await drain_notifications()

        assert failing.sent == [("received", order.id)]
        assert (await get_order(db, restaurant.id, order.id)).status == OrderStatus.PENDING


class TestOrderWorkflow:
    @pytest.fixture
    async def order(self, db, restaurant, week_hours):
        return await submit_order(db, restaurant.id, order_request({"mode": "asap"}), week_hours, NOW)

    async def test_accept_needs_estimate(self, db, restaurant, order):
        with pytest.raises(MissingEstimatedPickupTime):
            await update_order_status(db, restaurant.id, order.id, OrderStatus.ACCEPTED, NOW, estimated_pickup_time="  ")

    async def test_accept_sends_confirmation(self, db, restaurant, order, notifier):
        updated = await update_order_status(
            db, restaurant.id, order.id, OrderStatus.ACCEPTED, NOW,
            estimated_pickup_time=" 20-30 mins ", notifier=notifier,
        )
        await drain_notifications()
        assert updated.status == OrderStatus.ACCEPTED
        assert updated.estimated_pickup_time == "20-30 mins"
        assert notifier.sent == [("confirmed", order.id)]

    async def test_reject_sends_rejection(self, db, restaurant, order, notifier):
        updated = await update_order_status(
            db, restaurant.id, order.id, OrderStatus.REJECTED, NOW,
            cancellation_reason="Out of noodles", notifier=notifier,
        )
        await drain_notifications()
        assert updated.cancellation_reason == "Out of noodles"
        assert notifier.sent == [("rejected", order.id)]

    async def test_complete_after_accept(self, db, restaurant, order):
        await update_order_status(db, restaurant.id, order.id, OrderStatus.ACCEPTED, NOW, estimated_pickup_time="15 min")
        later = NOW + timedelta(minutes=20)
        done = await update_order_status(db, restaurant.id, order.id, OrderStatus.COMPLETED, later)
        assert done.completed_at == later

    async def test_pending_cannot_complete(self, db, restaurant, order):
        with pytest.raises(InvalidStatusTransition):
            await update_order_status(db, restaurant.id, order.id, OrderStatus.COMPLETED, NOW)

    async def test_unknown_order(self, db, restaurant):
        with pytest.raises(OrderNotFound):
            await update_order_status(db, restaurant.id, "order_missing", OrderStatus.REJECTED, NOW)


class TestAutoCancel:
    async def test_expired_asap_orders_rejected(self, db, restaurant, week_hours, notifier):
        asap = await submit_order(db, restaurant.id, order_request({"mode": "asap"}), week_hours, NOW)
        scheduled = await submit_order(
            db, restaurant.id,
            order_request({"mode": "scheduled", "date": "2026-10-21", "time": "9:30 AM"}),
            week_hours, NOW,
        )

        assert await auto_cancel_expired_orders(db, restaurant.id, NOW + timedelta(minutes=2), notifier) == []

        expired = await auto_cancel_expired_orders(db, restaurant.id, NOW + timedelta(minutes=3), notifier)
        await drain_notifications()
        assert [o.id for o in expired] == [asap.id]

        cancelled = await get_order(db, restaurant.id, asap.id)
        assert cancelled.status == OrderStatus.REJECTED
        assert cancelled.cancellation_reason == AUTO_CANCEL_REASON
        assert (await get_order(db, restaurant.id, scheduled.id)).status == OrderStatus.PENDING
        assert notifier.sent == [("rejected", asap.id)]

    async def test_accepted_orders_untouched(self, db, restaurant, week_hours):
        order = await submit_order(db, restaurant.id, order_request({"mode": "asap"}), week_hours, NOW)
        await update_order_status(db, restaurant.id, order.id, OrderStatus.ACCEPTED, NOW, estimated_pickup_time="10 min")
        assert await auto_cancel_expired_orders(db, restaurant.id, NOW + timedelta(hours=1)) == []
