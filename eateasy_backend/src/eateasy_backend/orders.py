"""
orders.py
Order submission gate and the owner-side order workflow.

A pickup selection is re-validated against the availability engine on every
submission, so a choice the customer saw as open minutes ago is checked again
right before the order is written.
"""

import logging
import time as time_module
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from eateasy_backend.availability import (
    LOOKAHEAD_DAYS,
    is_asap_available,
    list_available_dates,
    list_pickup_time_slots,
)
from eateasy_backend.models.hours_models import OpeningHours
from eateasy_backend.models.order_models import (
    ASAP_SENTINEL,
    Order,
    OrderCreate,
    OrderStatus,
    PickupMode,
    PickupSelection,
)
from eateasy_backend.notifications import fire_and_forget

logger = logging.getLogger("eateasy.orders")

ASAP_AUTO_CANCEL_MINUTES = 3
AUTO_CANCEL_REASON = "Restaurant is busy - unable to process your order at this time"

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.REJECTED},
    OrderStatus.ACCEPTED: {OrderStatus.COMPLETED},
    OrderStatus.REJECTED: set(),
    OrderStatus.COMPLETED: set(),
}


# --------- ERRORS ---------
class PickupUnavailable(Exception):
    """A pickup selection that cannot be honoured; the customer must choose again."""
    kind = "PickupUnavailable"
    message = "Selected pickup is not available"

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        super().__init__(self.message)


class NoHoursConfigured(PickupUnavailable):
    kind = "NoHoursConfigured"
    message = "This restaurant has not set up its opening hours yet"


class AsapUnavailable(PickupUnavailable):
    kind = "AsapUnavailable"
    message = "ASAP pickup is not available at this time"


class DateClosed(PickupUnavailable):
    kind = "DateClosed"
    message = "Restaurant is closed on selected date"


class TimeUnavailable(PickupUnavailable):
    kind = "TimeUnavailable"
    message = "Selected pickup time is not available"


class OrderStoreUnavailable(Exception):
    pass


class OrderNotFound(Exception):
    pass


class InvalidStatusTransition(Exception):
    pass


class MissingEstimatedPickupTime(Exception):
    pass


# --------- STORE READS ---------
async def load_hours(db: AsyncSession, restaurant_id: UUID) -> list[OpeningHours]:
    result = await db.execute(select(OpeningHours).where(OpeningHours.restaurant_id == restaurant_id))
    return list(result.scalars().all())


async def get_order(db: AsyncSession, restaurant_id: UUID, order_id: str) -> Order:
    result = await db.execute(
        select(Order).where(Order.id == order_id, Order.restaurant_id == restaurant_id)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise OrderNotFound(order_id)
    return order


async def list_orders(db: AsyncSession, restaurant_id: UUID, status: Optional[OrderStatus] = None) -> list[Order]:
    stmt = select(Order).where(Order.restaurant_id == restaurant_id)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    result = await db.execute(stmt.order_by(Order.created_at.desc()))
    return list(result.scalars().all())


# --------- SUBMISSION ---------
def validate_selection(hours: list, now: datetime, selection: PickupSelection) -> None:
    if not hours:
        raise NoHoursConfigured()

    if selection.mode == PickupMode.ASAP:
        if not is_asap_available(hours, now):
            raise AsapUnavailable()
        return

    if selection.date not in list_available_dates(hours, now, LOOKAHEAD_DAYS):
        raise DateClosed()
    if selection.time not in list_pickup_time_slots(hours, now, selection.date):
        raise TimeUnavailable()


def new_order_id() -> str:
    return f"order_{int(time_module.time() * 1000)}_{uuid4().hex[:6]}"


async def submit_order(
    db: AsyncSession,
    restaurant_id: UUID,
    data: OrderCreate,
    hours: list,
    now: datetime,
    notifier=None,
) -> Order:
    """Validate the pickup selection and persist the order."""
    selection = data.pickup
    validate_selection(hours, now, selection)

    is_asap = selection.mode == PickupMode.ASAP
    order = Order(
        id=new_order_id(),
        restaurant_id=restaurant_id,
        customer_name=data.customer.name.strip(),
        customer_email=str(data.customer.email).strip(),
        customer_phone=data.customer.phone.strip(),
        special_instructions=(data.customer.special_instructions or "").strip() or None,
        items=[item.model_dump() for item in data.items],
        total=data.total,
        pickup_option=selection.mode,
        pickup_date=now.date() if is_asap else selection.date,
        pickup_time=ASAP_SENTINEL if is_asap else selection.time,
        status=OrderStatus.PENDING,
        created_at=now,
        updated_at=now,
        auto_cancel_at=now + timedelta(minutes=ASAP_AUTO_CANCEL_MINUTES) if is_asap else None,
    )
    db.add(order)

    try:
        await db.commit()
        await db.refresh(order)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Order store write failed for restaurant %s: %s", restaurant_id, e)
        raise OrderStoreUnavailable("Failed to place order. Please try again.") from e

    logger.info("Order %s placed (%s pickup %s %s)", order.id, order.pickup_option.value, order.pickup_date, order.pickup_time)
    if notifier is not None:
        fire_and_forget(notifier.send_order_received(order), f"order received email for {order.id}")
    return order


# --------- OWNER WORKFLOW ---------
async def update_order_status(
    db: AsyncSession,
    restaurant_id: UUID,
    order_id: str,
    new_status: OrderStatus,
    now: datetime,
    estimated_pickup_time: Optional[str] = None,
    cancellation_reason: Optional[str] = None,
    notifier=None,
) -> Order:
    order = await get_order(db, restaurant_id, order_id)

    if new_status not in ALLOWED_TRANSITIONS[order.status]:
        raise InvalidStatusTransition(f"Cannot change order from {order.status.value} to {new_status.value}")

    if new_status == OrderStatus.ACCEPTED:
        if not estimated_pickup_time or not estimated_pickup_time.strip():
            raise MissingEstimatedPickupTime("Please provide an estimated pickup time.")
        order.estimated_pickup_time = estimated_pickup_time.strip()
    elif new_status == OrderStatus.REJECTED:
        order.cancellation_reason = (cancellation_reason or "").strip() or None
    elif new_status == OrderStatus.COMPLETED:
        order.completed_at = now

    order.status = new_status
    order.updated_at = now
    db.add(order)
    await db.commit()
    await db.refresh(order)
    logger.info("Order %s is now %s", order.id, new_status.value)

    if notifier is not None:
        if new_status == OrderStatus.ACCEPTED:
            fire_and_forget(notifier.send_order_confirmation(order), f"confirmation email for {order.id}")
        elif new_status == OrderStatus.REJECTED:
            fire_and_forget(notifier.send_order_rejection(order), f"rejection email for {order.id}")
    return order


async def auto_cancel_expired_orders(db: AsyncSession, restaurant_id: UUID, now: datetime, notifier=None) -> list[Order]:
    """Reject pending ASAP orders nobody accepted within the auto-cancel window."""
    result = await db.execute(
        select(Order).where(
            Order.restaurant_id == restaurant_id,
            Order.status == OrderStatus.PENDING,
            Order.pickup_option == PickupMode.ASAP,
            Order.auto_cancel_at.is_not(None),
            Order.auto_cancel_at <= now,
        )
    )
    expired = list(result.scalars().all())
    if not expired:
        return []

    for order in expired:
        order.status = OrderStatus.REJECTED
        order.cancellation_reason = AUTO_CANCEL_REASON
        order.updated_at = now
        db.add(order)
    await db.commit()

    for order in expired:
        logger.info("Order %s auto-cancelled", order.id)
        if notifier is not None:
            fire_and_forget(notifier.send_order_rejection(order), f"auto-cancel email for {order.id}")
    return expired
