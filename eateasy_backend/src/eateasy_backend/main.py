from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Optional
from uuid import UUID
import logging

import pytz
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr
from sqlalchemy import delete
from sqlmodel.ext.asyncio.session import AsyncSession

from .auth import get_current_owner, require_restaurant_owner
from .availability import (
    default_pickup_selection,
    is_asap_available,
    list_available_dates,
    list_pickup_time_slots,
)
from .database import create_db_tables, get_db
from .models.hours_models import DayHours, OpeningHours, Weekday, WeeklyHoursUpdate
from .models.order_models import OrderCreate, OrderOut, OrderStatus, OrderStatusUpdate
from .models.restaurant_models import Restaurant, RestaurantCreate, RestaurantOut
from .notifications import EmailDeliveryError, EmailNotifier
from .orders import (
    InvalidStatusTransition,
    MissingEstimatedPickupTime,
    NoHoursConfigured,
    OrderNotFound,
    OrderStoreUnavailable,
    PickupUnavailable,
    auto_cancel_expired_orders,
    get_order,
    list_orders,
    load_hours,
    submit_order,
    update_order_status,
)
from .rate_limit import hit
from .settings import settings

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("eateasy")

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up EatEasy backend...")
    logger.info("CREATING DATABASE TABLES...")
    await create_db_tables()
    logger.info("Database tables created successfully.")

    yield
    logger.info("Shutting down EatEasy backend...")

# FastAPI application
app = FastAPI(
    lifespan=lifespan,
    title="EatEasy Pickup Backend",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------- DEPENDENCIES ---------

def get_now() -> datetime:
    """Current wall-clock time in the restaurant's timezone, as a naive datetime."""
    return datetime.now(pytz.timezone(settings.RESTAURANT_TIMEZONE)).replace(tzinfo=None)

def get_notifier() -> EmailNotifier:
    return EmailNotifier(settings)

async def get_restaurant(restaurant_id: UUID, db: AsyncSession = Depends(get_db)) -> Restaurant:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    return restaurant


@app.exception_handler(PickupUnavailable)
async def pickup_unavailable_handler(request: Request, exc: PickupUnavailable):
    # Expected, user-facing: the customer picks a new selection
    return JSONResponse(status_code=409, content={"error": exc.kind, "message": exc.message})


# --------- ENDPOINTS---------

@app.get("/")
async def root():
    return {"message": "Welcome to the EatEasy pickup API"}

@app.get("/health", include_in_schema=False)
@app.head("/health", include_in_schema=False)
def health_check():
    return {"status": "ok"}

@app.post("/restaurants", response_model=RestaurantOut, status_code=201)
async def create_restaurant(
    data: RestaurantCreate,
    owner_id: str = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
):
    restaurant = Restaurant(name=data.name, email=data.email, owner_id=owner_id)
    db.add(restaurant)
    await db.commit()
    await db.refresh(restaurant)
    return restaurant


# --------- OPENING HOURS ---------

@app.get("/restaurants/{restaurant_id}/hours", response_model=list[DayHours])
async def get_hours(restaurant: Restaurant = Depends(get_restaurant), db: AsyncSession = Depends(get_db)):
    rows = await load_hours(db, restaurant.id)
    order = list(Weekday)
    return sorted((DayHours.model_validate(row) for row in rows), key=lambda h: order.index(h.day))

@app.put("/restaurants/{restaurant_id}/hours", response_model=list[DayHours])
async def replace_hours(
    data: WeeklyHoursUpdate,
    restaurant: Restaurant = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
):
    """Replace the restaurant's full weekly hours table."""
    await db.execute(delete(OpeningHours).where(OpeningHours.restaurant_id == restaurant.id))
    for entry in data.hours:
        db.add(OpeningHours(restaurant_id=restaurant.id, **entry.model_dump()))
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=f"Could not save opening hours: {str(e)}")

    logger.info("Opening hours updated for restaurant %s", restaurant.id)
    order = list(Weekday)
    return sorted(data.hours, key=lambda h: order.index(h.day))


# --------- PICKUP AVAILABILITY ---------

@app.get("/restaurants/{restaurant_id}/pickup/options")
async def get_pickup_options(
    restaurant: Restaurant = Depends(get_restaurant),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """ASAP availability, open dates and the default selection for the checkout."""
    hours = await load_hours(db, restaurant.id)
    defaults = default_pickup_selection(hours, now)
    return {
        "hours_configured": bool(hours),
        "asap_available": is_asap_available(hours, now),
        "available_dates": [str(d) for d in list_available_dates(hours, now)],
        "default": {
            "mode": defaults.mode.value,
            "date": str(defaults.date) if defaults.date else None,
            "time": defaults.time,
        },
    }

@app.get("/restaurants/{restaurant_id}/pickup/slots/{pickup_date}")
async def get_pickup_slots(
    pickup_date: date,
    restaurant: Restaurant = Depends(get_restaurant),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Slots for one date; dates outside the bookable window have none."""
    hours = await load_hours(db, restaurant.id)
    slots = []
    if pickup_date in list_available_dates(hours, now):
        slots = list_pickup_time_slots(hours, now, pickup_date)
    return {"date": str(pickup_date), "slots": slots}


# --------- ORDERS ---------

@app.post("/restaurants/{restaurant_id}/orders", response_model=OrderOut, status_code=201)
async def place_order(
    data: OrderCreate,
    restaurant: Restaurant = Depends(get_restaurant),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Re-validate the pickup selection and place the order."""
    hours = await load_hours(db, restaurant.id)
    try:
        return await submit_order(db, restaurant.id, data, hours, now, notifier)
    except NoHoursConfigured:
        logger.warning("Order rejected: restaurant %s has no opening hours", restaurant.id)
        raise
    except OrderStoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

@app.get("/restaurants/{restaurant_id}/orders/{order_id}", response_model=OrderOut)
async def read_order(order_id: str, restaurant: Restaurant = Depends(get_restaurant), db: AsyncSession = Depends(get_db)):
    try:
        return await get_order(db, restaurant.id, order_id)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")

@app.get("/restaurants/{restaurant_id}/orders", response_model=list[OrderOut])
async def dashboard_orders(
    status: Optional[OrderStatus] = None,
    restaurant: Restaurant = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    notifier: EmailNotifier = Depends(get_notifier),
):
    await auto_cancel_expired_orders(db, restaurant.id, now, notifier)
    return await list_orders(db, restaurant.id, status)

@app.patch("/restaurants/{restaurant_id}/orders/{order_id}/status", response_model=OrderOut)
async def change_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    restaurant: Restaurant = Depends(require_restaurant_owner),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    notifier: EmailNotifier = Depends(get_notifier),
):
    try:
        return await update_order_status(
            db,
            restaurant.id,
            order_id,
            data.status,
            now,
            estimated_pickup_time=data.estimated_pickup_time,
            cancellation_reason=data.cancellation_reason,
            notifier=notifier,
        )
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except MissingEstimatedPickupTime as e:
        raise HTTPException(status_code=422, detail=str(e))


# --------- EMAIL ---------

class EmailRequest(BaseModel):
    to: EmailStr
    subject: str
    html: str

@app.post("/email")
async def send_email(
    data: EmailRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
    notifier: EmailNotifier = Depends(get_notifier),
):
    client_key = request.client.host if request.client else "unknown"
    allowed = await hit(
        db,
        f"email:{client_key}",
        now,
        settings.EMAIL_RATE_LIMIT,
        settings.EMAIL_RATE_WINDOW_SECONDS,
    )
    if not allowed:
        raise HTTPException(status_code=429, detail="Too many requests. Please try again later.")

    try:
        result = await notifier.send_email(data.to, data.subject, data.html)
    except EmailDeliveryError as e:
        logger.error("Failed to send email: %s", e)
        raise HTTPException(status_code=502, detail="Failed to send email")
    return {"success": True, "data": result}
