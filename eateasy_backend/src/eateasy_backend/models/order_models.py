from datetime import date as dt_date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field as PydanticField, model_validator
from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import SQLModel, Field, Column, String

ASAP_SENTINEL = "asap"


class PickupMode(str, Enum):
    ASAP = "asap"
    SCHEDULED = "scheduled"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: str = Field(primary_key=True, index=True)
    restaurant_id: UUID = Field(foreign_key="restaurants.id", index=True, nullable=False)

    customer_name: str = Field(sa_column=Column(String, nullable=False))
    customer_email: str = Field(sa_column=Column(String, nullable=False))
    customer_phone: str = Field(sa_column=Column(String, nullable=False))
    special_instructions: Optional[str] = Field(default=None, sa_column=Column(String))
    items: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON().with_variant(JSONB, "postgresql"), nullable=False),
    )
    total: float = 0.0

    pickup_option: PickupMode
    pickup_date: dt_date
    pickup_time: str = Field(sa_column=Column(String, nullable=False))
    estimated_pickup_time: Optional[str] = Field(default=None, sa_column=Column(String))

    status: OrderStatus = Field(default=OrderStatus.PENDING, index=True)
    cancellation_reason: Optional[str] = Field(default=None, sa_column=Column(String))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=False)))
    auto_cancel_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=False)))


class PickupSelection(BaseModel):
    mode: PickupMode
    date: Optional[dt_date] = None
    time: Optional[str] = None

    @model_validator(mode="after")
    def scheduled_needs_date_and_time(self):
        if self.mode == PickupMode.SCHEDULED and (self.date is None or not self.time):
            raise ValueError("Please select a pickup date and time")
        if self.mode == PickupMode.ASAP:
            self.date = None
            self.time = None
        return self


class OrderItem(BaseModel):
    itemName: str
    quantity: int = PydanticField(default=1, ge=1)
    itemPrice: float = 0.0
    model_config = {"extra": "allow"}


class CustomerDetails(BaseModel):
    name: str = PydanticField(min_length=1)
    email: EmailStr
    phone: str = PydanticField(min_length=1)
    special_instructions: str | None = None


class OrderCreate(BaseModel):
    customer: CustomerDetails
    items: list[OrderItem] = PydanticField(min_length=1)
    total: float = 0.0
    pickup: PickupSelection


class OrderOut(BaseModel):
    id: str
    restaurant_id: UUID
    customer_name: str
    customer_email: str
    customer_phone: str
    special_instructions: str | None = None
    items: list[Dict[str, Any]]
    total: float
    pickup_option: PickupMode
    pickup_date: dt_date
    pickup_time: str
    estimated_pickup_time: str | None = None
    status: OrderStatus
    cancellation_reason: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
    completed_at: datetime | None = None
    auto_cancel_at: datetime | None = None

    class Config:
        from_attributes = True


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    estimated_pickup_time: str | None = None
    cancellation_reason: str | None = None
