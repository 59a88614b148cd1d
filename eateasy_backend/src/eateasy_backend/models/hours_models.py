from datetime import date as dt_date, time
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, field_serializer, field_validator, model_validator
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def for_date(cls, day: dt_date) -> "Weekday":
        """Weekday of a calendar date, independent of any display locale."""
        return list(cls)[day.weekday()]

    @classmethod
    def parse(cls, value) -> "Weekday":
        """Normalise storage strings like ' Monday ' to the enum."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown weekday: {value!r}") from None


class OpeningHours(SQLModel, table=True):
    __tablename__ = "opening_hours"
    __table_args__ = (UniqueConstraint("restaurant_id", "day", name="uq_opening_hours_restaurant_day"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True, nullable=False)
    restaurant_id: UUID = Field(foreign_key="restaurants.id", index=True, nullable=False)
    day: Weekday
    open: Optional[time] = None
    close: Optional[time] = None
    closed: bool = False


class DayHours(BaseModel):
    """One weekday of a restaurant's weekly schedule, as sent over the API."""
    day: Weekday
    open: Optional[time] = None
    close: Optional[time] = None
    closed: bool = False

    @field_validator("day", mode="before")
    @classmethod
    def normalise_day(cls, value):
        return Weekday.parse(value)

    @model_validator(mode="after")
    def check_times(self):
        if self.closed:
            return self
        if self.open is None or self.close is None:
            raise ValueError(f"{self.day.value}: open and close are required unless closed")
        if self.close <= self.open:
            raise ValueError(f"{self.day.value}: close must be later than open (overnight hours are not supported)")
        return self

    @field_serializer("open", "close", when_used="json")
    def format_time(self, value: Optional[time]):
        return value.strftime("%H:%M") if value else None

    class Config:
        from_attributes = True


class WeeklyHoursUpdate(BaseModel):
    hours: list[DayHours]

    @field_validator("hours")
    @classmethod
    def unique_days(cls, hours: list[DayHours]):
        seen = set()
        for entry in hours:
            if entry.day in seen:
                raise ValueError(f"Duplicate entry for {entry.day.value}")
            seen.add(entry.day)
        return hours
