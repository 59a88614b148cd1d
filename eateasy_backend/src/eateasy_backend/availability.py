"""
availability.py
Pickup availability for a restaurant's weekly opening hours.

Every function here is pure: callers pass the hours table and the current
local time (naive datetime in the restaurant's timezone) explicitly.

Buffer policy
- ASAP: open when opening <= now + 15 min < closing.
- Scheduled slots: today's first slot is now + 30 min, rounded up to the
  slot grid; the last slot is strictly before closing.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from eateasy_backend.models.hours_models import Weekday
from eateasy_backend.models.order_models import PickupMode

ASAP_BUFFER_MINUTES = 15
SLOT_BUFFER_MINUTES = 30
SLOT_INTERVAL_MINUTES = 30
LOOKAHEAD_DAYS = 7


@dataclass
class PickupDefaults:
    mode: PickupMode
    date: Optional[date] = None
    time: Optional[str] = None


# --------- HELPERS ---------
def format_slot(moment: datetime | time) -> str:
    """Render a slot as a 12-hour display string, e.g. '2:30 PM'."""
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def round_up_to_interval(moment: datetime, interval_minutes: int) -> datetime:
    """Round up to the next multiple of the interval counted from midnight."""
    step = timedelta(minutes=interval_minutes)
    remainder = (moment - datetime.combine(moment.date(), time.min)) % step
    if remainder:
        moment += step - remainder
    return moment


def _is_open(entry) -> bool:
    return entry is not None and not entry.closed


def _opening_window(entry, day: date) -> tuple[datetime, datetime]:
    return datetime.combine(day, entry.open), datetime.combine(day, entry.close)


# --------- ENGINE ---------
def get_hours_for_date(hours: Iterable, day: date):
    """Return the hours entry for the weekday of `day`, or None (treat as closed)."""
    weekday = Weekday.for_date(day)
    for entry in hours:
        if Weekday.parse(entry.day) == weekday:
            return entry
    return None


def is_asap_available(hours: Iterable, now: datetime) -> bool:
    today = get_hours_for_date(hours, now.date())
    if not _is_open(today):
        return False

    opening, closing = _opening_window(today, now.date())
    buffered_now = now + timedelta(minutes=ASAP_BUFFER_MINUTES)
    return opening <= buffered_now < closing


def list_available_dates(hours: Iterable, now: datetime, lookahead_days: int = LOOKAHEAD_DAYS) -> list[date]:
    hours = list(hours)
    dates = []
    for offset in range(lookahead_days):
        candidate = now.date() + timedelta(days=offset)
        entry = get_hours_for_date(hours, candidate)
        if not _is_open(entry):
            continue
        if offset == 0:
            _, closing = _opening_window(entry, candidate)
            if now >= closing:
                continue  # already closed for the day
        dates.append(candidate)
    return dates


def list_pickup_time_slots(
    hours: Iterable,
    now: datetime,
    day: date,
    slot_interval_minutes: int = SLOT_INTERVAL_MINUTES,
) -> list[str]:
    if day < now.date():
        return []

    entry = get_hours_for_date(hours, day)
    if not _is_open(entry):
        return []

    opening, closing = _opening_window(entry, day)
    start = opening
    if day == now.date():
        start = max(opening, now + timedelta(minutes=SLOT_BUFFER_MINUTES))
    current = round_up_to_interval(start, slot_interval_minutes)

    slots = []
    while current < closing:
        slots.append(format_slot(current))
        current += timedelta(minutes=slot_interval_minutes)
    return slots


def default_pickup_selection(hours: Iterable, now: datetime) -> PickupDefaults:
    """Default pickup mode shown when the hours table is (re)loaded."""
    hours = list(hours)
    today = get_hours_for_date(hours, now.date())

    if _is_open(today) and is_asap_available(hours, now):
        return PickupDefaults(mode=PickupMode.ASAP)

    dates = list_available_dates(hours, now)
    if not dates:
        return PickupDefaults(mode=PickupMode.SCHEDULED)

    first = dates[0]
    slots = list_pickup_time_slots(hours, now, first)
    return PickupDefaults(mode=PickupMode.SCHEDULED, date=first, time=slots[0] if slots else None)
