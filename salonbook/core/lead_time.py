"""Advance-notice policy applied to offered slots and to submitted bookings.

All datetimes here are naive wall-clock values in the tenant's timezone.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from ..errors import PastOrTooSoon
from ..models import LEAD_MODE_FIXED_HOURS, LEAD_MODE_NEXT_DAY_ONLY, LEAD_MODES
from .slots import parse_time_to_minutes

SAFETY_MARGIN = timedelta(minutes=1)


@dataclass(frozen=True)
class BookingPolicy:
    mode: str = LEAD_MODE_FIXED_HOURS
    hours: int = 0

    def __post_init__(self):
        if self.mode not in LEAD_MODES:
            raise ValueError(f"unknown booking policy mode {self.mode!r}")

    @property
    def lead(self) -> timedelta:
        return timedelta(hours=max(0, int(self.hours)))

    def describe(self) -> str:
        if self.mode == LEAD_MODE_NEXT_DAY_ONLY:
            return "bookings are accepted from the next day only"
        return f"bookings need at least {max(0, int(self.hours))} hour(s) of advance notice"


def slot_datetime(day: date, slot: str) -> datetime:
    minutes = parse_time_to_minutes(slot)
    return datetime.combine(day, time.min) + timedelta(minutes=minutes)


def _original_slot_on(day: date, slots: list[str], original_start: datetime | None) -> str | None:
    if original_start is None or original_start.date() != day:
        return None
    original = original_start.strftime("%H:%M")
    return original if original in slots else None


def filter_slots(
    slots: list[str],
    day: date,
    policy: BookingPolicy,
    now: datetime,
    original_start: datetime | None = None,
    margin: timedelta = SAFETY_MARGIN,
) -> list[str]:
    """Drop slots the policy forbids, keeping an edited booking's own slot.

    ``original_start`` is the current start of the appointment being edited;
    when its slot would be filtered out it is put back at the front.
    """
    today = now.date()
    original = _original_slot_on(day, slots, original_start)

    if policy.mode == LEAD_MODE_NEXT_DAY_ONLY:
        if day <= today:
            if not original:
                return []
            return [original] + [s for s in slots if s != original]
        return list(slots)

    if day > today:
        return list(slots)
    if day < today:
        return [original] if original else []

    threshold = now + margin + policy.lead
    out = [s for s in slots if slot_datetime(day, s) >= threshold]
    if original and original not in out:
        return [original] + out
    return out


def check_start_allowed(
    start: datetime,
    policy: BookingPolicy,
    now: datetime,
    original_start: datetime | None = None,
    margin: timedelta = SAFETY_MARGIN,
) -> None:
    """Raise PastOrTooSoon unless ``start`` satisfies the policy.

    An edit that keeps the original date and time is always allowed.
    """
    if original_start is not None and _same_minute(start, original_start):
        return

    safety_now = now + margin
    if start < safety_now:
        raise PastOrTooSoon("Cannot book a time that has already passed")

    if policy.mode == LEAD_MODE_NEXT_DAY_ONLY:
        if start.date() < now.date() + timedelta(days=1):
            raise PastOrTooSoon(f"This salon: {policy.describe()}")
        return

    if start < safety_now + policy.lead:
        raise PastOrTooSoon(f"This salon: {policy.describe()}")


def _same_minute(a: datetime, b: datetime) -> bool:
    return a.replace(second=0, microsecond=0) == b.replace(second=0, microsecond=0)
