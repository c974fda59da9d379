"""Availability queries shared by the staff and portal surfaces.

Stored instants are naive UTC; every day boundary and ``HH:MM`` value in this
module is wall-clock time in the tenant's timezone.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .core.availability import get_holiday_calendar, weekday_index
from .core.lead_time import filter_slots
from .core.slots import compute_slots
from .models import Appointment, Employee, Tenant
from .services import (
    get_booking_policy,
    get_business_day,
    get_employee,
    get_provider_schedule_day,
)

logger = structlog.get_logger("salonbook.scheduling")


@dataclass(frozen=True)
class WorkingWindow:
    starts_at: str
    ends_at: str
    break_start: str | None = None
    break_end: str | None = None


def tenant_zone(tenant: Tenant) -> ZoneInfo:
    return ZoneInfo(tenant.timezone or settings.DEFAULT_TENANT_TIMEZONE or "UTC")


def to_local(tenant: Tenant, value: datetime) -> datetime:
    """Naive UTC (or aware) instant -> naive tenant wall-clock time."""
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return aware.astimezone(tenant_zone(tenant)).replace(tzinfo=None)


def to_utc_naive(tenant: Tenant, value: datetime) -> datetime:
    """Aware instant, or naive tenant wall-clock time -> naive UTC."""
    aware = value if value.tzinfo else value.replace(tzinfo=tenant_zone(tenant))
    return aware.astimezone(timezone.utc).replace(tzinfo=None)


def local_now(tenant: Tenant, now: datetime | None = None) -> datetime:
    return to_local(tenant, now or datetime.now(timezone.utc))


def safety_margin() -> timedelta:
    return timedelta(seconds=max(0, int(settings.BOOKING_SAFETY_MARGIN_SECONDS)))


def get_bookable_provider(db: Session, tenant_id: int, employee_id: int) -> Employee | None:
    employee = get_employee(db, tenant_id, employee_id)
    if employee is None or not employee.is_active or not employee.is_provider:
        return None
    return employee


def resolve_working_window(
    db: Session,
    tenant: Tenant,
    employee_id: int,
    day: date,
) -> WorkingWindow | None:
    """Provider hours for ``day``, or None when nothing is bookable that day."""
    weekday = weekday_index(day)
    business_day = get_business_day(db, tenant.id, weekday)
    if business_day is None or business_day.is_closed:
        return None

    calendar = get_holiday_calendar()
    if calendar.is_holiday(day):
        logger.info("holiday_closed", tenant_id=tenant.id, day=day.isoformat(), holiday=calendar.name_of(day))
        return None

    schedule = get_provider_schedule_day(db, employee_id, weekday)
    if schedule is None or schedule.tenant_id != tenant.id:
        return None

    if schedule.break_start and schedule.break_end:
        break_start, break_end = schedule.break_start, schedule.break_end
    else:
        break_start, break_end = business_day.break_start, business_day.break_end
    return WorkingWindow(
        starts_at=schedule.starts_at,
        ends_at=schedule.ends_at,
        break_start=break_start,
        break_end=break_end,
    )


def load_day_appointments(
    db: Session,
    tenant: Tenant,
    employee_id: int,
    day: date,
) -> list[Appointment]:
    day_start = to_utc_naive(tenant, datetime.combine(day, time.min))
    day_next = to_utc_naive(tenant, datetime.combine(day + timedelta(days=1), time.min))
    return (
        db.execute(
            select(Appointment)
            .where(
                Appointment.tenant_id == tenant.id,
                Appointment.employee_id == employee_id,
                Appointment.status != "cancelled",
                Appointment.start_at >= day_start,
                Appointment.start_at < day_next,
            )
            .order_by(Appointment.start_at.asc())
        )
        .scalars()
        .all()
    )


def load_busy_intervals(
    db: Session,
    tenant: Tenant,
    employee_id: int,
    day: date,
    exclude_appointment_id: int | None = None,
) -> list[dict]:
    out = []
    for appointment in load_day_appointments(db, tenant, employee_id, day):
        if exclude_appointment_id and appointment.id == exclude_appointment_id:
            continue
        out.append(
            {
                "id": appointment.id,
                "start": to_local(tenant, appointment.start_at).strftime("%H:%M"),
                "duration_min": int(appointment.duration_min),
            }
        )
    return out


def available_slots(
    db: Session,
    tenant: Tenant,
    employee_id: int,
    day: date,
    duration_min: int,
    exclude_appointment_id: int | None = None,
) -> list[str]:
    """Raw calculator output for one provider and day, before the lead-time policy."""
    if get_bookable_provider(db, tenant.id, employee_id) is None:
        return []
    window = resolve_working_window(db, tenant, employee_id, day)
    if window is None:
        return []
    busy = load_busy_intervals(db, tenant, employee_id, day, exclude_appointment_id)
    return compute_slots(
        window.starts_at,
        window.ends_at,
        window.break_start,
        window.break_end,
        step_min=settings.SLOT_STEP_MINUTES,
        service_duration=duration_min,
        busy=busy,
    )


def get_tenant_appointment(db: Session, tenant_id: int, appointment_id: int) -> Appointment | None:
    return db.execute(
        select(Appointment).where(
            Appointment.tenant_id == tenant_id,
            Appointment.id == appointment_id,
        )
    ).scalar_one_or_none()


def offered_slots(
    db: Session,
    tenant: Tenant,
    employee_id: int,
    day: date,
    duration_min: int,
    exclude_appointment_id: int | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Slots actually offered to a user: availability plus the advance-notice policy."""
    original_start = None
    if exclude_appointment_id:
        existing = get_tenant_appointment(db, tenant.id, exclude_appointment_id)
        if existing is not None:
            original_start = to_local(tenant, existing.start_at)

    raw = available_slots(db, tenant, employee_id, day, duration_min, exclude_appointment_id)
    return filter_slots(
        raw,
        day,
        get_booking_policy(tenant),
        local_now(tenant, now),
        original_start=original_start,
        margin=safety_margin(),
    )


def list_appointments(
    db: Session,
    tenant: Tenant,
    day: date,
    employee_id: int | None = None,
) -> list[Appointment]:
    day_start = to_utc_naive(tenant, datetime.combine(day, time.min))
    day_next = to_utc_naive(tenant, datetime.combine(day + timedelta(days=1), time.min))
    stmt = select(Appointment).where(
        Appointment.tenant_id == tenant.id,
        Appointment.start_at >= day_start,
        Appointment.start_at < day_next,
    )
    if employee_id:
        stmt = stmt.where(Appointment.employee_id == employee_id)
    return db.execute(stmt.order_by(Appointment.start_at.asc())).scalars().all()


def list_client_appointments(
    db: Session,
    tenant_id: int,
    client_id: int,
    limit: int = 100,
) -> list[Appointment]:
    return (
        db.execute(
            select(Appointment)
            .where(
                Appointment.tenant_id == tenant_id,
                Appointment.client_id == client_id,
            )
            .order_by(Appointment.start_at.desc())
            .limit(max(1, int(limit)))
        )
        .scalars()
        .all()
    )
