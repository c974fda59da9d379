"""Booking admission: revalidate a submitted slot at commit time, then write it.

The provider row is bumped (``employees.booking_seq``) before busy intervals
are re-read, so two admissions for the same provider run one after the other
and the later one sees the earlier one's appointment.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .core.lead_time import check_start_allowed
from .core.slots import busy_ranges, overlaps, parse_time_to_minutes
from .errors import (
    AppointmentLocked,
    DatastoreError,
    InvalidBookingInput,
    NotFound,
    SchedulingError,
    SlotTaken,
    SlotUnavailable,
)
from .models import (
    APPOINTMENT_STATUSES,
    LOCKED_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentItem,
    Employee,
    Tenant,
)
from .scheduling import (
    get_bookable_provider,
    get_tenant_appointment,
    load_busy_intervals,
    local_now,
    resolve_working_window,
    safety_margin,
    to_local,
    to_utc_naive,
)
from .services import get_booking_policy, get_client, get_service

logger = structlog.get_logger("salonbook.admission")


@dataclass
class BookingRequest:
    employee_id: int
    service_id: int
    start: datetime
    client_id: int
    duration_min: int | None = None
    price: float | None = None
    note: str | None = None
    appointment_id: int | None = None


def _clean_note(note: str | None) -> str | None:
    cleaned = (note or "").strip()[: max(0, int(settings.NOTE_MAX_LENGTH))]
    return cleaned or None


def _lock_provider(db: Session, tenant_id: int, employee_id: int) -> None:
    db.execute(
        update(Employee)
        .where(Employee.tenant_id == tenant_id, Employee.id == employee_id)
        .values(booking_seq=Employee.booking_seq + 1)
    )


def _check_fits_window(window, start_m: int, end_m: int) -> None:
    if window is None:
        raise SlotUnavailable("Provider is not available on this day")
    work_start_m = parse_time_to_minutes(window.starts_at)
    if start_m < work_start_m or end_m > parse_time_to_minutes(window.ends_at):
        raise SlotUnavailable("Slot exceeds the provider's working hours")
    step = int(settings.SLOT_STEP_MINUTES)
    if step > 0 and (start_m - work_start_m) % step != 0:
        raise SlotUnavailable("Start time is not one of the offered slots")
    if window.break_start and window.break_end:
        if overlaps(start_m, end_m, parse_time_to_minutes(window.break_start), parse_time_to_minutes(window.break_end)):
            raise SlotUnavailable("Slot overlaps the break")


def admit(
    db: Session,
    tenant: Tenant,
    request: BookingRequest,
    now: datetime | None = None,
    client_id_guard: int | None = None,
) -> Appointment:
    """Create or move an appointment after revalidating policy and availability.

    ``client_id_guard`` restricts edits to appointments of that client (portal).
    Raises a SchedulingError subclass on rejection; nothing is written then.
    """
    service = get_service(db, tenant.id, request.service_id)
    if service is None or not service.is_active:
        raise InvalidBookingInput("Service unavailable")
    if get_bookable_provider(db, tenant.id, request.employee_id) is None:
        raise InvalidBookingInput("Provider unavailable")
    if get_client(db, tenant.id, request.client_id) is None:
        raise NotFound("Client not found")

    duration = int(request.duration_min if request.duration_min is not None else service.duration_min)
    price = float(request.price if request.price is not None else service.price)
    if duration <= 0 or duration > int(settings.MAX_DURATION_MINUTES):
        raise InvalidBookingInput("duration_min out of range")
    if price < 0:
        raise InvalidBookingInput("price must be >= 0")

    existing = None
    if request.appointment_id:
        existing = get_tenant_appointment(db, tenant.id, request.appointment_id)
        if existing is None or (client_id_guard is not None and existing.client_id != client_id_guard):
            raise NotFound("Appointment not found")
        if existing.status in LOCKED_APPOINTMENT_STATUSES:
            raise AppointmentLocked("This appointment can no longer be changed")

    start_utc = to_utc_naive(tenant, request.start).replace(second=0, microsecond=0)
    start_local = to_local(tenant, start_utc)
    original_local = to_local(tenant, existing.start_at) if existing else None
    unchanged = (
        existing is not None
        and original_local == start_local
        and existing.employee_id == request.employee_id
        and int(existing.duration_min) == duration
    )

    tenant_id = tenant.id
    try:
        check_start_allowed(
            start_local,
            get_booking_policy(tenant),
            local_now(tenant, now),
            original_start=original_local,
            margin=safety_margin(),
        )

        _lock_provider(db, tenant.id, request.employee_id)
        day = start_local.date()
        start_m = start_local.hour * 60 + start_local.minute
        end_m = start_m + duration
        if not unchanged:
            _check_fits_window(resolve_working_window(db, tenant, request.employee_id, day), start_m, end_m)

        busy = load_busy_intervals(
            db,
            tenant,
            request.employee_id,
            day,
            exclude_appointment_id=existing.id if existing else None,
        )
        if any(overlaps(start_m, end_m, b_start, b_end) for b_start, b_end in busy_ranges(busy)):
            raise SlotTaken("This time slot is already taken")
    except SchedulingError as exc:
        db.rollback()
        logger.info(
            "admission_rejected",
            tenant_id=tenant_id,
            employee_id=request.employee_id,
            start=start_local.isoformat(),
            reason=type(exc).__name__,
        )
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("admission_revalidation_failed", tenant_id=tenant_id, error=str(exc))
        raise DatastoreError("Could not validate availability") from exc

    note = _clean_note(request.note)
    item = AppointmentItem(service_id=service.id, duration_min=duration, price=price)
    try:
        if existing is None:
            appointment = Appointment(
                tenant_id=tenant.id,
                employee_id=request.employee_id,
                client_id=request.client_id,
                start_at=start_utc,
                duration_min=duration,
                price=price,
                status="pending",
                note=note,
            )
            appointment.items = [item]
            db.add(appointment)
        else:
            appointment = existing
            appointment.employee_id = request.employee_id
            appointment.client_id = request.client_id
            appointment.start_at = start_utc
            appointment.duration_min = duration
            appointment.price = price
            appointment.note = note
            # one service per appointment: the old item is deleted as an orphan
            appointment.items = [item]
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("admission_write_failed", tenant_id=tenant_id, error=str(exc))
        raise DatastoreError("Could not save the appointment") from exc

    db.refresh(appointment)
    logger.info(
        "appointment_admitted",
        tenant_id=tenant.id,
        appointment_id=appointment.id,
        employee_id=appointment.employee_id,
        start=start_local.isoformat(),
        duration_min=duration,
        edit=existing is not None,
    )
    return appointment


def set_appointment_status(db: Session, tenant_id: int, appointment_id: int, status: str) -> Appointment:
    normalized = (status or "").strip().lower()
    if normalized not in APPOINTMENT_STATUSES:
        raise InvalidBookingInput(f"status must be one of {sorted(APPOINTMENT_STATUSES)}")
    appointment = get_tenant_appointment(db, tenant_id, appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found")
    previous = appointment.status
    appointment.status = normalized
    db.commit()
    db.refresh(appointment)
    logger.info(
        "appointment_status_changed",
        tenant_id=tenant_id,
        appointment_id=appointment_id,
        from_status=previous,
        to_status=normalized,
    )
    return appointment
