import secrets

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import settings
from .core.lead_time import BookingPolicy
from .core.slots import normalize_time, parse_time_strict
from .errors import InvalidBookingInput, NotFound
from .models import (
    LEAD_MODES,
    BusinessDay,
    Client,
    Employee,
    ProviderSchedule,
    Service,
    Tenant,
)

logger = structlog.get_logger("salonbook.services")

DEFAULT_OPENS_AT = "09:00"
DEFAULT_CLOSES_AT = "18:00"
DEFAULT_BREAK_START = "12:00"
DEFAULT_BREAK_END = "13:00"


def validate_day_window(
    opens_at: str | None,
    closes_at: str | None,
    break_start: str | None = None,
    break_end: str | None = None,
) -> tuple[str, str, str | None, str | None]:
    """Normalize a working window and check open < close and the break fits inside."""
    if not opens_at or not closes_at:
        raise InvalidBookingInput("opening and closing times are required")
    try:
        open_m = parse_time_strict(opens_at)
        close_m = parse_time_strict(closes_at)
        brk_start_m = parse_time_strict(break_start) if break_start else None
        brk_end_m = parse_time_strict(break_end) if break_end else None
    except ValueError as exc:
        raise InvalidBookingInput(str(exc)) from exc

    if open_m >= close_m:
        raise InvalidBookingInput("opening time must be before closing time")
    if (brk_start_m is None) != (brk_end_m is None):
        raise InvalidBookingInput("break needs both start and end")
    if brk_start_m is not None:
        if not (open_m <= brk_start_m < brk_end_m <= close_m):
            raise InvalidBookingInput("break must lie within working hours")
        return normalize_time(opens_at), normalize_time(closes_at), normalize_time(break_start), normalize_time(break_end)
    return normalize_time(opens_at), normalize_time(closes_at), None, None


def _default_business_day(tenant_id: int, weekday: int) -> BusinessDay:
    closed = weekday == int(settings.DEFAULT_REST_WEEKDAY)
    return BusinessDay(
        tenant_id=tenant_id,
        weekday=weekday,
        is_closed=closed,
        opens_at=None if closed else DEFAULT_OPENS_AT,
        closes_at=None if closed else DEFAULT_CLOSES_AT,
        break_start=None if closed else DEFAULT_BREAK_START,
        break_end=None if closed else DEFAULT_BREAK_END,
    )


def get_or_create_tenant(db: Session, slug: str, name: str | None = None) -> Tenant:
    normalized_slug = slug.strip().lower()
    tenant = db.execute(
        select(Tenant).where(Tenant.slug == normalized_slug)
    ).scalar_one_or_none()
    if tenant:
        return tenant

    tenant = Tenant(
        slug=normalized_slug,
        name=(name or normalized_slug).strip(),
        timezone=settings.DEFAULT_TENANT_TIMEZONE,
        portal_token=secrets.token_urlsafe(24),
    )
    db.add(tenant)
    try:
        db.flush()
        for weekday in range(7):
            db.add(_default_business_day(tenant.id, weekday))
        db.commit()
    except IntegrityError:
        db.rollback()
        return db.execute(
            select(Tenant).where(Tenant.slug == normalized_slug)
        ).scalar_one()
    db.refresh(tenant)
    logger.info("tenant_onboarded", tenant_slug=normalized_slug, tenant_id=tenant.id)
    return tenant


def get_tenant_by_portal_token(db: Session, token: str) -> Tenant | None:
    raw = (token or "").strip()
    if not raw:
        return None
    return db.execute(
        select(Tenant).where(Tenant.portal_token == raw)
    ).scalar_one_or_none()


def get_booking_policy(tenant: Tenant) -> BookingPolicy:
    return BookingPolicy(
        mode=tenant.booking_lead_mode,
        hours=max(0, int(tenant.booking_lead_hours or 0)),
    )


def update_booking_policy(db: Session, tenant: Tenant, mode: str, hours: int = 0) -> BookingPolicy:
    normalized_mode = (mode or "").strip().lower()
    if normalized_mode not in LEAD_MODES:
        raise InvalidBookingInput(f"mode must be one of {sorted(LEAD_MODES)}")
    tenant.booking_lead_mode = normalized_mode
    tenant.booking_lead_hours = max(0, int(hours or 0))
    db.commit()
    db.refresh(tenant)
    return get_booking_policy(tenant)


def list_business_days(db: Session, tenant_id: int) -> list[BusinessDay]:
    return (
        db.execute(
            select(BusinessDay)
            .where(BusinessDay.tenant_id == tenant_id)
            .order_by(BusinessDay.weekday.asc())
        )
        .scalars()
        .all()
    )


def get_business_day(db: Session, tenant_id: int, weekday: int) -> BusinessDay | None:
    return db.execute(
        select(BusinessDay).where(
            BusinessDay.tenant_id == tenant_id,
            BusinessDay.weekday == weekday,
        )
    ).scalar_one_or_none()


def set_business_days(db: Session, tenant_id: int, days: list[dict]) -> list[BusinessDay]:
    for item in days:
        weekday = int(item.get("weekday"))
        if weekday < 0 or weekday > 6:
            raise InvalidBookingInput("weekday must be between 0 (Sunday) and 6 (Saturday)")
        row = get_business_day(db, tenant_id, weekday)
        if row is None:
            row = BusinessDay(tenant_id=tenant_id, weekday=weekday)
            db.add(row)

        if bool(item.get("is_closed")):
            row.is_closed = True
            row.opens_at = row.closes_at = row.break_start = row.break_end = None
            continue

        opens_at, closes_at, break_start, break_end = validate_day_window(
            item.get("opens_at"),
            item.get("closes_at"),
            item.get("break_start"),
            item.get("break_end"),
        )
        row.is_closed = False
        row.opens_at = opens_at
        row.closes_at = closes_at
        row.break_start = break_start
        row.break_end = break_end

    db.commit()
    return list_business_days(db, tenant_id)


def create_employee(db: Session, tenant_id: int, name: str, is_provider: bool = True) -> Employee:
    normalized_name = " ".join((name or "").split())
    if not normalized_name:
        raise InvalidBookingInput("employee name is required")
    existing = db.execute(
        select(Employee).where(
            Employee.tenant_id == tenant_id,
            Employee.name == normalized_name,
        )
    ).scalar_one_or_none()
    if existing:
        raise InvalidBookingInput("employee with this name already exists")
    employee = Employee(
        tenant_id=tenant_id,
        name=normalized_name,
        is_active=True,
        is_provider=bool(is_provider),
        booking_seq=0,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def get_employee(db: Session, tenant_id: int, employee_id: int) -> Employee | None:
    return db.execute(
        select(Employee).where(
            Employee.tenant_id == tenant_id,
            Employee.id == employee_id,
        )
    ).scalar_one_or_none()


def list_employees(db: Session, tenant_id: int, providers_only: bool = False) -> list[Employee]:
    stmt = select(Employee).where(Employee.tenant_id == tenant_id)
    if providers_only:
        stmt = stmt.where(Employee.is_provider.is_(True), Employee.is_active.is_(True))
    return db.execute(stmt.order_by(Employee.name.asc())).scalars().all()


def set_employee_active(db: Session, tenant_id: int, employee_id: int, is_active: bool) -> Employee:
    employee = get_employee(db, tenant_id, employee_id)
    if employee is None:
        raise NotFound("Employee not found")
    employee.is_active = bool(is_active)
    db.commit()
    db.refresh(employee)
    return employee


def list_provider_schedule(db: Session, tenant_id: int, employee_id: int) -> list[ProviderSchedule]:
    return (
        db.execute(
            select(ProviderSchedule)
            .where(
                ProviderSchedule.tenant_id == tenant_id,
                ProviderSchedule.employee_id == employee_id,
            )
            .order_by(ProviderSchedule.weekday.asc())
        )
        .scalars()
        .all()
    )


def get_provider_schedule_day(db: Session, employee_id: int, weekday: int) -> ProviderSchedule | None:
    return db.execute(
        select(ProviderSchedule).where(
            ProviderSchedule.employee_id == employee_id,
            ProviderSchedule.weekday == weekday,
        )
    ).scalar_one_or_none()


def set_provider_schedule(
    db: Session,
    tenant_id: int,
    employee_id: int,
    days: list[dict],
) -> list[ProviderSchedule]:
    """Replace the weekly schedule; weekdays missing from ``days`` become days off."""
    employee = get_employee(db, tenant_id, employee_id)
    if employee is None:
        raise NotFound("Employee not found")

    rows = []
    seen = set()
    for item in days:
        weekday = int(item.get("weekday"))
        if weekday < 0 or weekday > 6:
            raise InvalidBookingInput("weekday must be between 0 (Sunday) and 6 (Saturday)")
        if weekday in seen:
            raise InvalidBookingInput(f"weekday {weekday} listed twice")
        seen.add(weekday)
        starts_at, ends_at, break_start, break_end = validate_day_window(
            item.get("starts_at"),
            item.get("ends_at"),
            item.get("break_start"),
            item.get("break_end"),
        )
        rows.append(
            ProviderSchedule(
                tenant_id=tenant_id,
                employee_id=employee_id,
                weekday=weekday,
                starts_at=starts_at,
                ends_at=ends_at,
                break_start=break_start,
                break_end=break_end,
            )
        )

    db.execute(
        delete(ProviderSchedule).where(
            ProviderSchedule.tenant_id == tenant_id,
            ProviderSchedule.employee_id == employee_id,
        )
    )
    db.add_all(rows)
    db.commit()
    return list_provider_schedule(db, tenant_id, employee_id)


def create_service(
    db: Session,
    tenant_id: int,
    name: str,
    duration_min: int,
    price: float,
    is_active: bool = True,
) -> Service:
    if int(duration_min) <= 0:
        raise InvalidBookingInput("duration_min must be > 0")
    if float(price) < 0:
        raise InvalidBookingInput("price must be >= 0")
    service = Service(
        tenant_id=tenant_id,
        name=name.strip(),
        duration_min=int(duration_min),
        price=float(price),
        is_active=bool(is_active),
    )
    db.add(service)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise InvalidBookingInput("service with this name already exists") from exc
    db.refresh(service)
    return service


def get_service(db: Session, tenant_id: int, service_id: int) -> Service | None:
    return db.execute(
        select(Service).where(
            Service.tenant_id == tenant_id,
            Service.id == service_id,
        )
    ).scalar_one_or_none()


def list_services(db: Session, tenant_id: int) -> list[Service]:
    return (
        db.execute(
            select(Service).where(Service.tenant_id == tenant_id).order_by(Service.name.asc())
        )
        .scalars()
        .all()
    )


def create_client(
    db: Session,
    tenant_id: int,
    name: str,
    phone: str | None = None,
    email: str | None = None,
) -> Client:
    client = Client(
        tenant_id=tenant_id,
        name=name.strip(),
        phone=(phone or "").strip() or None,
        email=(email or "").strip().lower() or None,
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def get_client(db: Session, tenant_id: int, client_id: int) -> Client | None:
    return db.execute(
        select(Client).where(
            Client.tenant_id == tenant_id,
            Client.id == client_id,
        )
    ).scalar_one_or_none()


def list_clients(db: Session, tenant_id: int) -> list[Client]:
    return (
        db.execute(
            select(Client).where(Client.tenant_id == tenant_id).order_by(Client.name.asc())
        )
        .scalars()
        .all()
    )
