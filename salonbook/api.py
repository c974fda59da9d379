from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from .admission import BookingRequest, admit, set_appointment_status
from .config import settings
from .db import get_db
from .errors import (
    AppointmentLocked,
    DatastoreError,
    InvalidBookingInput,
    NotFound,
    PastOrTooSoon,
    SchedulingError,
    SlotTaken,
    SlotUnavailable,
    Unauthorized,
)
from .models import Appointment, Tenant
from .scheduling import (
    get_tenant_appointment,
    list_appointments,
    offered_slots,
    to_local,
)
from .schemas import (
    AppointmentCreate,
    AppointmentOut,
    AppointmentStatusUpdate,
    AvailabilityOut,
    BookingPolicyIn,
    BookingPolicyOut,
    BusinessDayOut,
    BusinessDaysUpdate,
    ClientCreate,
    ClientOut,
    EmployeeCreate,
    EmployeeOut,
    EmployeeUpdate,
    ScheduleDayOut,
    ScheduleUpdate,
    ServiceCreate,
    ServiceOut,
)
from .services import (
    create_client,
    create_employee,
    create_service,
    get_booking_policy,
    get_employee,
    get_or_create_tenant,
    get_service,
    list_business_days,
    list_clients,
    list_employees,
    list_provider_schedule,
    list_services,
    set_business_days,
    set_employee_active,
    set_provider_schedule,
    update_booking_policy,
)

router = APIRouter(prefix="/api")

ROLE_MANAGER = "manager"
ROLE_RECEPTION = "reception"
ROLE_PROFESSIONAL = "professional"
STAFF_ROLES = {ROLE_MANAGER, ROLE_RECEPTION, ROLE_PROFESSIONAL}

_HTTP_STATUS_BY_ERROR = {
    PastOrTooSoon: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SlotUnavailable: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SlotTaken: status.HTTP_409_CONFLICT,
    AppointmentLocked: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
    Unauthorized: status.HTTP_401_UNAUTHORIZED,
    InvalidBookingInput: status.HTTP_400_BAD_REQUEST,
    DatastoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def http_status_for(exc: SchedulingError) -> int:
    for error_type, code in _HTTP_STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def _http_error(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=http_status_for(exc), detail=str(exc))


def get_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StaffActor:
    tenant: Tenant
    role: str
    employee_id: int | None = None

    @property
    def is_professional(self) -> bool:
        return self.role == ROLE_PROFESSIONAL


def _resolve_tenant_or_default(db: Session, tenant_slug: Optional[str]) -> Tenant:
    slug = (tenant_slug or settings.DEFAULT_TENANT_SLUG).strip().lower()
    tenant_name = settings.DEFAULT_TENANT_NAME if slug == settings.DEFAULT_TENANT_SLUG else slug
    return get_or_create_tenant(db, slug=slug, name=tenant_name)


def get_current_tenant(
    db: Session = Depends(get_db),
    x_tenant_slug: Optional[str] = Header(default=None),
) -> Tenant:
    return _resolve_tenant_or_default(db, x_tenant_slug)


def get_staff_actor(
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    x_actor_role: Optional[str] = Header(default=None),
    x_employee_id: Optional[int] = Header(default=None),
) -> StaffActor:
    role = (x_actor_role or ROLE_MANAGER).strip().lower()
    if role not in STAFF_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown role")
    if role == ROLE_PROFESSIONAL:
        if x_employee_id is None or get_employee(db, tenant.id, x_employee_id) is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Professional identity required")
    return StaffActor(tenant=tenant, role=role, employee_id=x_employee_id)


def _require_back_office(actor: StaffActor) -> None:
    if actor.is_professional:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed for professionals")


def _restrict_provider(actor: StaffActor, employee_id: int | None) -> None:
    if actor.is_professional and employee_id != actor.employee_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Professionals can only manage their own agenda")


def _to_appointment_out(tenant: Tenant, a: Appointment) -> AppointmentOut:
    first_item = a.items[0] if a.items else None
    return AppointmentOut(
        id=a.id,
        employee_id=a.employee_id,
        client_id=a.client_id,
        service_id=first_item.service_id if first_item else None,
        start=to_local(tenant, a.start_at),
        duration_min=int(a.duration_min),
        price=float(a.price),
        status=a.status,
        note=a.note,
    )


def _to_business_day_out(row) -> BusinessDayOut:
    return BusinessDayOut(
        weekday=row.weekday,
        is_closed=bool(row.is_closed),
        opens_at=row.opens_at,
        closes_at=row.closes_at,
        break_start=row.break_start,
        break_end=row.break_end,
    )


def _to_schedule_out(row) -> ScheduleDayOut:
    return ScheduleDayOut(
        weekday=row.weekday,
        starts_at=row.starts_at,
        ends_at=row.ends_at,
        break_start=row.break_start,
        break_end=row.break_end,
    )


def _to_service_out(row) -> ServiceOut:
    return ServiceOut(
        id=row.id,
        name=row.name,
        duration_min=int(row.duration_min),
        price=float(row.price),
        is_active=bool(row.is_active),
    )


def _to_employee_out(row) -> EmployeeOut:
    return EmployeeOut(id=row.id, name=row.name, is_active=bool(row.is_active), is_provider=bool(row.is_provider))


@router.get("/settings/booking-policy", response_model=BookingPolicyOut)
def read_booking_policy(actor: StaffActor = Depends(get_staff_actor)):
    policy = get_booking_policy(actor.tenant)
    return BookingPolicyOut(mode=policy.mode, hours=policy.hours)


@router.put("/settings/booking-policy", response_model=BookingPolicyOut)
def write_booking_policy(
    payload: BookingPolicyIn,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    _require_back_office(actor)
    try:
        policy = update_booking_policy(db, actor.tenant, payload.mode, payload.hours)
    except SchedulingError as exc:
        raise _http_error(exc)
    return BookingPolicyOut(mode=policy.mode, hours=policy.hours)


@router.get("/settings/business-days", response_model=List[BusinessDayOut])
def read_business_days(
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    return [_to_business_day_out(r) for r in list_business_days(db, actor.tenant.id)]


@router.put("/settings/business-days", response_model=List[BusinessDayOut])
def write_business_days(
    payload: BusinessDaysUpdate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    _require_back_office(actor)
    try:
        rows = set_business_days(db, actor.tenant.id, [d.model_dump() for d in payload.days])
    except SchedulingError as exc:
        db.rollback()
        raise _http_error(exc)
    return [_to_business_day_out(r) for r in rows]


@router.post("/employees", response_model=EmployeeOut)
def add_employee(
    payload: EmployeeCreate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    _require_back_office(actor)
    try:
        employee = create_employee(db, actor.tenant.id, payload.name, is_provider=payload.is_provider)
    except SchedulingError as exc:
        raise _http_error(exc)
    return _to_employee_out(employee)


@router.get("/employees", response_model=List[EmployeeOut])
def get_employees(
    providers_only: bool = Query(False),
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    return [_to_employee_out(e) for e in list_employees(db, actor.tenant.id, providers_only=providers_only)]


@router.patch("/employees/{employee_id}", response_model=EmployeeOut)
def patch_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    _require_back_office(actor)
    try:
        employee = set_employee_active(db, actor.tenant.id, employee_id, payload.is_active)
    except SchedulingError as exc:
        raise _http_error(exc)
    return _to_employee_out(employee)


@router.get("/employees/{employee_id}/schedule", response_model=List[ScheduleDayOut])
def read_schedule(
    employee_id: int,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    if get_employee(db, actor.tenant.id, employee_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    return [_to_schedule_out(r) for r in list_provider_schedule(db, actor.tenant.id, employee_id)]


@router.put("/employees/{employee_id}/schedule", response_model=List[ScheduleDayOut])
def write_schedule(
    employee_id: int,
    payload: ScheduleUpdate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    _require_back_office(actor)
    try:
        rows = set_provider_schedule(db, actor.tenant.id, employee_id, [d.model_dump() for d in payload.days])
    except SchedulingError as exc:
        db.rollback()
        raise _http_error(exc)
    return [_to_schedule_out(r) for r in rows]


@router.post("/services", response_model=ServiceOut)
def add_service(
    payload: ServiceCreate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    _require_back_office(actor)
    try:
        service = create_service(
            db,
            actor.tenant.id,
            payload.name,
            duration_min=payload.duration_min,
            price=payload.price,
            is_active=payload.is_active,
        )
    except SchedulingError as exc:
        raise _http_error(exc)
    return _to_service_out(service)


@router.get("/services", response_model=List[ServiceOut])
def get_services(
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    return [_to_service_out(s) for s in list_services(db, actor.tenant.id)]


@router.post("/clients", response_model=ClientOut)
def add_client(
    payload: ClientCreate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    client = create_client(db, actor.tenant.id, payload.name, phone=payload.phone, email=payload.email)
    return ClientOut(id=client.id, name=client.name, phone=client.phone, email=client.email)


@router.get("/clients", response_model=List[ClientOut])
def get_clients(
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    return [ClientOut(id=c.id, name=c.name, phone=c.phone, email=c.email) for c in list_clients(db, actor.tenant.id)]


@router.get("/availability", response_model=AvailabilityOut)
def get_availability(
    employee_id: int = Query(...),
    day: date = Query(...),
    service_id: Optional[int] = Query(None),
    duration_min: Optional[int] = Query(None, gt=0, le=24 * 60),
    exclude_appointment_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
    now: datetime = Depends(get_now),
):
    _restrict_provider(actor, employee_id)
    if duration_min is None:
        if service_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="service_id or duration_min is required")
        service = get_service(db, actor.tenant.id, service_id)
        if service is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
        duration_min = int(service.duration_min)

    slots = offered_slots(
        db,
        actor.tenant,
        employee_id,
        day,
        duration_min,
        exclude_appointment_id=exclude_appointment_id,
        now=now,
    )
    return AvailabilityOut(day=day, employee_id=employee_id, duration_min=duration_min, slots=slots)


@router.get("/appointments", response_model=List[AppointmentOut])
def get_appointments(
    day: date = Query(...),
    employee_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    if actor.is_professional:
        employee_id = actor.employee_id
    rows = list_appointments(db, actor.tenant, day, employee_id=employee_id)
    return [_to_appointment_out(actor.tenant, a) for a in rows]


@router.get("/appointments/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    appointment = get_tenant_appointment(db, actor.tenant.id, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    _restrict_provider(actor, appointment.employee_id)
    return _to_appointment_out(actor.tenant, appointment)


def _booking_request(payload: AppointmentCreate, appointment_id: int | None = None) -> BookingRequest:
    return BookingRequest(
        employee_id=payload.employee_id,
        service_id=payload.service_id,
        client_id=payload.client_id,
        start=payload.start,
        duration_min=payload.duration_min,
        price=payload.price,
        note=payload.note,
        appointment_id=appointment_id,
    )


@router.post("/appointments", response_model=AppointmentOut)
def add_appointment(
    payload: AppointmentCreate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
    now: datetime = Depends(get_now),
):
    _restrict_provider(actor, payload.employee_id)
    try:
        appointment = admit(db, actor.tenant, _booking_request(payload), now=now)
    except SchedulingError as exc:
        raise _http_error(exc)
    return _to_appointment_out(actor.tenant, appointment)


@router.put("/appointments/{appointment_id}", response_model=AppointmentOut)
def move_appointment(
    appointment_id: int,
    payload: AppointmentCreate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
    now: datetime = Depends(get_now),
):
    _restrict_provider(actor, payload.employee_id)
    if actor.is_professional:
        current = get_tenant_appointment(db, actor.tenant.id, appointment_id)
        if current is not None:
            _restrict_provider(actor, current.employee_id)
    try:
        appointment = admit(db, actor.tenant, _booking_request(payload, appointment_id), now=now)
    except SchedulingError as exc:
        raise _http_error(exc)
    return _to_appointment_out(actor.tenant, appointment)


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentOut)
def patch_appointment_status(
    appointment_id: int,
    payload: AppointmentStatusUpdate,
    db: Session = Depends(get_db),
    actor: StaffActor = Depends(get_staff_actor),
):
    current = get_tenant_appointment(db, actor.tenant.id, appointment_id)
    if current is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found")
    _restrict_provider(actor, current.employee_id)
    try:
        appointment = set_appointment_status(db, actor.tenant.id, appointment_id, payload.status)
    except SchedulingError as exc:
        raise _http_error(exc)
    return _to_appointment_out(actor.tenant, appointment)
