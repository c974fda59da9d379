from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from .core.slots import normalize_time


def _time_or_none(value: str | None) -> str | None:
    if value is None or str(value).strip() == "":
        return None
    return normalize_time(value)


class BookingPolicyIn(BaseModel):
    mode: str = Field(pattern=r"^(fixed-hours|next-day-only)$")
    hours: int = Field(default=0, ge=0, le=24 * 30)


class BookingPolicyOut(BaseModel):
    mode: str
    hours: int


class BusinessDayIn(BaseModel):
    weekday: int = Field(ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    is_closed: bool = False
    opens_at: str | None = None
    closes_at: str | None = None
    break_start: str | None = None
    break_end: str | None = None

    @field_validator("opens_at", "closes_at", "break_start", "break_end")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return _time_or_none(value)


class BusinessDaysUpdate(BaseModel):
    days: list[BusinessDayIn] = Field(min_length=1, max_length=7)


class BusinessDayOut(BaseModel):
    weekday: int
    is_closed: bool
    opens_at: str | None = None
    closes_at: str | None = None
    break_start: str | None = None
    break_end: str | None = None


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    is_provider: bool = True


class EmployeeUpdate(BaseModel):
    is_active: bool


class EmployeeOut(BaseModel):
    id: int
    name: str
    is_active: bool
    is_provider: bool


class ScheduleDayIn(BaseModel):
    weekday: int = Field(ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    starts_at: str
    ends_at: str
    break_start: str | None = None
    break_end: str | None = None

    @field_validator("starts_at", "ends_at", "break_start", "break_end")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return _time_or_none(value)


class ScheduleUpdate(BaseModel):
    days: list[ScheduleDayIn] = Field(max_length=7)


class ScheduleDayOut(BaseModel):
    weekday: int
    starts_at: str
    ends_at: str
    break_start: str | None = None
    break_end: str | None = None


class ServiceCreate(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    duration_min: int = Field(gt=0, le=24 * 60)
    price: float = Field(ge=0)
    is_active: bool = True


class ServiceOut(BaseModel):
    id: int
    name: str
    duration_min: int
    price: float
    is_active: bool


class ClientCreate(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    phone: str | None = Field(default=None, min_length=7, max_length=40)
    email: str | None = Field(default=None, max_length=200)


class ClientOut(BaseModel):
    id: int
    name: str
    phone: str | None = None
    email: str | None = None


class AvailabilityOut(BaseModel):
    day: date
    employee_id: int
    duration_min: int
    slots: list[str]


class AppointmentCreate(BaseModel):
    employee_id: int
    service_id: int
    client_id: int
    start: datetime
    duration_min: int | None = Field(default=None, gt=0, le=24 * 60)
    price: float | None = Field(default=None, ge=0)
    note: str | None = Field(default=None, max_length=2000)


class AppointmentStatusUpdate(BaseModel):
    status: str


class AppointmentOut(BaseModel):
    id: int
    employee_id: int
    client_id: int
    service_id: int | None = None
    start: datetime
    duration_min: int
    price: float
    status: str
    note: str | None = None


class PortalRequest(BaseModel):
    tenant_token: str | None = None
    session_token: str | None = None


class PortalSlotsRequest(PortalRequest):
    employee_id: int
    service_id: int
    day: date
    appointment_id: int | None = None


class PortalSaveRequest(PortalRequest):
    service_id: int
    employee_id: int
    start_iso: datetime
    duration_minutes: int = Field(gt=0, le=24 * 60)
    price: float = Field(ge=0)
    notes: str | None = None
    appointment_id: int | None = None
