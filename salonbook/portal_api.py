"""Customer portal endpoints.

Portal callers have no ambient identity: every request carries the tenant's
public token and a portal session token, both re-verified on each call, and
every booking is re-admitted from scratch on the server.
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .admission import BookingRequest, admit
from .api import get_now, http_status_for
from .config import settings
from .db import get_db
from .errors import SchedulingError, Unauthorized
from .models import Tenant
from .portal import CustomerIdentity, PortalSessionVerifier, get_session_verifier
from .scheduling import (
    get_bookable_provider,
    get_tenant_appointment,
    list_client_appointments,
    offered_slots,
    to_local,
)
from .schemas import PortalRequest, PortalSaveRequest, PortalSlotsRequest
from .services import get_client, get_employee, get_service, list_employees, list_provider_schedule

router = APIRouter(prefix="/portal")
logger = structlog.get_logger("salonbook.portal_api")


class PortalFailure(Exception):
    def __init__(self, status_code: int, error: str):
        super().__init__(error)
        self.status_code = status_code
        self.error = error


def _fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error})


async def _read_payload(request: Request, model):
    try:
        raw = await request.json()
    except ValueError:
        raise PortalFailure(400, "Invalid JSON")
    if not isinstance(raw, dict):
        raise PortalFailure(400, "Invalid data")
    try:
        return model.model_validate(raw)
    except ValidationError:
        raise PortalFailure(400, "Invalid data")


def _authenticate(
    db: Session,
    verifier: PortalSessionVerifier,
    payload: PortalRequest,
    header_session: Optional[str],
) -> tuple[Tenant, CustomerIdentity]:
    session_token = (header_session or payload.session_token or "").strip()
    try:
        identity = verifier.verify(db, payload.tenant_token, session_token)
    except Unauthorized:
        logger.warning("portal_unauthorized")
        raise PortalFailure(401, "Unauthorized")
    tenant = db.get(Tenant, identity.tenant_id)
    if tenant is None:
        raise PortalFailure(401, "Unauthorized")
    structlog.contextvars.bind_contextvars(tenant_slug=tenant.slug, client_id=identity.client_id)
    return tenant, identity


def _portal_slots(db: Session, verifier, payload: PortalSlotsRequest, header_session, now: datetime) -> dict:
    tenant, identity = _authenticate(db, verifier, payload, header_session)

    service = get_service(db, tenant.id, payload.service_id)
    if service is None or not service.is_active:
        raise PortalFailure(400, "Service unavailable")
    if get_bookable_provider(db, tenant.id, payload.employee_id) is None:
        raise PortalFailure(400, "Provider unavailable")
    if payload.appointment_id:
        existing = get_tenant_appointment(db, tenant.id, payload.appointment_id)
        if existing is None or existing.client_id != identity.client_id:
            raise PortalFailure(404, "Not found")

    slots = offered_slots(
        db,
        tenant,
        payload.employee_id,
        payload.day,
        int(service.duration_min),
        exclude_appointment_id=payload.appointment_id,
        now=now,
    )
    return {"ok": True, "slots": slots}


def _portal_save(db: Session, verifier, payload: PortalSaveRequest, header_session, now: datetime) -> dict:
    tenant, identity = _authenticate(db, verifier, payload, header_session)

    client = get_client(db, tenant.id, identity.client_id)
    if client is None:
        raise PortalFailure(403, "Complete your registration before booking.")

    service = get_service(db, tenant.id, payload.service_id)
    if service is None or not service.is_active:
        raise PortalFailure(400, "Service unavailable")
    if get_bookable_provider(db, tenant.id, payload.employee_id) is None:
        raise PortalFailure(400, "Provider unavailable")
    if int(payload.duration_minutes) != int(service.duration_min) or round(float(payload.price), 2) != round(float(service.price), 2):
        raise PortalFailure(400, "Service details changed, please reload")

    request = BookingRequest(
        employee_id=payload.employee_id,
        service_id=service.id,
        client_id=client.id,
        start=payload.start_iso,
        duration_min=int(payload.duration_minutes),
        price=float(payload.price),
        note=payload.notes,
        appointment_id=payload.appointment_id,
    )
    try:
        appointment = admit(db, tenant, request, now=now, client_id_guard=client.id)
    except SchedulingError as exc:
        raise PortalFailure(http_status_for(exc), str(exc))
    return {"ok": True, "appointment_id": appointment.id}


def _portal_my_appointments(db: Session, verifier, payload: PortalRequest, header_session) -> dict:
    tenant, identity = _authenticate(db, verifier, payload, header_session)
    if get_client(db, tenant.id, identity.client_id) is None:
        return {"ok": True, "appointments": []}

    out = []
    rows = list_client_appointments(db, tenant.id, identity.client_id, limit=settings.PORTAL_MY_APPOINTMENTS_LIMIT)
    for a in rows:
        employee = get_employee(db, tenant.id, a.employee_id)
        first_item = a.items[0] if a.items else None
        out.append(
            {
                "id": a.id,
                "start": to_local(tenant, a.start_at).isoformat(),
                "status": a.status,
                "price": float(a.price),
                "duration_min": int(a.duration_min),
                "employee_id": a.employee_id,
                "employee_name": employee.name if employee else None,
                "service_name": first_item.service.name if first_item else None,
            }
        )
    return {"ok": True, "appointments": out}


def _portal_providers(db: Session, verifier, payload: PortalRequest, header_session) -> dict:
    tenant, _ = _authenticate(db, verifier, payload, header_session)
    providers = []
    for employee in list_employees(db, tenant.id, providers_only=True):
        providers.append(
            {
                "id": employee.id,
                "name": employee.name,
                "schedule": [
                    {
                        "weekday": row.weekday,
                        "starts_at": row.starts_at,
                        "ends_at": row.ends_at,
                        "break_start": row.break_start,
                        "break_end": row.break_end,
                    }
                    for row in list_provider_schedule(db, tenant.id, employee.id)
                ],
            }
        )
    return {"ok": True, "providers": providers}


@router.post("/slots")
async def portal_slots(
    request: Request,
    db: Session = Depends(get_db),
    verifier: PortalSessionVerifier = Depends(get_session_verifier),
    now: datetime = Depends(get_now),
    x_portal_session: Optional[str] = Header(default=None),
):
    try:
        payload = await _read_payload(request, PortalSlotsRequest)
        return await run_in_threadpool(_portal_slots, db, verifier, payload, x_portal_session, now)
    except PortalFailure as exc:
        return _fail(exc.status_code, exc.error)


@router.post("/appointments")
async def portal_save_appointment(
    request: Request,
    db: Session = Depends(get_db),
    verifier: PortalSessionVerifier = Depends(get_session_verifier),
    now: datetime = Depends(get_now),
    x_portal_session: Optional[str] = Header(default=None),
):
    try:
        payload = await _read_payload(request, PortalSaveRequest)
        return await run_in_threadpool(_portal_save, db, verifier, payload, x_portal_session, now)
    except PortalFailure as exc:
        return _fail(exc.status_code, exc.error)


@router.post("/my-appointments")
async def portal_my_appointments(
    request: Request,
    db: Session = Depends(get_db),
    verifier: PortalSessionVerifier = Depends(get_session_verifier),
    x_portal_session: Optional[str] = Header(default=None),
):
    try:
        payload = await _read_payload(request, PortalRequest)
        return await run_in_threadpool(_portal_my_appointments, db, verifier, payload, x_portal_session)
    except PortalFailure as exc:
        return _fail(exc.status_code, exc.error)


@router.post("/providers")
async def portal_providers(
    request: Request,
    db: Session = Depends(get_db),
    verifier: PortalSessionVerifier = Depends(get_session_verifier),
    x_portal_session: Optional[str] = Header(default=None),
):
    try:
        payload = await _read_payload(request, PortalRequest)
        return await run_in_threadpool(_portal_providers, db, verifier, payload, x_portal_session)
    except PortalFailure as exc:
        return _fail(exc.status_code, exc.error)
