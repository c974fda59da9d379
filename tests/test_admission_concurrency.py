import threading
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import sessionmaker

from salonbook.admission import BookingRequest, admit
from salonbook.db import Base
from salonbook.errors import NotFound, SlotTaken
from salonbook.models import Appointment, Tenant
from salonbook.services import (
    create_client,
    create_employee,
    create_service,
    get_or_create_tenant,
    set_provider_schedule,
)

NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
THREADS = 8


def make_sessionmaker(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test_concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


def seed(SessionLocal):
    with SessionLocal() as db:
        tenant = get_or_create_tenant(db, "salao-demo")
        employee = create_employee(db, tenant.id, "Marina")
        set_provider_schedule(
            db,
            tenant.id,
            employee.id,
            [{"weekday": 3, "starts_at": "09:00", "ends_at": "18:00"}],
        )
        service = create_service(db, tenant.id, "Corte feminino", duration_min=60, price=120)
        ana = create_client(db, tenant.id, "Ana Souza")
        bruno = create_client(db, tenant.id, "Bruno Lima")
        return {
            "tenant_id": tenant.id,
            "employee_id": employee.id,
            "service_id": service.id,
            "ana": ana.id,
            "bruno": bruno.id,
        }


def test_concurrent_admissions_for_one_slot_admit_exactly_one(tmp_path):
    SessionLocal = make_sessionmaker(tmp_path)
    ids = seed(SessionLocal)
    barrier = threading.Barrier(THREADS)
    outcomes = []
    lock = threading.Lock()

    def book(index):
        with SessionLocal() as db:
            tenant = db.get(Tenant, ids["tenant_id"])
            request = BookingRequest(
                employee_id=ids["employee_id"],
                service_id=ids["service_id"],
                client_id=ids["ana"],
                # overlapping, not identical, starts
                start=datetime(2026, 3, 11, 10, 30 if index % 2 else 0),
            )
            barrier.wait()
            try:
                admit(db, tenant, request, now=NOW)
                result = "ok"
            except SlotTaken:
                result = "taken"
            except Exception as exc:
                result = type(exc).__name__
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=book, args=(i,)) for i in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(outcomes) == ["ok"] + ["taken"] * (THREADS - 1)
    with SessionLocal() as db:
        rows = db.execute(select(Appointment)).scalars().all()
    assert len(rows) == 1


def test_client_guard_hides_other_customers_appointment(tmp_path):
    SessionLocal = make_sessionmaker(tmp_path)
    ids = seed(SessionLocal)
    with SessionLocal() as db:
        tenant = db.get(Tenant, ids["tenant_id"])
        appointment = admit(
            db,
            tenant,
            BookingRequest(
                employee_id=ids["employee_id"],
                service_id=ids["service_id"],
                client_id=ids["ana"],
                start=datetime(2026, 3, 11, 10, 0),
            ),
            now=NOW,
        )
        move = BookingRequest(
            employee_id=ids["employee_id"],
            service_id=ids["service_id"],
            client_id=ids["bruno"],
            start=datetime(2026, 3, 11, 15, 0),
            appointment_id=appointment.id,
        )
        with pytest.raises(NotFound):
            admit(db, tenant, move, now=NOW, client_id_guard=ids["bruno"])
