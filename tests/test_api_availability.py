from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from salonbook.api import get_db, get_now, router
from salonbook.db import Base

NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)  # Tuesday
TOMORROW = "2026-03-11"  # Wednesday
SUNDAY = "2026-03-15"

WEEKLY = [
    {"weekday": d, "starts_at": "09:00", "ends_at": "18:00", "break_start": "12:00", "break_end": "13:00"}
    for d in range(1, 7)
]


def make_client(tmp_path):
    db_path = tmp_path / "test_availability.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(router)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: NOW
    return TestClient(app)


def seed_provider(client, name="Marina", schedule=WEEKLY):
    employee = client.post("/api/employees", json={"name": name})
    assert employee.status_code == 200
    employee_id = employee.json()["id"]
    res = client.put(f"/api/employees/{employee_id}/schedule", json={"days": schedule})
    assert res.status_code == 200
    return employee_id


def seed_catalog(client):
    service = client.post("/api/services", json={"name": "Corte feminino", "duration_min": 60, "price": 120})
    assert service.status_code == 200
    customer = client.post("/api/clients", json={"name": "Ana Souza", "phone": "11999991111"})
    assert customer.status_code == 200
    return service.json()["id"], customer.json()["id"]


def test_availability_follows_schedule_and_break(tmp_path):
    client = make_client(tmp_path)
    employee_id = seed_provider(client)
    service_id, _ = seed_catalog(client)

    res = client.get("/api/availability", params={"employee_id": employee_id, "day": TOMORROW, "service_id": service_id})
    assert res.status_code == 200
    body = res.json()
    assert body["duration_min"] == 60
    assert body["slots"] == [
        "09:00", "09:30", "10:00", "10:30", "11:00",
        "13:00", "13:30", "14:00", "14:30", "15:00", "15:30", "16:00", "16:30", "17:00",
    ]


def test_closed_business_day_has_no_slots(tmp_path):
    client = make_client(tmp_path)
    schedule = WEEKLY + [{"weekday": 0, "starts_at": "10:00", "ends_at": "14:00"}]
    employee_id = seed_provider(client, schedule=schedule)

    res = client.get("/api/availability", params={"employee_id": employee_id, "day": SUNDAY, "duration_min": 30})
    assert res.status_code == 200
    assert res.json()["slots"] == []


def test_provider_without_schedule_row_has_no_slots(tmp_path):
    client = make_client(tmp_path)
    only_monday = [{"weekday": 1, "starts_at": "09:00", "ends_at": "18:00"}]
    employee_id = seed_provider(client, schedule=only_monday)

    res = client.get("/api/availability", params={"employee_id": employee_id, "day": TOMORROW, "duration_min": 30})
    assert res.status_code == 200
    assert res.json()["slots"] == []


def test_business_day_break_used_when_provider_has_none(tmp_path):
    client = make_client(tmp_path)
    no_break = [{"weekday": 3, "starts_at": "11:00", "ends_at": "14:00"}]
    employee_id = seed_provider(client, schedule=no_break)

    res = client.get("/api/availability", params={"employee_id": employee_id, "day": TOMORROW, "duration_min": 60})
    assert res.json()["slots"] == ["11:00", "13:00"]


def test_lead_time_policy_applies_to_today(tmp_path):
    client = make_client(tmp_path)
    employee_id = seed_provider(client)
    policy = client.put("/api/settings/booking-policy", json={"mode": "fixed-hours", "hours": 2})
    assert policy.status_code == 200

    res = client.get("/api/availability", params={"employee_id": employee_id, "day": "2026-03-10", "duration_min": 60})
    slots = res.json()["slots"]
    assert slots[0] == "10:30"
    assert "10:00" not in slots


def test_next_day_only_blocks_today(tmp_path):
    client = make_client(tmp_path)
    employee_id = seed_provider(client)
    client.put("/api/settings/booking-policy", json={"mode": "next-day-only"})

    today = client.get("/api/availability", params={"employee_id": employee_id, "day": "2026-03-10", "duration_min": 60})
    tomorrow = client.get("/api/availability", params={"employee_id": employee_id, "day": TOMORROW, "duration_min": 60})
    assert today.json()["slots"] == []
    assert tomorrow.json()["slots"][0] == "09:00"


def test_edit_excludes_its_own_appointment(tmp_path):
    client = make_client(tmp_path)
    employee_id = seed_provider(client)
    service_id, client_id = seed_catalog(client)

    created = client.post(
        "/api/appointments",
        json={
            "employee_id": employee_id,
            "service_id": service_id,
            "client_id": client_id,
            "start": f"{TOMORROW}T10:00:00",
        },
    )
    assert created.status_code == 200
    appointment_id = created.json()["id"]

    params = {"employee_id": employee_id, "day": TOMORROW, "service_id": service_id}
    blocked = client.get("/api/availability", params=params).json()["slots"]
    assert "09:30" not in blocked
    assert "10:00" not in blocked
    assert "10:30" not in blocked

    editing = client.get("/api/availability", params={**params, "exclude_appointment_id": appointment_id}).json()["slots"]
    assert "10:00" in editing
    assert "09:30" in editing


def test_cancelled_appointment_frees_its_slot(tmp_path):
    client = make_client(tmp_path)
    employee_id = seed_provider(client)
    service_id, client_id = seed_catalog(client)
    created = client.post(
        "/api/appointments",
        json={"employee_id": employee_id, "service_id": service_id, "client_id": client_id, "start": f"{TOMORROW}T14:00:00"},
    )
    appointment_id = created.json()["id"]

    res = client.patch(f"/api/appointments/{appointment_id}/status", json={"status": "cancelled"})
    assert res.status_code == 200
    slots = client.get("/api/availability", params={"employee_id": employee_id, "day": TOMORROW, "service_id": service_id}).json()["slots"]
    assert "14:00" in slots


def test_inactive_provider_has_no_slots(tmp_path):
    client = make_client(tmp_path)
    employee_id = seed_provider(client)
    res = client.patch(f"/api/employees/{employee_id}", json={"is_active": False})
    assert res.status_code == 200

    res = client.get("/api/availability", params={"employee_id": employee_id, "day": TOMORROW, "duration_min": 30})
    assert res.json()["slots"] == []


def test_availability_needs_service_or_duration(tmp_path):
    client = make_client(tmp_path)
    employee_id = seed_provider(client)
    res = client.get("/api/availability", params={"employee_id": employee_id, "day": TOMORROW})
    assert res.status_code == 400


def test_professional_only_sees_own_agenda(tmp_path):
    client = make_client(tmp_path)
    marina = seed_provider(client, "Marina")
    joao = seed_provider(client, "Joao")
    headers = {"X-Actor-Role": "professional", "X-Employee-Id": str(marina)}

    own = client.get("/api/availability", params={"employee_id": marina, "day": TOMORROW, "duration_min": 30}, headers=headers)
    assert own.status_code == 200
    other = client.get("/api/availability", params={"employee_id": joao, "day": TOMORROW, "duration_min": 30}, headers=headers)
    assert other.status_code == 403

    settings_write = client.put("/api/settings/booking-policy", json={"mode": "next-day-only"}, headers=headers)
    assert settings_write.status_code == 403


def test_business_days_validation(tmp_path):
    client = make_client(tmp_path)
    bad = client.put(
        "/api/settings/business-days",
        json={"days": [{"weekday": 1, "opens_at": "18:00", "closes_at": "09:00"}]},
    )
    assert bad.status_code == 400

    malformed = client.put(
        "/api/settings/business-days",
        json={"days": [{"weekday": 1, "opens_at": "9h", "closes_at": "18:00"}]},
    )
    assert malformed.status_code == 422

    ok = client.put(
        "/api/settings/business-days",
        json={"days": [{"weekday": 6, "is_closed": True}]},
    )
    assert ok.status_code == 200
    saturday = [d for d in ok.json() if d["weekday"] == 6][0]
    assert saturday["is_closed"] is True


def test_tenants_are_isolated(tmp_path):
    client = make_client(tmp_path)
    employee_id = seed_provider(client)

    other = client.get(
        "/api/availability",
        params={"employee_id": employee_id, "day": TOMORROW, "duration_min": 30},
        headers={"X-Tenant-Slug": "outro-salao"},
    )
    assert other.status_code == 200
    assert other.json()["slots"] == []
    assert client.get("/api/employees", headers={"X-Tenant-Slug": "outro-salao"}).json() == []


def test_national_holiday_closes_the_day(tmp_path):
    from salonbook.config import settings

    previous = settings.HOLIDAYS_COUNTRY
    try:
        settings.HOLIDAYS_COUNTRY = "BR"
        client = make_client(tmp_path)
        employee_id = seed_provider(client)
        # Tiradentes
        holiday = client.get("/api/availability", params={"employee_id": employee_id, "day": "2026-04-21", "duration_min": 30})
        regular = client.get("/api/availability", params={"employee_id": employee_id, "day": "2026-04-22", "duration_min": 30})
        assert holiday.json()["slots"] == []
        assert regular.json()["slots"]
    finally:
        settings.HOLIDAYS_COUNTRY = previous
