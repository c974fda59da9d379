import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from salonbook.db import Base, SessionLocal, engine  # noqa: E402
from salonbook.portal import issue_portal_session  # noqa: E402
from salonbook.services import (  # noqa: E402
    create_client,
    create_employee,
    create_service,
    get_or_create_tenant,
    list_employees,
    set_provider_schedule,
)

DEMO_EMPLOYEES = ["Marina (Cortes)", "João (Barba)", "Paula (Coloração)", "Rafa (Unhas)"]
DEMO_SERVICES = [
    ("Corte feminino", 60, 120.0),
    ("Barba", 30, 50.0),
    ("Coloração", 120, 280.0),
    ("Manicure", 45, 70.0),
]
DEMO_CLIENTS = [
    ("Ana Souza", "(11) 99999-1111", "ana@demo.com"),
    ("Bruno Lima", "(11) 99999-2222", "bruno@demo.com"),
]


def seed(slug: str) -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        tenant = get_or_create_tenant(db, slug=slug, name="Salão Demo")
        if list_employees(db, tenant.id):
            print(f"Tenant {slug} already seeded, skipping.")
            return

        # Monday to Saturday, 1 = Monday ... 6 = Saturday
        weekly = [
            {"weekday": d, "starts_at": "09:00", "ends_at": "18:00", "break_start": "12:00", "break_end": "13:00"}
            for d in range(1, 7)
        ]
        for name in DEMO_EMPLOYEES:
            employee = create_employee(db, tenant.id, name)
            set_provider_schedule(db, tenant.id, employee.id, weekly)
        for name, duration, price in DEMO_SERVICES:
            create_service(db, tenant.id, name, duration_min=duration, price=price)

        clients = [create_client(db, tenant.id, name, phone=phone, email=email) for name, phone, email in DEMO_CLIENTS]
        session_token = issue_portal_session(db, tenant, clients[0])

        print(f"Tenant:        {tenant.slug} (id={tenant.id})")
        print(f"Portal token:  {tenant.portal_token}")
        print(f"Session token: {session_token} (client {clients[0].name})")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a demo salon")
    parser.add_argument("--slug", default="salao-demo")
    args = parser.parse_args()
    seed(args.slug)
