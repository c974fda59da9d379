import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from salonbook.config import settings  # noqa: E402
from salonbook.db import SessionLocal  # noqa: E402
from salonbook.idempotency import cleanup_idempotency_records  # noqa: E402


def run_maintenance():
    print("--- Starting SalonBook Daily Maintenance ---")
    try:
        with SessionLocal() as db:
            deleted = cleanup_idempotency_records(
                db, older_than_hours=settings.IDEMPOTENCY_RETENTION_HOURS
            )
        print(f"Removed {deleted} expired idempotency records.")
        print("Maintenance complete.")
    except Exception as e:
        print(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run_maintenance()
