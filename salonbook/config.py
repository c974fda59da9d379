import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return int(raw)
    except Exception:
        return int(default)


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "1" if default else "0").strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return bool(default)


class Settings:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./salonbook.db")
    DB_AUTO_CREATE_ALL = _get_bool("DB_AUTO_CREATE_ALL", False)
    DB_SCHEMA_CHECK_ON_STARTUP = _get_bool("DB_SCHEMA_CHECK_ON_STARTUP", True)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

    DEFAULT_TENANT_SLUG = os.getenv("DEFAULT_TENANT_SLUG", "salao-demo").strip().lower()
    DEFAULT_TENANT_NAME = os.getenv("DEFAULT_TENANT_NAME", "Salao Demo").strip()
    DEFAULT_TENANT_TIMEZONE = os.getenv("DEFAULT_TENANT_TIMEZONE", "UTC").strip()
    # 0 = Sunday ... 6 = Saturday
    DEFAULT_REST_WEEKDAY = _get_int("DEFAULT_REST_WEEKDAY", 0)

    SLOT_STEP_MINUTES = _get_int("SLOT_STEP_MINUTES", 30)
    BOOKING_SAFETY_MARGIN_SECONDS = _get_int("BOOKING_SAFETY_MARGIN_SECONDS", 60)
    NOTE_MAX_LENGTH = _get_int("NOTE_MAX_LENGTH", 800)
    MAX_DURATION_MINUTES = _get_int("MAX_DURATION_MINUTES", 24 * 60)

    HOLIDAYS_COUNTRY = os.getenv("HOLIDAYS_COUNTRY", "").strip().upper()
    HOLIDAYS_SUBDIV = os.getenv("HOLIDAYS_SUBDIV", "").strip().upper()

    PORTAL_SESSION_TTL_HOURS = _get_int("PORTAL_SESSION_TTL_HOURS", 24 * 30)
    PORTAL_MY_APPOINTMENTS_LIMIT = _get_int("PORTAL_MY_APPOINTMENTS_LIMIT", 100)

    IDEMPOTENCY_RETENTION_HOURS = _get_int("IDEMPOTENCY_RETENTION_HOURS", 24)
    SECURITY_HEADERS_ENABLED = _get_bool("SECURITY_HEADERS_ENABLED", True)


settings = Settings()
