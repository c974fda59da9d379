from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .api import router
from .config import settings
from .core.logging_config import setup_logging
from .core.middleware import RequestTracingMiddleware
from .db import Base, SessionLocal, check_schema, engine
from .idempotency import idempotency_middleware
from .portal_api import router as portal_router

if settings.DATABASE_URL.startswith("sqlite") or bool(settings.DB_AUTO_CREATE_ALL):
    Base.metadata.create_all(bind=engine)
elif bool(settings.DB_SCHEMA_CHECK_ON_STARTUP):
    try:
        check_schema()
    except Exception as exc:
        raise RuntimeError("Database schema check failed. Run migrations before starting API.") from exc
setup_logging()

app = FastAPI(
    title="SalonBook",
    description="Salon appointment availability and booking admission API",
    version="0.1.0",
)
app.state.session_local = SessionLocal


@app.middleware("http")
async def app_idempotency_middleware(request: Request, call_next):
    return await idempotency_middleware(request, call_next)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if bool(settings.SECURITY_HEADERS_ENABLED):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
    return response


app.add_middleware(RequestTracingMiddleware)


@app.get("/ping")
def ping():
    return {"ok": True}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/health/ready")
def ready():
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except Exception:
        return JSONResponse(status_code=503, content={"status": "not_ready", "checks": {"db": "error"}})
    return {"status": "ready", "checks": {"db": "ok"}}


app.include_router(router)
app.include_router(portal_router)
