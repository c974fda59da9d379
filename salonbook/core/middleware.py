import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = structlog.get_logger("salonbook.middleware")


def booking_surface(path: str) -> str:
    if path.startswith("/portal"):
        return "portal"
    if path.startswith("/api"):
        return "staff"
    return "runtime"


def request_log_context(request: Request, request_id: str) -> dict:
    """Context vars bound for every log line of one request."""
    surface = booking_surface(request.url.path)
    context = {
        "request_id": request_id,
        "path": request.url.path,
        "method": request.method,
        "surface": surface,
        "idempotency_key": (request.headers.get("idempotency-key") or "").strip() or None,
    }
    if surface == "staff":
        context["tenant_slug"] = (request.headers.get("x-tenant-slug") or "").strip().lower() or None
        context["actor_role"] = (request.headers.get("x-actor-role") or "manager").strip().lower()
    return context


class RequestTracingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**request_log_context(request, request_id))

        start_time = time.perf_counter()

        try:
            response: Response = await call_next(request)
        except Exception as exc:
            process_time = (time.perf_counter() - start_time) * 1000
            logger.error(
                "request_failed",
                error=str(exc),
                duration_ms=round(process_time, 2),
            )
            raise

        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_finished",
            status=response.status_code,
            duration_ms=round(process_time, 2),
        )

        return response
