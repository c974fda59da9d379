import base64
import hashlib
import json
from datetime import datetime, timedelta, timezone

import structlog
from fastapi import Request, Response
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import settings
from .db import SessionLocal
from .models import IdempotencyRecord

logger = structlog.get_logger("salonbook.idempotency")

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
SKIP_PATH_PREFIXES = ("/docs", "/redoc", "/openapi.json")
PORTAL_SCOPE = "portal"


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def request_fingerprint(*, method: str, path: str, scope: str, body: bytes) -> str:
    digest = hashlib.sha256()
    digest.update(method.upper().encode("utf-8"))
    digest.update(b"|")
    digest.update(path.encode("utf-8"))
    digest.update(b"|")
    digest.update(scope.lower().encode("utf-8"))
    digest.update(b"|")
    digest.update(body or b"")
    return digest.hexdigest()


def read_idempotency_record(
    db: Session,
    *,
    scope: str,
    method: str,
    path: str,
    idempotency_key: str,
) -> IdempotencyRecord | None:
    return db.execute(
        select(IdempotencyRecord).where(
            IdempotencyRecord.scope == scope,
            IdempotencyRecord.method == method.strip().upper(),
            IdempotencyRecord.path == path.strip(),
            IdempotencyRecord.idempotency_key == idempotency_key.strip(),
        )
    ).scalar_one_or_none()


def store_idempotency_record(
    db: Session,
    *,
    scope: str,
    method: str,
    path: str,
    idempotency_key: str,
    request_hash: str,
    status_code: int,
    content_type: str | None,
    response_body: bytes,
) -> IdempotencyRecord | None:
    row = IdempotencyRecord(
        scope=scope,
        method=method.strip().upper(),
        path=path.strip(),
        idempotency_key=idempotency_key.strip(),
        request_hash=request_hash,
        status_code=int(status_code),
        content_type=(content_type or "").strip() or None,
        response_body_b64=base64.b64encode(response_body or b"").decode("ascii"),
        created_at=utc_now_naive(),
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent request with the same key stored its response first
        db.rollback()
        return None
    db.refresh(row)
    return row


def decode_idempotency_response_body(row: IdempotencyRecord) -> bytes:
    try:
        return base64.b64decode((row.response_body_b64 or "").encode("ascii"))
    except Exception:
        return b""


def cleanup_idempotency_records(db: Session, *, older_than_hours: int) -> int:
    cutoff = utc_now_naive() - timedelta(hours=max(1, int(older_than_hours)))
    result = db.execute(delete(IdempotencyRecord).where(IdempotencyRecord.created_at < cutoff))
    db.commit()
    return int(result.rowcount or 0)


def _portal_scope(request: Request, body: bytes) -> str:
    # portal callers are keyed by their own tenant and session tokens
    try:
        raw = json.loads(body or b"{}")
    except ValueError:
        raw = {}
    if not isinstance(raw, dict):
        raw = {}
    tenant_token = str(raw.get("tenant_token") or "").strip()
    session_token = (request.headers.get("x-portal-session") or str(raw.get("session_token") or "")).strip()
    digest = hashlib.sha256(f"{tenant_token}|{session_token}".encode("utf-8")).hexdigest()
    return f"{PORTAL_SCOPE}:{digest[:64]}"


def _scope(request: Request, body: bytes) -> str:
    if request.url.path.startswith("/portal"):
        return _portal_scope(request, body)
    raw = (request.headers.get("x-tenant-slug") or settings.DEFAULT_TENANT_SLUG or "").strip().lower()
    return raw or settings.DEFAULT_TENANT_SLUG


def _session_local(request: Request):
    return getattr(request.app.state, "session_local", SessionLocal)


async def idempotency_middleware(request: Request, call_next):
    if request.method.upper() not in MUTATING_METHODS:
        return await call_next(request)
    if request.url.path.startswith(SKIP_PATH_PREFIXES):
        return await call_next(request)

    idempotency_key = (request.headers.get("idempotency-key") or "").strip()
    if not idempotency_key:
        return await call_next(request)

    request_body = await request.body()
    scope = _scope(request, request_body)
    fingerprint = request_fingerprint(
        method=request.method,
        path=request.url.path,
        scope=scope,
        body=request_body,
    )

    session_local = _session_local(request)
    with session_local() as db:
        existing = read_idempotency_record(
            db,
            scope=scope,
            method=request.method,
            path=request.url.path,
            idempotency_key=idempotency_key,
        )
        if existing:
            if existing.request_hash != fingerprint:
                return Response(
                    status_code=409,
                    content='{"detail":"Idempotency key reused with different payload"}',
                    media_type="application/json",
                )
            logger.info("idempotent_replay", path=request.url.path, scope=scope)
            return Response(
                content=decode_idempotency_response_body(existing),
                status_code=int(existing.status_code),
                media_type=existing.content_type or "application/json",
                headers={"X-Idempotency-Replayed": "true"},
            )

    async def _receive():
        return {"type": "http.request", "body": request_body, "more_body": False}

    replayable_request = Request(request.scope, _receive)
    response = await call_next(replayable_request)

    response_body = b""
    async for chunk in response.body_iterator:
        response_body += chunk

    replayable_response = Response(
        content=response_body,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=response.media_type,
    )

    if response.status_code < 500:
        with session_local() as db:
            store_idempotency_record(
                db,
                scope=scope,
                method=request.method,
                path=request.url.path,
                idempotency_key=idempotency_key,
                request_hash=fingerprint,
                status_code=response.status_code,
                content_type=response.media_type or response.headers.get("content-type"),
                response_body=response_body,
            )

    return replayable_response
