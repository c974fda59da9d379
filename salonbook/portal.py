"""Customer-portal session verification.

The scheduling core only needs ``verify(db, tenant_token, session_token)``.
Signup, login and password handling live outside this service.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .errors import Unauthorized
from .models import Client, PortalSession, Tenant
from .services import get_tenant_by_portal_token

logger = structlog.get_logger("salonbook.portal")


@dataclass(frozen=True)
class CustomerIdentity:
    tenant_id: int
    client_id: int


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class PortalSessionVerifier(Protocol):
    def verify(self, db: Session, tenant_token: str, session_token: str) -> CustomerIdentity:
        ...


class DatabaseSessionVerifier:
    """Accepts a non-revoked, unexpired portal session of the token's tenant."""

    def verify(self, db: Session, tenant_token: str, session_token: str) -> CustomerIdentity:
        tenant_token = (tenant_token or "").strip()
        session_token = (session_token or "").strip()
        if not tenant_token or not session_token:
            raise Unauthorized("Unauthorized")

        tenant = get_tenant_by_portal_token(db, tenant_token)
        if tenant is None:
            raise Unauthorized("Unauthorized")

        session = db.execute(
            select(PortalSession).where(
                PortalSession.token_hash == hash_token(session_token),
                PortalSession.tenant_id == tenant.id,
            )
        ).scalar_one_or_none()
        if session is None or session.revoked_at is not None:
            raise Unauthorized("Unauthorized")
        if session.expires_at < utc_now_naive():
            raise Unauthorized("Unauthorized")
        return CustomerIdentity(tenant_id=tenant.id, client_id=session.client_id)


def issue_portal_session(
    db: Session,
    tenant: Tenant,
    client: Client,
    ttl_hours: int | None = None,
) -> str:
    """Store a new session for ``client`` and return the raw token (shown once)."""
    if client.tenant_id != tenant.id:
        raise ValueError("client belongs to another tenant")
    raw_token = secrets.token_urlsafe(32)
    hours = int(ttl_hours if ttl_hours is not None else settings.PORTAL_SESSION_TTL_HOURS)
    db.add(
        PortalSession(
            tenant_id=tenant.id,
            client_id=client.id,
            token_hash=hash_token(raw_token),
            expires_at=utc_now_naive() + timedelta(hours=hours),
        )
    )
    db.commit()
    logger.info("portal_session_issued", tenant_id=tenant.id, client_id=client.id)
    return raw_token


_default_verifier = DatabaseSessionVerifier()


def get_session_verifier() -> PortalSessionVerifier:
    return _default_verifier
