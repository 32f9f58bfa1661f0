from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from jose import JWTError, jwt

from docdesk.core.config import get_settings
from docdesk.core.exceptions import UnauthorizedError


TICKET_ACCESS_TOKEN_TYPE = "ticket-access"


def create_ticket_token(ticket_id: UUID | str, email: str, *, ttl_days: int | None = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = ttl_days if ttl_days is not None else settings.ticket_token_ttl_days
    payload: dict[str, Any] = {
        "type": TICKET_ACCESS_TOKEN_TYPE,
        "ticketId": str(ticket_id),
        "email": email,
        # Prevent collisions for tokens issued within the same second.
        "jti": str(uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=ttl)).timestamp()),
    }
    return jwt.encode(payload, settings.ticket_token_secret, algorithm=settings.ticket_token_algorithm)


def decode_ticket_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.ticket_token_secret, algorithms=[settings.ticket_token_algorithm])
    except JWTError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc
    if payload.get("type") != TICKET_ACCESS_TOKEN_TYPE:
        raise UnauthorizedError("Invalid token type")
    if not str(payload.get("email") or "").strip():
        raise UnauthorizedError("Token is missing email")
    if not str(payload.get("ticketId") or "").strip():
        raise UnauthorizedError("Token is missing ticket id")
    return payload


def create_staff_token(email: str, *, subject: str | None = None, ttl_minutes: int = 60) -> str:
    """Mint a staff token signed with the shared staff secret.

    Only meaningful in shared-secret mode (local development and tests); in
    JWKS mode staff tokens come from the identity provider.
    """
    settings = get_settings()
    if not settings.staff_jwt_secret:
        raise RuntimeError("STAFF_JWT_SECRET is not configured")
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": subject or email,
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    if settings.staff_token_issuer:
        payload["iss"] = settings.staff_token_issuer
    if settings.staff_token_audience:
        payload["aud"] = settings.staff_token_audience
    return jwt.encode(payload, settings.staff_jwt_secret, algorithm=settings.staff_jwt_algorithm)
