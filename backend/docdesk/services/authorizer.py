from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import httpx
from jose import JWTError, jwt

from docdesk.core.config import Settings
from docdesk.core.enums import SenderRole
from docdesk.core.exceptions import ForbiddenError, UnauthorizedError
from docdesk.core.security import TICKET_ACCESS_TOKEN_TYPE, create_ticket_token, decode_ticket_token
from docdesk.services.senders import AdminSender, Sender, UserSender

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    role: SenderRole
    identifier: str

    @property
    def is_admin(self) -> bool:
        return self.role == SenderRole.ADMIN

    def as_sender(self) -> Sender:
        if self.is_admin:
            return AdminSender(identifier=self.identifier)
        return UserSender(email=self.identifier)


@dataclass(frozen=True)
class StaffIdentity:
    identifier: str
    email: str | None


class StaffTokenVerifier:
    """Verifies staff ID tokens issued by the federated identity provider.

    With ``jwks_url`` set, RS256 keys are fetched from the provider (a JWK set
    or Firebase's ``{kid: certificate}`` mapping) and cached. Otherwise the
    shared ``secret`` is used. ``verify`` returns ``None`` for anything it
    cannot accept so the caller can fall through to the ticket-scoped path.
    """

    def __init__(
        self,
        *,
        secret: str = "",
        algorithm: str = "HS256",
        jwks_url: str = "",
        issuer: str = "",
        audience: str = "",
        allowed_emails: list[str] | None = None,
        jwks_cache_ttl_sec: int = 3600,
        http_timeout_sec: float = 5.0,
    ) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.jwks_url = jwks_url
        self.issuer = issuer
        self.audience = audience
        self.allowed_emails = {item.strip().lower() for item in (allowed_emails or []) if item.strip()}
        self.jwks_cache_ttl_sec = max(1, jwks_cache_ttl_sec)
        self.http_timeout_sec = http_timeout_sec
        self._jwks: dict[str, Any] | None = None
        self._jwks_fetched_at: datetime | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaffTokenVerifier":
        return cls(
            secret=settings.staff_jwt_secret,
            algorithm=settings.staff_jwt_algorithm,
            jwks_url=settings.staff_jwks_url,
            issuer=settings.staff_token_issuer,
            audience=settings.staff_token_audience,
            allowed_emails=settings.staff_emails,
            jwks_cache_ttl_sec=settings.staff_jwks_cache_ttl_sec,
        )

    @property
    def configured(self) -> bool:
        return bool(self.jwks_url or self.secret)

    async def _fetch_jwks(self) -> dict[str, Any] | None:
        now = datetime.now(timezone.utc)
        if (
            self._jwks is not None
            and self._jwks_fetched_at is not None
            and now - self._jwks_fetched_at < timedelta(seconds=self.jwks_cache_ttl_sec)
        ):
            return self._jwks

        try:
            async with httpx.AsyncClient(timeout=self.http_timeout_sec) as client:
                response = await client.get(self.jwks_url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Staff key set fetch failed: %s", exc)
            return self._jwks

        if not isinstance(data, dict) or not data:
            logger.warning("Staff key set has unexpected shape")
            return self._jwks

        self._jwks = data
        self._jwks_fetched_at = now
        return data

    async def verify(self, token: str) -> StaffIdentity | None:
        if not self.configured:
            return None

        if self.jwks_url:
            key: Any = await self._fetch_jwks()
            algorithms = ["RS256"]
            if key is None:
                return None
        else:
            key = self.secret
            algorithms = [self.algorithm]

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=algorithms,
                audience=self.audience or None,
                issuer=self.issuer or None,
                options={"verify_aud": bool(self.audience)},
            )
        except JWTError as exc:
            logger.debug("Staff token rejected: %s", exc)
            return None

        # A ticket link must never pass as a staff credential, even if secrets were shared by mistake.
        if claims.get("type") == TICKET_ACCESS_TOKEN_TYPE:
            return None

        email = str(claims.get("email") or "").strip() or None
        identifier = email or str(claims.get("sub") or claims.get("uid") or "").strip()
        if not identifier:
            return None
        if self.allowed_emails and (email or "").lower() not in self.allowed_emails:
            logger.warning("Staff token for %s is not in the staff allowlist", identifier)
            return None
        return StaffIdentity(identifier=identifier, email=email)


class TicketAuthorizer:
    """Classifies a bearer token as admin (staff) or user (ticket owner)."""

    def __init__(self, staff_verifier: StaffTokenVerifier) -> None:
        self.staff_verifier = staff_verifier

    async def authenticate_staff(self, token: str | None) -> Principal:
        if not token or not token.strip():
            raise UnauthorizedError("Authorization header missing")
        staff = await self.staff_verifier.verify(token.strip())
        if staff is None:
            raise UnauthorizedError("Staff credentials required")
        return Principal(role=SenderRole.ADMIN, identifier=staff.identifier)

    async def authorize(self, token: str | None, ticket_id: UUID | str) -> Principal:
        if not token or not token.strip():
            raise UnauthorizedError("Authorization header missing")
        token = token.strip()

        staff = await self.staff_verifier.verify(token)
        if staff is not None:
            return Principal(role=SenderRole.ADMIN, identifier=staff.identifier)

        try:
            payload = decode_ticket_token(token)
        except UnauthorizedError as exc:
            logger.info("Ticket token rejected for ticket %s: %s", ticket_id, exc.message)
            raise UnauthorizedError("Invalid or expired token") from exc

        if str(payload.get("ticketId")) != str(ticket_id):
            logger.warning("Ticket token for %s presented against ticket %s", payload.get("ticketId"), ticket_id)
            raise UnauthorizedError("Token does not grant access to this ticket")

        return Principal(role=SenderRole.USER, identifier=str(payload["email"]).strip())

    @staticmethod
    def issue_ticket_token(ticket_id: UUID | str, email: str) -> str:
        return create_ticket_token(ticket_id, email)

    @staticmethod
    def verify_ticket_link(token: str) -> tuple[str, str]:
        payload = decode_ticket_token(token.strip())
        return str(payload["ticketId"]), str(payload["email"]).strip()

    @staticmethod
    def ensure_owner(principal: Principal, ticket) -> None:
        if principal.is_admin:
            return
        if principal.identifier != ticket.user_email:
            logger.warning("Ticket %s owner mismatch for %s", ticket.id, principal.identifier)
            raise ForbiddenError("Token email does not match ticket owner")
