"""Signed session tokens (JWT) carried in the session cookie."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import jwt
import structlog

from storefront.errors import InvalidSessionError

logger = structlog.get_logger()

DEFAULT_SESSION_TTL = timedelta(hours=24)


class Role(StrEnum):
    PLATFORM_ADMIN = "platform_admin"
    STORE_OWNER = "store_owner"
    CUSTOMER = "customer"
    SUPPORT_AGENT = "support_agent"


class UserStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING_VERIFICATION = "pending_verification"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class SessionUser:
    """Authenticated user extracted from a session token.

    ``tenant_id`` is set for store owners and names the store they own.
    """

    id: str
    email: str
    role: Role
    status: UserStatus
    session_id: str
    tenant_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE


class SessionAuthenticator:
    """Issue and verify session tokens with a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        if not secret:
            raise ValueError("Session secret must not be empty")
        self._secret = secret
        self._algorithm = algorithm

    def issue(
        self,
        user: SessionUser,
        expires_in: timedelta = DEFAULT_SESSION_TTL,
        *,
        now: datetime | None = None,
    ) -> str:
        issued_at = now or datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": user.id,
            "email": user.email,
            "role": str(user.role),
            "status": str(user.status),
            "sid": user.session_id,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + expires_in).timestamp()),
        }
        if user.tenant_id is not None:
            payload["tenant_id"] = user.tenant_id
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> SessionUser:
        """Decode and validate a session token.

        Raises:
            InvalidSessionError: bad signature, expired, or malformed claims.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidSessionError("Session has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidSessionError(f"Invalid session token: {exc}") from exc

        try:
            return SessionUser(
                id=str(claims["sub"]),
                email=str(claims.get("email", "")),
                role=Role(claims["role"]),
                status=UserStatus(claims.get("status", UserStatus.ACTIVE)),
                session_id=str(claims.get("sid") or uuid.uuid4()),
                tenant_id=claims.get("tenant_id"),
            )
        except (KeyError, ValueError) as exc:
            logger.warning("session_claims_invalid", error=str(exc))
            raise InvalidSessionError("Session token has malformed claims") from exc
