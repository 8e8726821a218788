"""
Bearer-token verification and the site-wide password gate.

Sign-up, sign-in and sessions belong to the hosted identity provider. This
module only checks the access tokens it issues, plus the shared password that
every visitor must enter before seeing anything.
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Protocol

from jose import JWTError, jwt

ALGORITHM = "HS256"
GATE_SCOPE = "gate"


class AuthError(Exception):
    """Raised when a bearer token is missing, expired or invalid."""


class GateLocked(Exception):
    """Raised when the site gate rejects a password or gate token."""


@dataclass(frozen=True)
class AuthUser:
    user_id: str
    email: str


class AuthClient(Protocol):
    def verify_token(self, token: str) -> AuthUser:
        ...


@dataclass
class JwtAuthClient:
    """Validates HS256 access tokens signed by the identity provider."""

    secret: str
    audience: Optional[str] = "authenticated"

    def verify_token(self, token: str) -> AuthUser:
        if not token:
            raise AuthError("Missing access token")
        options = {"verify_aud": bool(self.audience)}
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                audience=self.audience,
                options=options,
            )
        except JWTError as exc:
            raise AuthError(f"Invalid access token: {exc}") from exc
        user_id = claims.get("sub")
        if not user_id:
            raise AuthError("Access token has no subject")
        return AuthUser(user_id=user_id, email=claims.get("email") or "")


@dataclass
class InMemoryAuthClient:
    """Hands out opaque tokens; for development and tests."""

    tokens: Dict[str, AuthUser] = field(default_factory=dict)

    def issue_token(self, user_id: str, email: str) -> str:
        token = secrets.token_urlsafe(24)
        self.tokens[token] = AuthUser(user_id=user_id, email=email)
        return token

    def verify_token(self, token: str) -> AuthUser:
        user = self.tokens.get(token or "")
        if user is None:
            raise AuthError("Invalid access token")
        return user

    def reset(self) -> None:
        self.tokens.clear()


@dataclass
class GateKeeper:
    """Checks the shared site password and the gate tokens it issues."""

    password: Optional[str]
    secret: str
    ttl_minutes: int = 720

    @property
    def enabled(self) -> bool:
        return bool(self.password)

    def unlock(self, password: str) -> str:
        if not self.enabled:
            raise GateLocked("Gate is disabled")
        if not hmac.compare_digest(
            (password or "").encode("utf-8"), self.password.encode("utf-8")
        ):
            raise GateLocked("Incorrect password. Please try again.")
        expire = datetime.now(timezone.utc) + timedelta(minutes=self.ttl_minutes)
        return jwt.encode(
            {"scope": GATE_SCOPE, "exp": expire}, self.secret, algorithm=ALGORITHM
        )

    def check(self, token: Optional[str]) -> None:
        if not self.enabled:
            return
        if not token:
            raise GateLocked("Site password required")
        try:
            claims = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except JWTError as exc:
            raise GateLocked("Gate token invalid or expired") from exc
        if claims.get("scope") != GATE_SCOPE:
            raise GateLocked("Gate token invalid or expired")
