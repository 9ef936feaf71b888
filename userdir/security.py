"""Caller resolution and token issuance for the directory API."""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

import jwt
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .models import CallerIdentity, UserRecord, utcnow
from .store import RecordStore

logger = logging.getLogger("userdir.security")

JWT_ALGORITHM = "HS256"
ADMIN_ROLE = "Admin"
USER_ROLE = "User"


class Authenticator(Protocol):
    """Resolves the caller of a request, or ``None`` when unauthenticated."""

    async def __call__(self, request: Request) -> Optional[CallerIdentity]:
        ...


def verify_credentials(store: RecordStore, login: str, password: str) -> Optional[UserRecord]:
    """Return the record matching ``login``/``password``, revoked or not."""

    with store.locked():
        record = store.find_by_login(login)
        if record is None:
            return None
        if not secrets.compare_digest(record.password.encode("utf-8"), password.encode("utf-8")):
            return None
        return record


def _identity_for(store: RecordStore, login: str) -> Optional[CallerIdentity]:
    with store.locked():
        record = store.find_by_login(login)
        if record is None:
            return None
        return CallerIdentity(login=record.login, admin=record.admin)


class TokenIssuer:
    """Issue and decode HS256 bearer tokens carrying the login and role."""

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = timedelta(hours=2),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not secret:
            raise ValueError("A signing secret must be provided")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, record: UserRecord) -> str:
        now = self._clock()
        claims = {
            "sub": record.login,
            "role": ADMIN_ROLE if record.admin else USER_ROLE,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=JWT_ALGORITHM)

    def decode(self, token: str) -> Optional[dict]:
        """Return the validated claims, or ``None`` for a bad or expired token."""

        # Expiry is checked against the issuer clock, not PyJWT's wall clock.
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "require": ["exp", "sub"]},
            )
        except jwt.InvalidTokenError as exc:
            logger.warning("Rejected invalid bearer token: %s", exc)
            return None
        if not isinstance(claims.get("sub"), str):
            return None

        try:
            expires_at = float(claims["exp"])
        except (TypeError, ValueError):
            logger.warning("Rejected bearer token with malformed expiry")
            return None
        if expires_at <= self._clock().timestamp():
            logger.warning("Rejected expired bearer token")
            return None
        return claims


class BearerTokenAuthenticator:
    """Resolve the caller from an ``Authorization: Bearer`` token.

    The admin flag comes from the current record rather than the token, and a
    token whose subject no longer exists resolves to no caller.
    """

    def __init__(self, store: RecordStore, issuer: TokenIssuer) -> None:
        self._store = store
        self._issuer = issuer
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> Optional[CallerIdentity]:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            return None

        claims = self._issuer.decode(credentials.credentials)
        if claims is None:
            return None

        identity = _identity_for(self._store, claims["sub"])
        if identity is None:
            logger.warning("Bearer token subject %s no longer exists", claims["sub"])
        return identity


class HeaderCredentialsAuthenticator:
    """Resolve the caller from ``Login`` and ``Password`` request headers."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def __call__(self, request: Request) -> Optional[CallerIdentity]:
        login = request.headers.get("login")
        password = request.headers.get("password")
        if not login or password is None:
            return None

        record = verify_credentials(self._store, login, password)
        if record is None:
            logger.warning("Header credentials rejected for %s", login)
            return None
        return CallerIdentity(login=record.login, admin=record.admin)


__all__ = [
    "ADMIN_ROLE",
    "Authenticator",
    "BearerTokenAuthenticator",
    "HeaderCredentialsAuthenticator",
    "TokenIssuer",
    "USER_ROLE",
    "verify_credentials",
]
