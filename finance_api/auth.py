"""Password hashing, bearer tokens and role checks.

Access tokens carry the user's id, name, email and role so that handlers can
authorize a request without a database round trip. Refresh tokens carry only
the subject and a unique id.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

import bcrypt
import jwt
from fastapi import Depends, Header

from finance_api.config import Settings
from finance_api.dependencies import get_app_settings
from finance_api.errors import Forbidden, TokenExpired, TokenInvalid, Unauthorized

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
MAX_BCRYPT_PASSWORD_BYTES = 72


class UserRole:
    ADMIN = "Admin"
    PREMIUM = "Premium"
    USER = "User"
    values = {ADMIN, PREMIUM, USER}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        for role in cls.values:
            if role.lower() == normalized:
                return role
        raise ValueError("Invalid role. Use Admin, Premium or User.")


@dataclass(frozen=True)
class CurrentUser:
    id: int
    username: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_at: datetime


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    encoded = password.encode("utf-8")
    # Registration caps passwords at 72 bytes; bcrypt 5 raises beyond that.
    if len(encoded) > MAX_BCRYPT_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(encoded, hashed_password.encode("utf-8"))


def issue_tokens(user: Mapping[str, Any], settings: Settings, now: datetime | None = None) -> TokenPair:
    now = now or datetime.now(timezone.utc)
    access_expires = now + timedelta(minutes=settings.jwt_expires_minutes)
    refresh_expires = now + timedelta(days=settings.jwt_refresh_expires_days)
    subject = str(user["id"])

    access_token = jwt.encode(
        {
            "sub": subject,
            "name": user["username"],
            "email": user["email"],
            "role": user["role"],
            "type": ACCESS_TOKEN,
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "iat": now,
            "exp": access_expires,
        },
        settings.jwt_secret,
        algorithm=JWT_ALGORITHM,
    )
    refresh_token = jwt.encode(
        {
            "sub": subject,
            "jti": uuid.uuid4().hex,
            "type": REFRESH_TOKEN,
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
            "iat": now,
            "exp": refresh_expires,
        },
        settings.jwt_secret,
        algorithm=JWT_ALGORITHM,
    )
    return TokenPair(access_token=access_token, refresh_token=refresh_token, expires_at=access_expires)


def decode_token(token: str, settings: Settings, expected_type: str) -> dict[str, Any]:
    """Verify signature, lifetime, issuer, audience and token type.

    Raises:
        TokenExpired: the token's `exp` is in the past.
        TokenInvalid: any other verification failure.
    """
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired("Token has expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenInvalid("Invalid token.") from exc

    if claims.get("type") != expected_type:
        raise TokenInvalid("Invalid token type.")
    try:
        claims["user_id"] = int(claims["sub"])
    except (TypeError, ValueError) as exc:
        raise TokenInvalid("Invalid token subject.") from exc
    return claims


def parse_bearer(authorization: str | None) -> str:
    if not authorization:
        raise Unauthorized("Missing bearer token.")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Authorization header must be 'Bearer <token>'.")
    return token.strip()


def get_current_user(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_app_settings),
) -> CurrentUser:
    claims = decode_token(parse_bearer(authorization), settings, ACCESS_TOKEN)
    try:
        role = UserRole.validate(claims.get("role") or "")
    except ValueError as exc:
        raise TokenInvalid("Invalid role claim.") from exc
    return CurrentUser(
        id=claims["user_id"],
        username=claims.get("name", ""),
        email=claims.get("email", ""),
        role=role,
    )


def require_roles(*roles: str) -> Callable[..., CurrentUser]:
    allowed = set(roles)

    def dependency(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            logger.warning(
                "User %s with role %s denied; requires one of %s",
                current_user.id, current_user.role, sorted(allowed),
            )
            raise Forbidden("Insufficient permissions.")
        return current_user

    return dependency


def ensure_owner(current_user: CurrentUser, owner_id: int, resource: str) -> None:
    if current_user.is_admin or current_user.id == owner_id:
        return
    logger.warning("User %s denied access to %s owned by %s", current_user.id, resource, owner_id)
    raise Forbidden(f"You do not have access to this {resource}.")
