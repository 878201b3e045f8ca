"""Principal resolution at the HTTP boundary.

Identity is issued by an upstream service; this module only verifies the JWT
and turns its claims into one of the ``Principal`` variants. Core services
receive the resolved principal (or its id) explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import ClassVar

from fastapi import Depends, Header
from jose import JWTError, jwt

from farmlink.config import settings
from farmlink.core.exceptions import ForbiddenError, UnauthorizedError


@dataclass(frozen=True)
class Principal:
    id: str
    role: ClassVar[str] = ""


@dataclass(frozen=True)
class Farmer(Principal):
    role: ClassVar[str] = "farmer"


@dataclass(frozen=True)
class Buyer(Principal):
    role: ClassVar[str] = "buyer"


@dataclass(frozen=True)
class Driver(Principal):
    role: ClassVar[str] = "driver"


@dataclass(frozen=True)
class Admin(Principal):
    role: ClassVar[str] = "admin"


_ROLES: dict[str, type[Principal]] = {
    cls.role: cls for cls in (Farmer, Buyer, Driver, Admin)
}


def principal_from_claims(payload: dict) -> Principal:
    subject = payload.get("sub")
    if not subject:
        raise UnauthorizedError("Token missing subject")
    cls = _ROLES.get(str(payload.get("role", "")).lower())
    if cls is None:
        raise UnauthorizedError("Token carries an unknown role")
    return cls(id=str(subject))


def create_access_token(subject_id: str, role: str) -> str:
    """Create a JWT for a principal. Used by tests and operator tooling."""
    if role not in _ROLES:
        raise ValueError(f"Unknown role '{role}'")
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expire_hours)
    payload = {
        "sub": subject_id,
        "role": role,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Returns the payload."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")
    if payload.get("sub") is None:
        raise UnauthorizedError("Token missing subject")
    return payload


def get_current_principal(authorization: str = Header(None)) -> Principal:
    """FastAPI dependency that resolves the caller from the Authorization header."""
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedError("Authorization header must be: Bearer <token>")

    return principal_from_claims(decode_token(parts[1]))


def _require(cls: type[Principal]):
    def _dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not isinstance(principal, cls):
            raise ForbiddenError(f"{cls.role.capitalize()} role required")
        return principal

    _dependency.__name__ = f"require_{cls.role}"
    return _dependency


require_farmer = _require(Farmer)
require_buyer = _require(Buyer)
require_driver = _require(Driver)
