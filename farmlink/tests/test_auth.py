"""Principal resolution: JWT claims to Farmer/Buyer/Driver/Admin."""

import pytest
from jose import jwt

from farmlink.config import settings
from farmlink.core.auth import (
    Admin,
    Buyer,
    Driver,
    Farmer,
    create_access_token,
    decode_token,
    get_current_principal,
    principal_from_claims,
)
from farmlink.core.exceptions import UnauthorizedError


@pytest.mark.parametrize(
    "role,cls",
    [("farmer", Farmer), ("buyer", Buyer), ("driver", Driver), ("admin", Admin)],
)
def test_token_round_trips_to_principal(role, cls):
    token = create_access_token("user-1", role)
    principal = principal_from_claims(decode_token(token))
    assert isinstance(principal, cls)
    assert principal.id == "user-1"
    assert principal.role == role


def test_unknown_role_rejected():
    with pytest.raises(UnauthorizedError):
        principal_from_claims({"sub": "x", "role": "auditor"})
    with pytest.raises(ValueError):
        create_access_token("x", "auditor")


def test_tampered_token_rejected():
    token = jwt.encode({"sub": "x", "role": "buyer"}, "not-the-secret", algorithm=settings.jwt_algorithm)
    with pytest.raises(UnauthorizedError):
        decode_token(token)


def test_header_must_be_bearer():
    token = create_access_token("x", "buyer")
    with pytest.raises(UnauthorizedError):
        get_current_principal(f"Token {token}")
    with pytest.raises(UnauthorizedError):
        get_current_principal(None)
    assert isinstance(get_current_principal(f"Bearer {token}"), Buyer)


async def test_missing_token_is_401(client):
    resp = await client.get("/api/lots")
    assert resp.status_code == 401


async def test_wrong_role_is_403(client, make_principal, auth_header):
    _, driver_token = make_principal("driver")
    resp = await client.post(
        "/api/lots",
        json={"produceType": "Maize", "quantity": 10, "pickup": {"lat": 0, "lng": 32}},
        headers=auth_header(driver_token),
    )
    assert resp.status_code == 403
