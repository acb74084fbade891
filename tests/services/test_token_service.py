from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from app.services import token_service


def test_round_trip_claims() -> None:
    token = token_service.create_access_token(sub="abc", role="teacher")
    claims = token_service.decode_access_token(token)
    assert claims["sub"] == "abc"
    assert claims["role"] == "teacher"
    assert claims["iss"] == token_service.ISSUER
    assert claims["aud"] == token_service.AUDIENCE


def test_expired_token_is_rejected() -> None:
    token = token_service.create_access_token(sub="abc", role="student", ttl_min=-1)
    with pytest.raises(jwt.ExpiredSignatureError):
        token_service.decode_access_token(token)


def test_hs256_token_is_rejected() -> None:
    now = datetime.now(UTC)
    forged = jwt.encode(
        {
            "sub": "abc",
            "role": "admin",
            "iss": token_service.ISSUER,
            "aud": token_service.AUDIENCE,
            "exp": now + timedelta(minutes=5),
            "iat": now,
            "jti": "x",
        },
        "k" * 32,
        algorithm="HS256",
    )
    with pytest.raises(jwt.InvalidTokenError):
        token_service.decode_access_token(forged)


def test_missing_role_claim_is_rejected() -> None:
    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "sub": "abc",
            "iss": token_service.ISSUER,
            "aud": token_service.AUDIENCE,
            "exp": now + timedelta(minutes=5),
            "iat": now,
            "jti": "x",
        },
        token_service._private_key,
        algorithm=token_service.ALGORITHM,
    )
    with pytest.raises(jwt.MissingRequiredClaimError):
        token_service.decode_access_token(token)
