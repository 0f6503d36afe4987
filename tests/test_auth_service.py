from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from jose import jwt

from bookapi.exceptions import UnauthenticatedError
from bookapi.services.auth_service import (
    SESSION_TTL,
    SessionTokens,
    generate_otp,
    hash_password,
    otp_matches,
    verify_password,
)


def test_password_hash_is_salted_and_verifiable() -> None:
    first = hash_password("secret1")
    second = hash_password("secret1")

    assert first != second
    assert verify_password("secret1", first)
    assert not verify_password("secret2", first)


def test_verify_password_rejects_garbage_hash() -> None:
    assert verify_password("secret1", "not-a-bcrypt-hash") is False


def test_generate_otp_is_six_digits() -> None:
    codes = {generate_otp() for _ in range(200)}
    assert all(len(code) == 6 and code.isdigit() for code in codes)
    assert len(codes) > 1


def test_otp_matches() -> None:
    assert otp_matches("012345", "012345")
    assert not otp_matches("012345", "012346")


def test_token_carries_account_and_role_for_one_hour() -> None:
    tokens = SessionTokens("unit-secret")
    account_id = uuid4()
    issued = datetime.now(timezone.utc)

    payload = tokens.decode(tokens.issue(account_id, "manager", now=issued))

    assert payload["sub"] == str(account_id)
    assert payload["role"] == "manager"
    assert payload["exp"] - payload["iat"] == int(SESSION_TTL.total_seconds())


def test_expired_token_is_rejected() -> None:
    tokens = SessionTokens("unit-secret")
    token = tokens.issue(uuid4(), "user", now=datetime.now(timezone.utc) - timedelta(hours=2))

    with pytest.raises(UnauthenticatedError):
        tokens.decode(token)


def test_token_signed_with_other_secret_is_rejected() -> None:
    forged = SessionTokens("attacker").issue(uuid4(), "admin")
    with pytest.raises(UnauthenticatedError):
        SessionTokens("unit-secret").decode(forged)


def test_non_access_token_is_rejected() -> None:
    token = jwt.encode(
        {"sub": str(uuid4()), "type": "refresh",
         "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "unit-secret",
        algorithm="HS256",
    )
    with pytest.raises(UnauthenticatedError):
        SessionTokens("unit-secret").decode(token)


def test_rs256_tokens_and_jwks(rsa_key_paths, tmp_path) -> None:
    from bookapi.api.jwks import build_jwks
    from bookapi.config import BookApiSettings

    private_path, public_path = rsa_key_paths
    settings = BookApiSettings(
        _env_file=None,
        jwt_private_key_path=str(private_path),
        jwt_public_key_path=str(public_path),
    )
    tokens = SessionTokens.from_settings(settings)
    account_id = uuid4()

    assert tokens.algorithm == "RS256"
    assert tokens.decode(tokens.issue(account_id, "admin"))["sub"] == str(account_id)

    jwks = build_jwks(str(public_path))
    assert [k["alg"] for k in jwks["keys"]] == ["RS256"]
    assert build_jwks("") == {"keys": []}
    assert build_jwks(str(tmp_path / "missing.pem")) == {"keys": []}


def test_missing_private_key_falls_back_to_secret(tmp_path) -> None:
    from bookapi.config import BookApiSettings

    settings = BookApiSettings(
        _env_file=None,
        jwt_secret_key="fallback-secret",
        jwt_private_key_path=str(tmp_path / "absent.pem"),
    )
    tokens = SessionTokens.from_settings(settings)
    assert tokens.algorithm == "HS256"
    assert tokens.decode(tokens.issue(uuid4(), "user"))["role"] == "user"


def test_password_over_bcrypt_limit_never_verifies() -> None:
    hashed = hash_password("p" * 72)
    assert verify_password("p" * 72, hashed)
    assert verify_password("p" * 73, hashed) is False
