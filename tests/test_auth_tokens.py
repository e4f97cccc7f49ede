"""Password hashing and token issue/validate/rotate."""
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from apps.backend.auth import (
    get_password_hash,
    verify_password,
    issue_tokens,
    validate_token,
    rotate_tokens,
)
from apps.backend.config import get_settings
from apps.backend.utils.api_errors import InvalidToken, AuthError


def test_hash_is_salted_and_verifies():
    h1 = get_password_hash("Passw0rd!")
    h2 = get_password_hash("Passw0rd!")
    assert h1 != h2
    assert h1 != "Passw0rd!"
    assert verify_password("Passw0rd!", h1)
    assert verify_password("Passw0rd!", h2)


def test_wrong_password_rejected():
    h = get_password_hash("Passw0rd!")
    assert verify_password("passw0rd!", h) is False
    assert verify_password("", h) is False


def test_verify_against_garbage_hash_is_false():
    assert verify_password("Passw0rd!", "not-a-bcrypt-hash") is False


def test_default_cost_factor_is_12():
    from apps.backend.config import Settings
    assert Settings.model_fields["bcrypt_rounds"].default == 12


def test_issue_and_validate_round_trip():
    pair = issue_tokens("user-1")
    assert validate_token(pair.access_token, "access").user_id == "user-1"
    assert validate_token(pair.refresh_token, "refresh").user_id == "user-1"


def test_access_token_rejected_as_refresh():
    pair = issue_tokens("user-1")
    with pytest.raises(InvalidToken):
        validate_token(pair.access_token, "refresh")


def test_refresh_token_rejected_as_access():
    pair = issue_tokens("user-1")
    with pytest.raises(InvalidToken):
        validate_token(pair.refresh_token, "access")


def test_type_claim_checked_even_with_matching_secret():
    s = get_settings()
    now = datetime.now(timezone.utc)
    forged = jwt.encode(
        {
            "sub": "user-1",
            "type": "refresh",
            "iss": s.jwt_issuer,
            "aud": s.jwt_audience,
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        s.jwt_secret,
        algorithm=s.jwt_algorithm,
    )
    with pytest.raises(InvalidToken):
        validate_token(forged, "access")


def test_access_token_expires_after_15_minutes():
    issued_at = datetime.now(timezone.utc)
    pair = issue_tokens("user-1", now=issued_at)
    assert validate_token(pair.access_token, "access", now=issued_at + timedelta(minutes=14)).user_id == "user-1"
    with pytest.raises(InvalidToken):
        validate_token(pair.access_token, "access", now=issued_at + timedelta(minutes=15, seconds=1))


def test_refresh_token_lives_7_days():
    issued_at = datetime.now(timezone.utc)
    pair = issue_tokens("user-1", now=issued_at)
    validate_token(pair.refresh_token, "refresh", now=issued_at + timedelta(days=6, hours=23))
    with pytest.raises(InvalidToken):
        validate_token(pair.refresh_token, "refresh", now=issued_at + timedelta(days=7, seconds=1))


def test_tampered_token_rejected():
    pair = issue_tokens("user-1")
    head, body, sig = pair.access_token.split(".")
    tampered = ".".join([head, body, ("A" if sig[0] != "A" else "B") + sig[1:]])
    with pytest.raises(InvalidToken):
        validate_token(tampered, "access")


def test_wrong_audience_rejected():
    s = get_settings()
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {
            "sub": "user-1",
            "type": "access",
            "iss": s.jwt_issuer,
            "aud": "someone-else",
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        s.jwt_secret,
        algorithm=s.jwt_algorithm,
    )
    with pytest.raises(InvalidToken):
        validate_token(token, "access")


def test_invalid_token_is_an_auth_error_with_uniform_message():
    with pytest.raises(AuthError) as exc:
        validate_token("garbage", "access")
    assert exc.value.message == "Invalid or expired token"
    assert exc.value.status_code == 401


def test_rotate_issues_new_pair_and_allows_replay():
    issued_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    pair = issue_tokens("user-1", now=issued_at)
    first = rotate_tokens(pair.refresh_token)
    second = rotate_tokens(pair.refresh_token)
    assert validate_token(first.access_token, "access").user_id == "user-1"
    assert validate_token(second.access_token, "access").user_id == "user-1"


def test_rotate_rejects_access_token():
    pair = issue_tokens("user-1")
    with pytest.raises(InvalidToken):
        rotate_tokens(pair.access_token)


def test_password_longer_than_72_bytes_hashes_and_verifies():
    long_pw = "ж" * 50  # 100 bytes in UTF-8
    hashed = get_password_hash(long_pw)
    assert verify_password(long_pw, hashed)
    assert verify_password(long_pw[:36], hashed)
    assert not verify_password(long_pw[:35], hashed)
