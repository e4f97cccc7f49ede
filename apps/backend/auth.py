"""Password hashing and JWT access/refresh token lifecycle."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

import bcrypt
from jose import JWTError, jwt

from apps.backend.config import get_settings
from apps.backend.utils.api_errors import InvalidToken

TokenType = Literal["access", "refresh"]

# bcrypt only reads the first 72 bytes of a password; longer input is truncated explicitly
_MAX_PW_BYTES = 72


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def as_dict(self) -> dict:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    type: str


def _to_bytes(s: str) -> bytes:
    b = s.encode("utf-8")
    return b[: _MAX_PW_BYTES] if len(b) > _MAX_PW_BYTES else b


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_to_bytes(plain), hashed.encode() if isinstance(hashed, str) else hashed)
    except ValueError:
        # Not a bcrypt hash at all.
        return False


def get_password_hash(password: str) -> str:
    s = get_settings()
    return bcrypt.hashpw(_to_bytes(password), bcrypt.gensalt(rounds=s.bcrypt_rounds)).decode()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _secret_for(token_type: str) -> str:
    s = get_settings()
    return s.jwt_secret if token_type == "access" else s.jwt_refresh_secret


def _lifetime_for(token_type: str) -> timedelta:
    s = get_settings()
    if token_type == "access":
        return timedelta(minutes=s.access_token_expire_minutes)
    return timedelta(days=s.refresh_token_expire_days)


def create_token(user_id: str, token_type: TokenType, now: Optional[datetime] = None) -> str:
    s = get_settings()
    issued = now or _utcnow()
    to_encode = {
        "sub": str(user_id),
        "type": token_type,
        "iss": s.jwt_issuer,
        "aud": s.jwt_audience,
        "iat": int(issued.timestamp()),
        "exp": int((issued + _lifetime_for(token_type)).timestamp()),
    }
    return jwt.encode(to_encode, _secret_for(token_type), algorithm=s.jwt_algorithm)


def issue_tokens(user_id: str, now: Optional[datetime] = None) -> TokenPair:
    """Access (short-lived) and refresh (long-lived) tokens, each signed with its own secret."""
    return TokenPair(
        access_token=create_token(user_id, "access", now=now),
        refresh_token=create_token(user_id, "refresh", now=now),
    )


def validate_token(token: str, expected_type: TokenType, now: Optional[datetime] = None) -> TokenClaims:
    """
    Verify signature, expiry, issuer and audience, then the embedded `type`.
    Every failure is reported as the same InvalidToken.
    """
    s = get_settings()
    try:
        payload = jwt.decode(
            token,
            _secret_for(expected_type),
            algorithms=[s.jwt_algorithm],
            audience=s.jwt_audience,
            issuer=s.jwt_issuer,
            options={"verify_exp": False},
        )
    except JWTError:
        raise InvalidToken()
    exp = payload.get("exp")
    current = now or _utcnow()
    if not isinstance(exp, (int, float)) or current.timestamp() >= exp:
        raise InvalidToken()
    if payload.get("type") != expected_type:
        raise InvalidToken()
    sub = payload.get("sub")
    if not sub:
        raise InvalidToken()
    return TokenClaims(user_id=str(sub), type=expected_type)


def rotate_tokens(refresh_token: str, now: Optional[datetime] = None) -> TokenPair:
    # Refresh tokens are not single-use: the same one rotates until it expires.
    claims = validate_token(refresh_token, "refresh", now=now)
    return issue_tokens(claims.user_id, now=now)
