"""FastAPI dependencies."""
from typing import Generator

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from apps.backend.auth import validate_token
from apps.backend.database import get_session_factory
from apps.backend.models.user import User
from apps.backend.utils.api_errors import AuthError

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    factory = get_session_factory()
    sess = factory()
    try:
        yield sess
    finally:
        sess.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if not credentials or not credentials.credentials:
        raise AuthError("Access token required")
    claims = validate_token(credentials.credentials, "access")
    user = db.get(User, claims.user_id)
    if not user:
        # Deleted account and forged subject look the same to the caller.
        raise AuthError("Invalid or expired token")
    return user
