"""Registration, login and token rotation."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.backend.auth import get_password_hash, verify_password, issue_tokens, rotate_tokens
from apps.backend.deps import get_db, get_current_user
from apps.backend.models.user import User
from apps.backend.utils.api_errors import AuthError, ConflictError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


class RegisterBody(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=255)


class LoginBody(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshBody(BaseModel):
    refreshToken: str | None = None


def _normalize_email(email: str) -> str:
    return email.lower().strip()


def _auth_payload(user: User) -> dict:
    return {"user": user.public_dict(), **issue_tokens(user.id).as_dict()}


@router.post("/register", status_code=201)
def register(body: RegisterBody, db: Session = Depends(get_db)):
    email = _normalize_email(body.email)
    existing = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if existing:
        raise ConflictError("User already exists")
    user = User(email=email, password_hash=get_password_hash(body.password), name=body.name.strip())
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user_registered user_id=%s", user.id)
    return _auth_payload(user)


@router.post("/login")
def login(body: LoginBody, db: Session = Depends(get_db)):
    email = _normalize_email(body.email)
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    # Unknown email and wrong password are indistinguishable to the caller.
    if not user or not verify_password(body.password, user.password_hash):
        raise AuthError("Invalid credentials")
    return _auth_payload(user)


@router.post("/refresh")
def refresh(body: RefreshBody):
    if not body.refreshToken:
        raise ValidationError("Refresh token required")
    try:
        pair = rotate_tokens(body.refreshToken)
    except AuthError:
        raise AuthError("Invalid refresh token")
    return pair.as_dict()


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return user.public_dict()
