"""Per-user provider connections (ActivitySource rows)."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.backend.config import get_settings
from apps.backend.models.activity import ActivitySource
from apps.backend.services.token_crypto import encrypt_credentials, decrypt_credentials


def get_source(db: Session, user_id: str, source_type: str) -> Optional[ActivitySource]:
    return db.execute(
        select(ActivitySource).where(
            ActivitySource.user_id == user_id,
            ActivitySource.type == source_type,
        )
    ).scalar_one_or_none()


def list_sources(db: Session, user_id: str) -> list[ActivitySource]:
    return list(
        db.execute(
            select(ActivitySource).where(ActivitySource.user_id == user_id).order_by(ActivitySource.type)
        ).scalars()
    )


def ensure_source(
    db: Session,
    user_id: str,
    source_type: str,
    credentials: dict | None = None,
) -> ActivitySource:
    """Create the source on first use; overwrite credentials when new ones are given."""
    row = get_source(db, user_id, source_type)
    if not row:
        row = ActivitySource(user_id=user_id, type=source_type, is_active=True)
        db.add(row)
    if credentials:
        row.credentials = encrypt_credentials(credentials, get_settings().token_encryption_key)
        row.is_active = True
    db.flush()
    return row


def get_source_credentials(db: Session, user_id: str, source_type: str) -> Optional[dict]:
    row = get_source(db, user_id, source_type)
    if not row or not row.is_active:
        return None
    return decrypt_credentials(row.credentials, get_settings().token_encryption_key)


def mark_synced(row: ActivitySource, when: datetime | None = None) -> None:
    row.last_sync = when or datetime.now()
