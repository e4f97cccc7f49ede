"""Activity sources and normalized activities."""
from datetime import datetime

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB

from apps.backend.database import Base
from apps.backend.models.user import new_id

SOURCE_GITHUB = "github"
SOURCE_YOUTUBE = "youtube"
SOURCE_LOCAL = "local"


class ActivitySource(Base):
    __tablename__ = "activity_sources"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # github | youtube | local
    credentials = Column(Text, nullable=True)  # Fernet-encrypted JSON
    last_sync = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("user_id", "type", name="uq_activity_sources_user_type"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "lastSync": self.last_sync.isoformat() if self.last_sync else None,
            "isActive": bool(self.is_active),
        }


class Activity(Base):
    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    source_id = Column(String(36), ForeignKey("activity_sources.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(100), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSONB, nullable=False, default=dict)
    timestamp = Column(DateTime, nullable=False)  # when the action happened
    created_at = Column(DateTime, default=datetime.now, nullable=False)  # when it was ingested
    external_id = Column(String(255), nullable=True)  # provider-native id; NULL never conflicts

    __table_args__ = (
        UniqueConstraint("user_id", "type", "external_id", name="uq_activities_user_type_external"),
        Index("ix_activities_user_timestamp", "user_id", "timestamp"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "sourceId": self.source_id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "metadata": self.metadata_json or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
