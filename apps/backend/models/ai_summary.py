"""Generated daily summaries. One row per generation; same-day rows are not merged."""
from datetime import datetime

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB

from apps.backend.database import Base
from apps.backend.models.user import new_id


class AISummary(Base):
    __tablename__ = "ai_summaries"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime, nullable=False)  # start of the summarized local day
    summary = Column(Text, nullable=False)
    insights = Column(JSONB, nullable=False, default=dict)
    priorities = Column(JSONB, nullable=True, default=list)
    model_version = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        Index("ix_ai_summaries_user_date", "user_id", "date"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "date": self.date.isoformat() if self.date else None,
            "summary": self.summary,
            "insights": self.insights or {},
            "priorities": self.priorities or [],
            "modelVersion": self.model_version,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
