"""SQLAlchemy models."""
from apps.backend.models.user import User
from apps.backend.models.activity import Activity, ActivitySource
from apps.backend.models.ai_summary import AISummary

__all__ = [
    "User",
    "Activity",
    "ActivitySource",
    "AISummary",
]
