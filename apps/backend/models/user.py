"""Application users."""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, String, Text, DateTime

from apps.backend.database import Base


def new_id() -> str:
    return str(uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(Text, nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    def public_dict(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name}
