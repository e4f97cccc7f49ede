"""Shared fixtures: in-memory SQLite and a cheap bcrypt cost for speed."""
import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "test")

import pytest
from sqlalchemy.orm import sessionmaker

from apps.backend.database import get_test_engine, Base
import apps.backend.models  # noqa: F401


@pytest.fixture
def test_db_session():
    engine = get_test_engine()
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def override_get_db(test_db_session):
    def _get_db():
        try:
            yield test_db_session
        finally:
            pass
    return _get_db
