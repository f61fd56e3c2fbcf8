from __future__ import annotations

import os

# Settings are read at import time; keep tests off the production database.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reportgen.core.database import Base
from reportgen.models import models  # noqa: F401  (registers tables)


def _build_db_session():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, future=True)()


@pytest.fixture
def db_session():
    db = _build_db_session()
    try:
        yield db
    finally:
        db.close()
