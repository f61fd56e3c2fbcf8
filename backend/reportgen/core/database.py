"""
Database engine, session factory and declarative base.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from reportgen.core.config import settings


def _engine_kwargs(database_url: str) -> dict:
    if not database_url.startswith(("postgresql://", "postgres://")):
        return {}
    # psycopg2 honors connect_timeout in seconds.
    return {
        "connect_args": {"connect_timeout": 5},
        "poolclass": QueuePool,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_pre_ping": True,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

