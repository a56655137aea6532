from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base


def make_engine(db_url: str):
    """
    Engine for the configured DB URL (SQLite locally, Cloud SQL in production).
    In-memory SQLite shares one connection so every thread sees the same data.
    """
    if db_url.startswith("sqlite") and ":memory:" in db_url:
        return create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if db_url.startswith("sqlite"):
        return create_engine(
            db_url, echo=False, future=True, connect_args={"check_same_thread": False}
        )
    return create_engine(db_url, echo=False, future=True, pool_pre_ping=True)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db(engine) -> None:
    # Create tables if they don't exist
    Base.metadata.create_all(engine)
