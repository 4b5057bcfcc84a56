"""
action_engine/database.py

SQLAlchemy tables backing the reference state store and memory log adapters.
The engine itself never touches these; handlers reach them through the
StateStore / MemoryLog protocols.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StateEntry(Base):
    """One (scope, id) -> JSON value row."""

    __tablename__ = "state_entries"

    scope = Column(String(100), primary_key=True)
    entry_id = Column(String(200), primary_key=True)
    value = Column(Text, nullable=False)  # JSON
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class MemoryRecord(Base):
    """Append-only memory log row."""

    __tablename__ = "memory_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_type = Column(String(100), index=True)
    payload = Column(Text, nullable=False)  # JSON
    created_at = Column(DateTime, default=_utcnow, index=True)


def create_db_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create the adapter tables."""
    Base.metadata.create_all(bind=engine)
