"""
Database Module

Sets up the SQLite database connection using SQLAlchemy ORM.
Defines the DecisionRecord table, a write-only audit trail of the
decisions the engine reached. Uses a file-based SQLite database
(zerotrust.db) for local development.

Only the outcome is stored: session id, identifier, state reached and the
trust score at that moment. No secrets and no keystroke timings. Live
sessions never read scores back from this table.
"""

import os
from datetime import datetime, timezone
from sqlalchemy import create_engine, Column, Integer, Float, String, DateTime, Text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Determine database path – store in project root
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DB_PATH = os.path.join(BASE_DIR, "zerotrust.db")
SQLALCHEMY_DATABASE_URL = f"sqlite:///{DB_PATH}"

Base = declarative_base()


class DecisionRecord(Base):
    """
    Database model representing one decision of the auth protocol.
    """
    __tablename__ = "decision_records"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, nullable=False, index=True)
    identifier = Column(String, nullable=True)
    state = Column(String, nullable=False)
    trust_score = Column(Integer, nullable=False)
    factors = Column(Text, nullable=False)  # JSON string of TrustFactors
    timestamp = Column(Float, nullable=False, index=True)  # Unix timestamp
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<DecisionRecord id={self.id} session={self.session_id} state={self.state} score={self.trust_score}>"


def make_session_factory(database_url: str = SQLALCHEMY_DATABASE_URL) -> sessionmaker:
    """
    Create the engine and tables for `database_url` and return a session factory.
    In-memory URLs share one connection so every request sees the same tables.
    """
    connect_args = {}
    engine_kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # FastAPI runs sync deps in a threadpool
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, connect_args=connect_args, echo=False, **engine_kwargs)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_session_decisions(db: Session, session_id: str):
    """
    Retrieve all decision records for a given session, oldest first.
    """
    return db.query(DecisionRecord).filter(DecisionRecord.session_id == session_id).order_by(DecisionRecord.timestamp, DecisionRecord.id).all()
