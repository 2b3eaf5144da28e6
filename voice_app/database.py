"""
Database configuration and models using SQLAlchemy.
Supports SQLite (default) or PostgreSQL.
"""

import os
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    create_engine, Column, String, Text, DateTime, Boolean, Float, JSON, ForeignKey, event,
)
from sqlalchemy.orm import declarative_base, sessionmaker

# Database URL - defaults to SQLite, can use PostgreSQL
DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    "sqlite:///./data/voice_actions.db"
)


def normalize_url(url: str) -> str:
    # Some cloud providers still hand out postgres:// URLs
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def make_engine(url: str, **kwargs):
    """Create an engine; SQLite gets WAL mode and cross-thread connections."""
    url = normalize_url(url)
    if not url.startswith("sqlite"):
        return create_engine(url, **kwargs)

    connect_args = kwargs.pop("connect_args", {})
    connect_args.setdefault("check_same_thread", False)
    sqlite_engine = create_engine(url, connect_args=connect_args, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return sqlite_engine


DATABASE_URL = normalize_url(DATABASE_URL)
engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# MODELS
# ============================================================================

class User(Base):
    """Profile used for auth and prompt personalization."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(320), unique=True)
    name = Column(String(200), default="")
    preferred_name = Column(String(100))
    language = Column(String(10), default="en")   # ISO 639-1
    timezone = Column(String(64))                  # IANA name, e.g. Europe/Paris
    profession = Column(String(200))
    critical_artifacts = Column(JSON, default=list)  # Work focus areas
    health_interests = Column(JSON, default=list)
    api_token = Column(String(128), unique=True, index=True)
    created_at = Column(DateTime, default=utcnow)


class VoiceRecordingRow(Base):
    """One captured voice note and its processing status."""
    __tablename__ = "voice_recordings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    audio_url = Column(String(2000))   # Null until the upload finishes
    transcription = Column(Text)
    ai_summary = Column(Text)
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, completed, failed
    duration_seconds = Column(Float, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    priority = Column(String(10), default="medium")
    status = Column(String(20), default="pending")
    due_date = Column(String(10))   # YYYY-MM-DD
    due_time = Column(String(5))    # HH:MM
    category = Column(String(100))
    tags = Column(JSON, default=list)
    source_recording_id = Column(String(36), index=True)
    created_at = Column(DateTime, default=utcnow)


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    reminder_time = Column(String(40), nullable=False)  # ISO datetime with offset
    is_recurring = Column(Boolean, default=False)
    recurrence_pattern = Column(String(200))
    priority = Column(String(10), default="medium")
    type = Column(String(10), default="reminder")
    tags = Column(JSON, default=list)
    is_completed = Column(Boolean, default=False)
    source_recording_id = Column(String(36), index=True)
    created_at = Column(DateTime, default=utcnow)


class HealthNote(Base):
    __tablename__ = "health_notes"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    category = Column(String(20), default="other")
    tags = Column(JSON, default=list)
    source = Column(String(20), default="voice")
    source_recording_id = Column(String(36), index=True)
    created_at = Column(DateTime, default=utcnow)


class AIDocument(Base):
    """Long-form content drafted from voice notes."""
    __tablename__ = "ai_documents"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    content_type = Column(String(50), nullable=False)
    content = Column(Text, nullable=False)
    preview_text = Column(Text)
    tags = Column(JSON, default=list)
    language = Column(String(10))
    status = Column(String(20), default="ready")
    source_voice_note_ids = Column(JSON, default=list)
    profession_context = Column(String(200))
    confidence_score = Column(Float)
    generation_type = Column(String(20))   # explicit or proactive
    model_used = Column(String(100))
    created_at = Column(DateTime, default=utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text)
    type = Column(String(50))
    related_document_id = Column(String(36))
    deep_link = Column(String(500))
    is_read = Column(Boolean, default=False)
    is_dismissed = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)


# ============================================================================
# DATABASE HELPERS
# ============================================================================

def init_db(bind=None):
    """Initialize database tables."""
    bind = bind or engine
    # Ensure data directory exists for SQLite
    if str(bind.url).startswith("sqlite:///./data"):
        os.makedirs("data", exist_ok=True)

    Base.metadata.create_all(bind=bind)


def get_db():
    """Get database session (for FastAPI dependency injection)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
