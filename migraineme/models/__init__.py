from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class NutritionOutbox(Base):
    """Pending nutrition changes waiting to be pushed to Supabase."""

    __tablename__ = "nutrition_outbox"

    health_connect_id = Column(String(255), primary_key=True)
    operation = Column(String(10), nullable=False)  # UPSERT, DELETE
    created_at_epoch_ms = Column(BigInteger, nullable=False, index=True)
    retry_count = Column(Integer, nullable=False, default=0)


class SyncState(Base):
    """Singleton row (id=1) with nutrition sync bookkeeping."""

    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True, default=1)
    nutrition_changes_token = Column(Text)
    last_hourly_run_at = Column(BigInteger)
    last_push_run_at = Column(BigInteger)


class AuthSession(Base):
    """Singleton row (id=1) holding the signed-in Supabase session."""

    __tablename__ = "auth_sessions"

    id = Column(Integer, primary_key=True, default=1)
    access_token = Column(Text)
    refresh_token = Column(Text)
    expires_in = Column(Integer)  # seconds
    obtained_at = Column(BigInteger)  # epoch ms
    user_id = Column(String(64))
    auth_provider = Column(String(32))
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Preference(Base):
    """Key/value flags (OAuth callback state, feature toggles)."""

    __tablename__ = "preferences"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ScheduledJob(Base):
    """Persisted state of one uniquely named background job."""

    __tablename__ = "scheduled_jobs"

    name = Column(String(100), primary_key=True)
    worker = Column(String(100), nullable=False)
    kind = Column(String(10), nullable=False, default="periodic")  # periodic, oneshot
    interval_seconds = Column(Float)
    state = Column(String(20), nullable=False, default="ENQUEUED")
    next_run_at = Column(DateTime, nullable=False, index=True)
    run_attempt = Column(Integer, nullable=False, default=0)
    last_result = Column(String(20))
    last_run_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
