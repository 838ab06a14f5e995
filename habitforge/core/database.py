"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Table definitions for the tracking store and the experience ledger
"""
from typing import Optional
from contextlib import contextmanager
import logging

from sqlalchemy import (
    create_engine, MetaData, Table, Column, Integer, String, Date, DateTime, Boolean,
    Numeric, Text, Index, ForeignKey, UniqueConstraint, CheckConstraint, text, true, false,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import func

from habitforge.core.config import settings

logger = logging.getLogger("habitforge")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionLocal = None


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``; SQLite URLs get a single shared connection when in memory."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=False,
    )


def init_engine(database_url: Optional[str] = None) -> Engine:
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or settings.DATABASE_URL
    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    _engine = build_engine(url)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def get_engine() -> Engine:
    """Get the current SQLAlchemy engine."""
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def make_session_scope(session_factory):
    """
    Build a transactional scope bound to ``session_factory``.

    Usage:
        scope = make_session_scope(factory)
        with scope() as session:
            session.execute(...)
    """

    @contextmanager
    def session_scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return session_scope


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """Create all tables defined in metadata. Idempotent."""
    metadata.create_all(bind=engine or get_engine())


def drop_all_tables(engine: Optional[Engine] = None) -> None:
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    metadata.drop_all(bind=engine or get_engine())


def check_connection(engine: Optional[Engine] = None) -> bool:
    """Return True when a trivial query succeeds."""
    try:
        eng = engine or get_engine()
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users (owned by the auth collaborator; read-only here apart from seeding)
users = Table(
    'users',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('username', String(50), nullable=False, unique=True),
    Column('email', String(255), nullable=False, unique=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

categories = Table(
    'categories',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('name', String(100), nullable=False, unique=True),
    Column('active', Boolean, nullable=False, server_default=true()),
)

habits = Table(
    'habits',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('name', String(200), nullable=False),
    Column('status', String(20), nullable=False, server_default='Draft'),
    Column('user_id', String(36), ForeignKey('users.id'), nullable=False),
    Column('category_id', String(36), ForeignKey('categories.id'), nullable=True),
    Column('start_date', Date, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_habits_user', 'user_id'),
)

streaks = Table(
    'streaks',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), ForeignKey('users.id'), nullable=False),
    Column('habit_id', String(36), ForeignKey('habits.id'), nullable=False),
    Column('start_date', Date, nullable=False),
    Column('end_date', Date, nullable=True),
    Column('count', Integer, nullable=False, server_default='0'),
    Column('is_active', Boolean, nullable=False, server_default=true()),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    CheckConstraint('count >= 0', name='ck_streaks_count_non_negative'),
    Index('idx_streaks_user_habit_created', 'user_id', 'habit_id', 'created_at'),
    # At most one active streak per (user, habit)
    Index(
        'uq_streaks_active_user_habit', 'user_id', 'habit_id',
        unique=True,
        postgresql_where=text('is_active'),
        sqlite_where=text('is_active = 1'),
    ),
)

habit_tasks = Table(
    'habit_tasks',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), ForeignKey('users.id'), nullable=False),
    Column('habit_id', String(36), ForeignKey('habits.id'), nullable=False),
    Column('streak_id', String(36), ForeignKey('streaks.id'), nullable=False),
    Column('task_date', Date, nullable=False),
    Column('is_completed', Boolean, nullable=False, server_default=false()),
    Column('completed_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'habit_id', 'task_date', name='uq_habit_tasks_user_habit_date'),
    Index('idx_habit_tasks_streak_date', 'streak_id', 'task_date'),
)

experience_transactions = Table(
    'experience_transactions',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), ForeignKey('users.id'), nullable=False),
    Column('category_id', String(36), ForeignKey('categories.id'), nullable=False),
    Column('habit_task_id', String(36), ForeignKey('habit_tasks.id'), nullable=True),
    Column('type', String(30), nullable=False),
    Column('experience_gained', Integer, nullable=False),
    Column('streak_count', Integer, nullable=True),
    Column('multiplier', Numeric(5, 2), nullable=True),
    Column('description', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_experience_tx_user_created', 'user_id', 'created_at'),
    Index('idx_experience_tx_category_created', 'category_id', 'created_at'),
)

user_category_experience = Table(
    'user_category_experience',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), ForeignKey('users.id'), nullable=False),
    Column('category_id', String(36), ForeignKey('categories.id'), nullable=False),
    Column('total_experience', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'category_id', name='uq_user_category_experience'),
    CheckConstraint('total_experience >= 0', name='ck_user_category_experience_non_negative'),
)

# Friend relationships (owned by the friends collaborator; read-only here)
user_relationships = Table(
    'user_relationships',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), ForeignKey('users.id'), nullable=False),
    Column('target_user_id', String(36), ForeignKey('users.id'), nullable=False),
    Column('status', String(20), nullable=False),  # 'pending' | 'accepted'
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint('user_id', 'target_user_id', name='uq_user_relationships_pair'),
)
