"""SQLite database management with SQLAlchemy 2.0."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional
from contextlib import contextmanager

from sqlalchemy import (
    create_engine,
    String,
    Float,
    Integer,
    DateTime,
    Index,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    Session,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

from config.settings import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Declarative base
class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


# Database models
class User(Base):
    """Accumulated prediction statistics for one player."""

    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    registered_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, nullable=False
    )
    prediction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    win_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cumulative_reward: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_users_reward", "cumulative_reward"),
    )

    def __repr__(self) -> str:
        return (
            f"<User(user_id={self.user_id}, predictions={self.prediction_count}, "
            f"wins={self.win_count}, reward={self.cumulative_reward:.4f})>"
        )


# Engine and session management
engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def make_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite gets a StaticPool so every session shares one connection.
    """
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            return create_engine(
                database_url,
                connect_args=connect_args,
                poolclass=StaticPool,
            )
        db_path = database_url.split("sqlite:///", 1)[-1]
        if db_path:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(database_url, connect_args=connect_args)
    return create_engine(database_url, pool_pre_ping=True)


def init_db(database_url: Optional[str] = None) -> sessionmaker:
    """
    Initialize database engine, create tables and the session factory.

    Args:
        database_url: SQLAlchemy URL (defaults to settings.DATABASE_URL)

    Returns:
        Session factory bound to the engine
    """
    global engine, SessionLocal

    engine = make_engine(database_url or settings.DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Database session context manager.

    Commits on success, rolls back on error.

    Yields:
        SQLAlchemy session
    """
    factory = session_factory or SessionLocal
    if factory is None:
        factory = init_db()

    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
