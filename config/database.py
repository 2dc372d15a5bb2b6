"""
D2D Neighborhood Atlas - Database Connection Management
SQLAlchemy configuration and ORM tables for the neighborhood cache
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Base class for ORM models
Base = declarative_base()


class NeighborhoodRecord(Base):
    """One cached geographic area. ``id`` doubles as insertion order."""

    __tablename__ = "neighborhoods"

    id = Column(Integer, primary_key=True, autoincrement=True)
    area_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="Unknown")
    city_name = Column(String(128), nullable=False, default="Unknown")
    state = Column(String(128), nullable=False, default="Unknown")
    center_latitude = Column(Float, nullable=False, index=True)
    center_longitude = Column(Float, nullable=False, index=True)
    median_household_income = Column(Float, nullable=False, default=0.0)
    average_home_value = Column(Float, nullable=False, default=0.0)
    population_density = Column(Float, nullable=False, default=0.0)
    home_ownership_rate = Column(Float, nullable=False, default=0.0)
    score = Column(Float, nullable=False, default=0.0, index=True)
    user_notes = Column(Text, nullable=True)
    last_updated = Column(DateTime, nullable=False)


class LeadRecord(Base):
    """Lead owned by the host application; read here for conversion stats."""

    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    address = Column(String(512), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    status = Column(String(32), nullable=False, default="not_contacted")
    neighborhood_id = Column(
        Integer, ForeignKey("neighborhoods.id", ondelete="SET NULL"), nullable=True, index=True
    )


def _engine_kwargs(database_url: str) -> dict:
    # In-memory SQLite must share one connection across sessions and threads
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {}


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Build a SQLAlchemy engine for the given URL (default: settings.DATABASE_URL).
    """
    url = database_url or settings.DATABASE_URL
    return create_engine(url, echo=settings.DEBUG, **_engine_kwargs(url))


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


# SQLAlchemy engine
engine = create_db_engine()

# Session factory
SessionLocal = make_session_factory(engine)


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db() as db:
            db.add(...)
    """
    factory = session_factory or SessionLocal
    db = factory()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None):
    """
    Create the neighborhood and lead tables if they do not exist.
    Safe to run repeatedly.
    """
    target = bind or engine
    logger.info("Initializing database schema...")
    Base.metadata.create_all(bind=target)
    logger.info("Database schema ready")


def test_connection(session_factory: Optional[sessionmaker] = None) -> bool:
    """
    Test database connectivity.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with get_db(session_factory) as db:
            result = db.execute(text("SELECT 1"))
            assert result.scalar() == 1
            logger.info("Database connection successful")
            return True

    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


if __name__ == "__main__":
    # Test connection when run directly
    logging.basicConfig(level=logging.INFO)
    init_db()
    if test_connection():
        print("✅ Database connection successful")
    else:
        print("❌ Database connection failed")
