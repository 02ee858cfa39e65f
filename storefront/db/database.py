"""Database connection and session management"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()

engine = None
SessionLocal = None


def init_database(database_url: str):
    """Initialize database connection"""
    global engine, SessionLocal

    logger.info("Initializing database connection")

    if database_url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False
        )
    else:
        engine = create_engine(
            database_url,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            echo=False
        )

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info("Database connection initialized")

    return engine


def create_tables():
    """Create all tables"""
    # Register the ORM models on Base.metadata
    from storefront.models import order  # noqa: F401

    logger.info("Creating database tables")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def check_connection() -> bool:
    """Run a trivial query to prove the database is reachable"""
    with SessionLocal() as db:
        db.execute(text("SELECT 1"))
    return True


def get_db() -> Generator[Session, None, None]:
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
