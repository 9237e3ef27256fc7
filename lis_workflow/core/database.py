"""
Database connection and session management for the LIS workflow core
"""

import logging
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import settings
from .exceptions import DatabaseException

logger = logging.getLogger(__name__)


def create_database_engine(database_url: str = None):
    """Create database engine based on configuration"""
    
    database_url = database_url or settings.database_url
    
    # Special handling for SQLite
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.database_echo
        )
    else:
        # PostgreSQL or other databases
        engine = create_engine(
            database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            echo=settings.database_echo
        )
    
    return engine


def create_session_factory(bind) -> sessionmaker:
    """Session factory whose objects stay readable after commit"""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


# Create engine instance
engine = create_database_engine()

# Create session factory
SessionLocal = create_session_factory(engine)

# Create declarative base
Base = declarative_base()


def create_tables(bind=None):
    """Create all tables in the database"""
    # Models register themselves on Base when imported
    from .. import models  # noqa: F401
    
    try:
        Base.metadata.create_all(bind=bind or engine)
    except Exception as e:
        raise DatabaseException(f"Failed to create tables: {str(e)}")


def get_session() -> Session:
    """Get a database session (for non-FastAPI usage)"""
    return SessionLocal()


class DatabaseManager:
    """Database management utilities"""
    
    @staticmethod
    def test_connection() -> bool:
        """Test database connection"""
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection error: {e}")
            return False


# Initialize database manager
db_manager = DatabaseManager()
