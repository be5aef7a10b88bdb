from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from typing import Generator
import logging
import redis
from .config import settings

logger = logging.getLogger(__name__)

_database_url = settings.get_database_url

if _database_url.startswith("sqlite"):
    # SQLite connections are shared with the test client's worker thread
    engine = create_engine(
        _database_url,
        connect_args={"check_same_thread": False},
    )
else:
    # PostgreSQL setup with appropriate connection pool settings
    engine = create_engine(
        _database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Connections are opened lazily on the first command
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Redis dependency
def get_redis():
    """Get Redis client."""
    return redis_client

# Database initialization
def init_db():
    """Initialize database tables."""
    # Import models so they are registered on the metadata
    from ..models import user, doctor, appointment, notification, review  # noqa: F401

    Base.metadata.create_all(bind=engine)

def check_db_connection() -> bool:
    """Run a trivial query to check the database is reachable."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return False
