"""
Database connection and session management
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
import structlog
from callhome.core.config import settings

logger = structlog.get_logger(__name__)

# Create database engine, connections are opened lazily
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_recycle=300,
    echo=settings.debug
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create base class for models
Base = declarative_base()

async def init_database(bind: Engine = engine):
    """Initialize database tables"""
    try:
        # Import all models to ensure they are registered
        from callhome.models import telemetry  # noqa

        # Create all tables
        Base.metadata.create_all(bind=bind)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

def check_database(bind: Engine = engine) -> bool:
    """Check database connectivity"""
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return False
