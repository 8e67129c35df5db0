import logging
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from examsim.core.config import settings

logger = logging.getLogger(__name__)

def build_engine(url: str) -> Engine:
    """Create an engine; SQLite gets a thread-shareable connection instead of a pool."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, echo=settings.DATABASE_ECHO, **kwargs)
    return create_engine(
        url,
        future=True,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
    )

engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def init_db(bind: Engine | None = None) -> None:
    """Create tables if they don't exist."""
    from examsim.models.orm import Base
    # In production, use migrations instead
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema ensured")

def close_db() -> None:
    engine.dispose()
