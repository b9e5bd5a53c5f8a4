"""Database configuration using SQLAlchemy."""

from contextlib import contextmanager
from typing import Callable, Generator, TypeVar

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.orm.exc import StaleDataError

from .settings import settings

logger = structlog.get_logger()

T = TypeVar("T")


def build_engine(database_url: str, echo: bool = False):
    """Create an engine with pool settings suited to the backend."""
    if database_url.startswith("sqlite"):
        # SQLite connections are shared across the API thread pool
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

# Base class for models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Usage:
        @router.get("/items")
        def get_items(db: Session = Depends(get_db)):
            return db.query(Item).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(session_factory: Callable[[], Session] = SessionLocal) -> Generator[Session, None, None]:
    """Open a session, commit on success, roll back on any exception.

    Everything written through the yielded session lands in one transaction:
    aggregate changes, history rows, outbox rows and queue jobs.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def run_in_transaction(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    max_attempts: int = 3,
) -> T:
    """Run ``work`` inside a unit of work, retrying on version conflicts.

    A StaleDataError means another writer bumped the row version between our
    read and our flush; the whole unit is replayed against fresh state.
    """
    attempt = 1
    while True:
        try:
            with unit_of_work(session_factory) as db:
                return work(db)
        except StaleDataError as e:
            if attempt >= max_attempts:
                logger.error("Concurrent update conflict, giving up", attempts=attempt, error=str(e))
                raise
            logger.warning("Concurrent update conflict, retrying", attempt=attempt)
            attempt += 1


def init_db(bind=None) -> None:
    """Initialize database tables."""
    # Import all models to register them with Base
    from api import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def check_db_connection() -> bool:
    """Check if database connection is working."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
