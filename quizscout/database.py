"""
Database connection and session management using SQLAlchemy.

Celery workers and the CLI use synchronous sessions; every upsert runs
inside a session obtained from here.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from quizscout.config import settings
from quizscout.models.base import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let pysqlite emit BEGIN itself so SAVEPOINT works.

    Upserts rely on nested transactions to recover from unique-constraint
    races; the stock pysqlite transaction handling breaks them.
    """

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create a synchronous engine for the given URL.

    Server databases get a bounded connection pool and UTC sessions;
    sqlite URLs get the savepoint recipe instead.
    """
    if url.startswith("sqlite"):
        from sqlalchemy.pool import StaticPool

        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    engine = create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_timeout=30,
    )

    if url.startswith("postgresql"):

        @event.listens_for(engine, "connect")
        def set_postgres_timezone(dbapi_connection, connection_record):
            """Set PostgreSQL connection parameters."""
            cursor = dbapi_connection.cursor()
            cursor.execute("SET timezone='UTC'")
            cursor.close()

    return engine


sync_engine = create_db_engine(settings.database_url, echo=settings.debug)

SessionLocal = sessionmaker(
    bind=sync_engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def get_sync_session() -> Session:
    """
    Get synchronous database session.

    Usage (for Celery tasks or CLI):
        db = get_sync_session()
        try:
            # Do work
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
    """
    return SessionLocal()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Transactional scope around a series of operations.

    Usage:
        with session_scope() as db:
            upsert_venue(db, candidate)
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine = None) -> None:
    """
    Create all tables.

    WARNING: This should only be used in development.
    In production, use Alembic migrations instead.
    """
    # Import models so they are registered on the metadata
    import quizscout.models  # noqa: F401

    Base.metadata.create_all(bind=engine or sync_engine)
    logger.info("Database tables created successfully")


def check_db_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        bool: True if connection is healthy, False otherwise
    """
    try:
        with sync_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection is healthy")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
