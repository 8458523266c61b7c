"""
OData Shop - Database Configuration
=====================================
Engine, SessionLocal, Base, and get_uow dependency.
All models across all modules inherit from this Base.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config import settings

Base = declarative_base()


def create_db_engine(url: str = None, echo: bool = None) -> Engine:
    """Build an engine; SQLite gets foreign key enforcement, servers get a sized pool."""
    url = url or settings.DATABASE_URL
    echo = settings.DB_ECHO if echo is None else echo

    if url.startswith("sqlite"):
        db_engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})

        @event.listens_for(db_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return db_engine

    return create_engine(
        url,
        echo=echo,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


def make_session_factory(db_engine: Engine) -> sessionmaker:
    """Sessions keep loaded state after commit and refuse reuse once closed."""
    return sessionmaker(
        bind=db_engine,
        autoflush=False,
        expire_on_commit=False,
        close_resets_only=False,
    )


engine = create_db_engine()

SessionLocal = make_session_factory(engine)


def get_uow():
    """FastAPI dependency: yields one Unit of Work per request, disposed after the response."""
    from modules.repository.unit_of_work import UnitOfWork

    uow = UnitOfWork(SessionLocal)
    try:
        yield uow
    finally:
        uow.close()
