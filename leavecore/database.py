# LeaveCore - Database Setup
# SQLAlchemy engine, session factory, and FastAPI dependencies

from typing import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from leavecore.config import Settings, get_settings
from leavecore.models import Base


def build_engine(settings: Settings) -> Engine:
    """
    Create the engine for the configured database.

    SQLite (local sandbox, tests) gets a plain engine; SQL Server gets
    the pooled engine with connection-level options.
    """
    if settings.is_sqlite:
        return create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},
            echo=settings.debug,
        )

    mssql_engine = create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,  # Verify connections before using
        echo=settings.debug,  # Log SQL in debug mode
    )
    event.listen(mssql_engine, "connect", set_sql_server_options)
    return mssql_engine


def set_sql_server_options(dbapi_connection, connection_record):
    """
    Set connection-level options for SQL Server.

    This runs once when a new connection is created.
    """
    cursor = dbapi_connection.cursor()

    # Set date format for consistency
    cursor.execute("SET DATEFORMAT ymd")

    cursor.close()


# Get settings
settings = get_settings()

engine = build_engine(settings)


# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # Prevent lazy-load issues after commit
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session.

    Usage in route handlers:

        @router.get("/leave")
        def list_requests(db: Session = Depends(get_db)):
            ...

    The session is rolled back if the handler raised before committing,
    and always closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI requests.

    Usage in scripts and CLI commands:

        with get_db_context() as db:
            types = db.query(LeaveType).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Initialize the database schema.

    WARNING: This is for development/testing only.
    In production, use Alembic migrations.
    """
    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    """
    Drop all tables.

    WARNING: Destroys all data. Only for development/testing.
    """
    Base.metadata.drop_all(bind=engine)


def check_connection() -> bool:
    """
    Test the database connection.

    Returns True if connection succeeds, raises exception otherwise.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True
