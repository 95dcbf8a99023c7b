"""Database configuration and session management.

The default store is SQLite, configured for a web application: WAL mode for
concurrent access and foreign key enforcement so item references held by
priorities and time blocks must point at real rows.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Allows concurrent readers while writing.
      Two browser tabs editing the same planner read while the other writes.

    - **Foreign Keys**: Disabled by default in SQLite. Enabling them turns a
      dangling ``item_id`` into an integrity error instead of silent drift.

    - **check_same_thread=False**: Required for FastAPI, whose dependency
      injection may hand a session to a different thread than created it.

Any other SQLAlchemy URL (e.g. PostgreSQL) is used as-is.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from timebox.core.config import settings

is_sqlite = settings.database_url.startswith("sqlite")

connect_args = {"check_same_thread": False} if is_sqlite else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
    pool_pre_ping=not is_sqlite,
)


def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if is_sqlite:
    sa_event.listen(engine, "connect", set_sqlite_pragma)


def create_db_and_tables():
    """Create all database tables."""
    # Import so every table is registered on the metadata
    import timebox.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
