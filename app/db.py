"""Audio Transcriber - Database engine and session management.

SQLAlchemy sync engine/session factory for SQLite.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker

from app.models import Base


def get_database_url(db_path: str | Path) -> str:
    """Get SQLite database URL.

    Args:
        db_path: Path to the database file.

    Returns:
        SQLite connection URL string.
    """
    return f"sqlite:///{db_path}"


def create_db_engine(db_path: str | Path, echo: bool = False) -> Engine:
    """Create SQLAlchemy engine.

    Args:
        db_path: Path to the database file.
        echo: If True, log all SQL statements.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = get_database_url(db_path)
    return create_engine(
        url,
        echo=echo,
        # API threads and huey workers each use their own session; the
        # connection is never shared by two sessions at once.
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the given engine.

    Args:
        engine: SQLAlchemy Engine instance.

    Returns:
        Configured sessionmaker.
    """
    # - autoflush=False: explicit flush control
    # - expire_on_commit=False: job objects stay readable after the
    #   session that saved them is closed
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(db_path: str | Path, echo: bool = False) -> tuple[Engine, sessionmaker]:
    """Initialize the database: create engine, session factory, and all tables.

    This is idempotent - safe to call multiple times.

    Args:
        db_path: Path to the database file. Parent directories are created.
        echo: If True, log all SQL statements.

    Returns:
        Tuple of (engine, SessionFactory).
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    engine = create_db_engine(db_path, echo=echo)
    SessionFactory = create_session_factory(engine)

    # Create all tables (idempotent via checkfirst=True default)
    Base.metadata.create_all(engine)

    return engine, SessionFactory
