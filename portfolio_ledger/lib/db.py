"""
Database connection and initialization module.

Manages SQLite database creation, the session factory, and the transactional
scope used for every atomic multi-record commit.
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

# Base class for all models
Base = declarative_base()

# Default database path (can be overridden by environment variable)
DEFAULT_DB_PATH = Path.home() / ".portfolio-ledger" / "data.db"

SessionFactory = Callable[[], Session]

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker[Session]] = None


def _enable_foreign_keys(dbapi_conn: Any, connection_record: Any) -> None:
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def resolve_db_path(db_path: Optional[Path] = None) -> Path:
    """Return the explicit path, the PORTFOLIO_LEDGER_DB_PATH override, or the default."""
    if db_path is not None:
        return db_path
    env_db_path = os.environ.get("PORTFOLIO_LEDGER_DB_PATH")
    if env_db_path:
        return Path(env_db_path)
    return DEFAULT_DB_PATH


def get_engine(db_path: Optional[Path] = None) -> Engine:
    """
    Get or create the SQLAlchemy engine.

    Args:
        db_path: Optional custom database path. Defaults to ~/.portfolio-ledger/data.db
                 Can also be set via PORTFOLIO_LEDGER_DB_PATH environment variable.

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine

    if _engine is None:
        db_path = resolve_db_path(db_path)

        # Ensure directory exists
        db_path.parent.mkdir(parents=True, exist_ok=True)

        _engine = create_engine(
            f"sqlite:///{db_path}",
            echo=False,  # Set to True for SQL debugging
            connect_args={"check_same_thread": False},
        )

        # Enable foreign keys for all connections
        event.listen(_engine, "connect", _enable_foreign_keys)

    return _engine


def reset_engine() -> None:
    """Reset the global engine and session factory.

    Called on user switch and between tests to get a fresh connection.
    """
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionLocal = None


def get_session() -> Session:
    """
    Get a new database session.

    Returns:
        SQLAlchemy Session instance
    """
    global _SessionLocal

    if _SessionLocal is None:
        engine = get_engine()
        _SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )

    return _SessionLocal()


@contextmanager
def db_session(factory: Optional[SessionFactory] = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions with automatic commit/rollback.

    Everything staged inside the block is one atomic batch:
    - Committed on successful completion
    - Rolled back on any exception (nothing becomes visible)
    - The session is closed in all cases

    Args:
        factory: Session factory to use. Defaults to the process-wide one.

    Yields:
        SQLAlchemy Session instance

    Example:
        with db_session() as session:
            session.add(holding)
            session.add(transaction)
            # Both rows commit together when the block exits
    """
    session = (factory or get_session)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(db_path: Optional[Path] = None) -> None:
    """
    Initialize the database by creating all tables.

    Args:
        db_path: Optional custom database path. Defaults to ~/.portfolio-ledger/data.db
    """
    engine = get_engine(db_path)

    # Import all models to ensure they're registered with Base
    from portfolio_ledger.models import Holding, PortfolioAggregate, Transaction  # noqa: F401

    Base.metadata.create_all(bind=engine)


def reset_db(db_path: Optional[Path] = None) -> None:
    """
    Drop all tables and recreate them. **WARNING: This deletes all data!**

    Args:
        db_path: Optional custom database path
    """
    from portfolio_ledger.models import Holding, PortfolioAggregate, Transaction  # noqa: F401

    engine = get_engine(db_path)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def db_exists(db_path: Optional[Path] = None) -> bool:
    """
    Check if the database file exists.

    Args:
        db_path: Optional custom database path

    Returns:
        True if database file exists
    """
    return resolve_db_path(db_path).exists()
