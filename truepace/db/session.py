from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager, suppress

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from truepace.coach.errors import PlanMutationError
from truepace.config.settings import settings

SessionScope = Callable[[], AbstractContextManager[Session]]


def _is_postgresql(url: str) -> bool:
    return "postgresql" in url.lower() or "postgres" in url.lower()


def _validate_postgresql_driver() -> None:
    """Validate PostgreSQL driver is installed when using PostgreSQL.

    Must actually import psycopg2 (not just find_spec) because SQLAlchemy
    will try to import it when creating the engine.
    """
    try:
        import psycopg2  # noqa: F401

        logger.info("PostgreSQL driver (psycopg2) is available")
    except ImportError as e:
        logger.error("PostgreSQL driver (psycopg2) is not installed. Install with: pip install 'truepace-engine[postgres]'")
        raise ImportError("PostgreSQL driver required. Install with: pip install psycopg2-binary") from e


def check_database_connection() -> None:
    """Test database connection on startup."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection test successful")
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        raise


# Lazy initialization to avoid import-time database connections
_engine = None
_SessionLocal = None


def _get_engine():
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"Initializing database engine: {settings.database_url}")

        connect_args: dict = {}
        if _is_postgresql(settings.database_url):
            _validate_postgresql_driver()
            connect_args = {
                "connect_timeout": 10,
                "application_name": "truepace-engine",
            }
        elif "sqlite" in settings.database_url.lower():
            logger.warning("Using SQLite database (local development only)")
            connect_args = {"check_same_thread": False}

        _engine = create_engine(
            settings.database_url,
            connect_args=connect_args,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        logger.info("Database engine initialized")
    return _engine


def get_engine():
    """Get or create the database engine (public API)."""
    return _get_engine()


def _get_session_local() -> sessionmaker[Session]:
    """Get or create the session factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=_get_engine())
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create all tables on the configured engine."""
    from truepace.db.models import Base

    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables verified")


def _handle_session_commit(session: Session) -> None:
    """Commit pending changes, skipping empty transactions."""
    with suppress(Exception):
        logger.debug(f"Before commit: dirty={len(session.dirty)}, new={len(session.new)}, deleted={len(session.deleted)}")
    session.commit()
    logger.debug("Database session committed successfully")


def make_session_scope(factory: Callable[[], Session]) -> SessionScope:
    """Build a commit-or-rollback context manager around a session factory.

    Everything written inside one ``with`` block is committed together when
    the block exits normally and rolled back when it raises. Domain errors
    are re-raised without being logged as database errors.
    """

    @contextmanager
    def scope() -> Generator[Session, None, None]:
        logger.debug("Creating new database session")
        session = factory()
        try:
            yield session
            _handle_session_commit(session)
        except PlanMutationError as e:
            logger.debug(f"Domain error in session, rolling back: {e.code}")
            session.rollback()
            raise
        except Exception as e:
            logger.error(
                f"Database session error, rolling back: {e}. Error type: {type(e).__name__}, session state: "
                f"dirty={len(session.dirty)}, new={len(session.new)}, deleted={len(session.deleted)}"
            )
            session.rollback()
            raise
        finally:
            session.close()
            logger.debug("Database session closed")

    return scope


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session context manager bound to the configured database."""
    with make_session_scope(_get_session_local())() as session:
        yield session


def get_db() -> Generator[Session, None, None]:
    """Get database session for FastAPI dependencies.

    Read-only routes use this; mutation batches go through get_session() so
    they commit as one transaction.
    """
    session = _get_session_local()()
    try:
        yield session
    finally:
        session.close()
