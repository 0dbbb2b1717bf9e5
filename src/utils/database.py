"""Database engine and session management."""
import logging
import os
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session
from config.settings import settings

logger = logging.getLogger(__name__)

# Connection pool for server databases. Evidence queries hold one connection
# each, so the evidence query thread pool is sized to match.
POOL_SIZE = 5
MAX_OVERFLOW = 10

_engine = None
_session_factory = None


def engine_options(db_url):
    """Keyword arguments for ``create_engine`` for the given URL."""
    if 'sqlite' in db_url:
        # No pool sizing on SQLite; sessions are used from executor threads
        return {"echo": False, "connect_args": {"check_same_thread": False}}

    options = {
        "echo": False,
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }
    if os.getenv('FLASK_ENV') == 'production' and 'postgresql' in db_url:
        options.update({
            "pool_recycle": 300,
            "pool_timeout": 10,
            "connect_args": {
                "connect_timeout": 10,
                "options": "-c statement_timeout=30000"
            },
        })
    return options


def get_engine():
    """Get or create the process-wide database engine."""
    global _engine
    if _engine is None:
        db_url = settings.agent.database_url
        _engine = create_engine(db_url, **engine_options(db_url))
        logger.info(f"Database engine initialized ({_engine.dialect.name})")
    return _engine


def get_session_factory():
    """Get or create the scoped session factory (one session per thread)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = scoped_session(sessionmaker(bind=get_engine()))
    return _session_factory


def get_session():
    """Get the current thread's database session."""
    return get_session_factory()()


def close_session(session):
    """Close a database session, logging rather than raising on failure."""
    try:
        session.close()
    except Exception as e:
        logger.warning(f"Error closing session: {e}")


@contextmanager
def session_scope(factory=None):
    """Provide a transactional scope around a series of operations.

    Commits on success, rolls back on error and always closes the session.

    Args:
        factory: Zero-argument callable returning a Session (defaults to
            ``get_session``)
    """
    session = (factory or get_session)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        close_session(session)


def init_database():
    """Create any missing tables."""
    try:
        from src.models import Base

        Base.metadata.create_all(get_engine())
        logger.info("Database tables created/verified")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return False


def cleanup_connections():
    """Drop thread sessions and dispose of the engine (worker shutdown)."""
    global _engine, _session_factory

    if _session_factory is not None:
        try:
            _session_factory.remove()
        except Exception as e:
            logger.warning(f"Error removing scoped sessions: {e}")
        finally:
            _session_factory = None

    if _engine is not None:
        try:
            _engine.dispose()
            logger.info("Database engine disposed")
        except Exception as e:
            logger.warning(f"Error disposing database engine: {e}")
        finally:
            _engine = None
