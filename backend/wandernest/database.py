from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from wandernest.core.config import settings
import os
import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)

if os.getenv("PYTEST_RUN") == "1":
    SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
else:
    SQLALCHEMY_DATABASE_URL = settings.SQLALCHEMY_DATABASE_URL

is_sqlite = SQLALCHEMY_DATABASE_URL.startswith("sqlite")

# Avoid stale idle connections causing first-hit failures after inactivity
pool_kwargs = {
    "pool_pre_ping": True,
}
if is_sqlite:
    # SQLite uses a per-process connection; pass connect_args and avoid pool sizing
    connect_args = {"check_same_thread": False, "timeout": 15}
else:
    connect_args = {}
    try:
        pool_kwargs.update({
            "pool_size": int(os.getenv("DB_POOL_SIZE") or 6),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW") or 6),
            "pool_recycle": int(os.getenv("DB_POOL_RECYCLE") or 300),
            "pool_timeout": float(os.getenv("DB_POOL_TIMEOUT") or 5.0),
        })
    except ValueError:
        logger.warning("Invalid DB pool env settings; using defaults")
        pool_kwargs.update({"pool_recycle": 300})

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args=connect_args,
    **pool_kwargs,
)

if is_sqlite:

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ANN001
        cursor = dbapi_connection.cursor()
        try:
            # WAL improves read concurrency; NORMAL reduces fsync pressure.
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            # Back off rather than instantly failing on transient locks (ms)
            cursor.execute("PRAGMA busy_timeout=60000;")
        finally:
            cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


# Dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session():
    """Provide a short‑lived SessionLocal with guaranteed close.

    Use in places where FastAPI Depends is unavailable (background tasks,
    scripts) so connections are promptly returned to the pool.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
