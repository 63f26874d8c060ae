# freshmarket/database.py
import logging
import time

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from freshmarket.config import settings

logger = logging.getLogger(__name__)


def normalize_url(url: str) -> str:
    # Hosted Postgres hands out postgres://, SQLAlchemy needs postgresql://
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def make_engine(url: str):
    url = normalize_url(url)
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory SQLite must share one connection or every session sees an empty DB
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def wait_for_db(bind=None, retries: int = None, backoff: float = None) -> None:
    """Ping the database, retrying with exponential backoff.

    Raises the last OperationalError once all attempts are used up.
    """
    bind = bind or engine
    retries = retries if retries is not None else settings.DB_CONNECT_RETRIES
    backoff = backoff if backoff is not None else settings.DB_CONNECT_BACKOFF_SECONDS

    for attempt in range(1, retries + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            return
        except OperationalError as e:
            if attempt == retries:
                logger.error("Database unreachable after %s attempts: %s", attempt, e)
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning("Database not ready (attempt %s/%s), retrying in %.1fs", attempt, retries, delay)
            time.sleep(delay)


def init_db(bind=None):
    # Models must be imported so their tables are registered on Base.metadata
    import freshmarket.models  # noqa: F401

    bind = bind or engine
    wait_for_db(bind)
    Base.metadata.create_all(bind=bind)


def close_db(bind=None):
    (bind or engine).dispose()
