import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .utils import is_sqlite_memory, resolve_sqlite_url

load_dotenv()

ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./jackpot.db"), ROOT_DIR
)
# Seconds a SQLite writer waits for a competing writer before failing.
SQLITE_BUSY_TIMEOUT = float(os.getenv("DB_BUSY_TIMEOUT", "30"))


def make_engine(
    database_url: Optional[str] = None, echo: bool = False, **engine_kwargs: Any
) -> Engine:
    """Create the SQLAlchemy engine used by the jackpot services.

    For file-backed SQLite the connection may be shared across worker
    threads (purchases and the draw run on request threads) and writers
    wait up to ``SQLITE_BUSY_TIMEOUT`` seconds for the database lock.
    Foreign keys are enforced on every SQLite connection.
    """
    url = database_url or DEFAULT_SQLITE_URL
    if url.startswith("sqlite") and not is_sqlite_memory(url):
        connect_args = engine_kwargs.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", SQLITE_BUSY_TIMEOUT)

    engine = create_engine(url, echo=echo, future=True, **engine_kwargs)

    if url.startswith("sqlite"):

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker:
    # Rounds handed out by JackpotEngine are read after their session closed.
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)
