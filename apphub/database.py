from typing import Optional, Tuple
import logging
from urllib.parse import urlparse, urlunparse, parse_qs

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from apphub.settings import settings

logger = logging.getLogger(__name__)

# Drivers create_async_engine can run; schemes naming any other driver are rejected.
ASYNC_DRIVERS = ("aiosqlite", "asyncpg")


def normalize_db_url(raw_url: str) -> Tuple[str, dict]:
    """Normalize a raw DATABASE_URL for the async drivers and extract connect_args."""
    _parsed = urlparse(raw_url)
    _scheme = _parsed.scheme

    if _scheme in ("sqlite", "sqlite+pysqlite"):
        # urlunparse would drop the empty authority of sqlite:///path
        return "sqlite+aiosqlite" + raw_url[len(_scheme):], {}
    if _scheme not in ("postgres", "postgresql") and _scheme.partition("+")[2] not in ASYNC_DRIVERS:
        raise ValueError(
            f"Unsupported database URL scheme '{_scheme}'; use sqlite, postgresql "
            f"or one of the async drivers {sorted(ASYNC_DRIVERS)}"
        )
    if _scheme.startswith("sqlite"):
        return raw_url, {}

    _query = parse_qs(_parsed.query or "")
    _use_ssl = False
    if "sslmode" in _query:
        sslmode_val = _query.get("sslmode", [""])[0].lower()
        # treat any non-disable value as requiring SSL
        if sslmode_val and sslmode_val != "disable":
            _use_ssl = True

    if _scheme in ("postgres", "postgresql"):
        _scheme = "postgresql+asyncpg"

    clean_url = urlunparse(_parsed._replace(scheme=_scheme, query=""))
    connect_args = {"ssl": "require"} if _use_ssl else {}
    return clean_url, connect_args


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the async engine for the package store.

    The caller owns the returned engine (and must dispose it); nothing here
    is kept in module state, so tests can run any number of engines side by side.
    """
    database_url = database_url or settings.database_url
    if not database_url:
        raise ValueError("DATABASE_URL is required to initialize the database engine")

    clean_url, connect_args = normalize_db_url(database_url)
    is_sqlite = clean_url.startswith("sqlite")

    engine_kwargs = {"echo": False, "future": True}
    if not is_sqlite:
        # Pool tuning only applies to server databases; SQLite picks its own pool class.
        engine_kwargs.update(
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
        )
    if connect_args:
        engine_kwargs["connect_args"] = connect_args

    engine = create_async_engine(clean_url, **engine_kwargs)

    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    logger.info(f"Database engine initialized with driver {getattr(engine.dialect, 'driver', None)}")
    return engine


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
