from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from farmlink.config import settings


def _is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def _engine_options(url: str) -> dict:
    """Keyword arguments for ``create_async_engine`` given a database URL."""
    options: dict = {"echo": settings.database_echo}
    if _is_sqlite_url(url):
        return options
    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
    )
    return options


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite URL."""
    if ":memory:" in url or ":///" not in url:
        return
    path = Path(url.split(":///", 1)[1])
    path.parent.mkdir(parents=True, exist_ok=True)


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


if _is_sqlite_url(settings.database_url):
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_on_connect(dbapi_conn, connection_record):
        # Checkpoint writes queue behind each other instead of raising "database is locked"
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Request-scoped session for route dependencies."""
    async with async_session() as session:
        yield session


async def init_db():
    """Create the schema on startup."""
    if _is_sqlite_url(settings.database_url):
        _ensure_sqlite_dir(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    await engine.dispose()
