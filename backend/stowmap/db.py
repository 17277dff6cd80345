import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from .config import get_settings
from .errors import StorageError


logger = logging.getLogger(__name__)

settings = get_settings()


def async_database_url(url: str) -> str:
    """Rewrite plain postgres URLs to the asyncpg driver."""
    if url.startswith("postgres://"):
        url = "postgresql+asyncpg://" + url[len("postgres://") :]
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _create_engine():
    try:
        return create_async_engine(async_database_url(settings.database_url), echo=False, future=True)
    except ModuleNotFoundError as e:
        if "asyncpg" in str(e):
            # Fallback for environments without asyncpg (e.g., local tests)
            fallback_url = "sqlite+aiosqlite:///:memory:"
            logger.warning("asyncpg not installed, falling back to %s", fallback_url)
            return create_async_engine(fallback_url, echo=False, future=True)
        raise

engine = _create_engine()
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # Columns are naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def tx(db: AsyncSession, retryable: bool = False):
    """
    Run one engine mutation as a single store transaction.

    Tolerates autobegin: if a transaction is already open (a SELECT ran
    first) the work is committed or rolled back manually. Driver-level
    failures surface as StorageError so callers see a stable error code.
    """
    try:
        if not db.in_transaction():
            async with db.begin():
                yield
        else:
            try:
                yield
                await db.commit()
            except Exception:
                await db.rollback()
                raise
    except DBAPIError as exc:
        logger.error("store operation failed: %s", exc.__class__.__name__)
        raise StorageError("Storage operation failed", retryable=retryable) from exc
