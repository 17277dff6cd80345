from fastapi import APIRouter, Depends
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from ..config import get_settings
from ..deps import get_db
from ..errors import StorageError
from ..services.storage import LocalBlobStore, get_blob_store

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "env": settings.app_env,
        "lock_expiration_seconds": settings.lock_expiration_seconds,
        "max_revisions": settings.max_revisions,
    }


@router.get("/ready")
async def ready(db: AsyncSession = Depends(get_db), store: LocalBlobStore = Depends(get_blob_store)):
    try:
        await db.execute(text("SELECT 1"))
    except DBAPIError as exc:
        raise StorageError("Database not ready", retryable=True) from exc
    return {"status": "ok", "blob_dir_present": store.root.is_dir()}
