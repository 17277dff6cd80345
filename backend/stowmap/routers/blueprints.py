from fastapi import APIRouter, Depends, File, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, EDIT_ROLE, ELEVATED_ROLE, VIEW_ROLE
from ..deps import get_db, require_role
from ..errors import NotFound
from ..schemas import (
    BlueprintBase,
    BlueprintCreate,
    BlueprintRename,
    BlueprintWithLock,
    LayoutOut,
    LockRelease,
    LockResultOut,
)
from ..services import blueprints as blueprint_service
from ..services import locks
from ..services.storage import LocalBlobStore, get_blob_store

router = APIRouter()


@router.get("", response_model=list[BlueprintWithLock])
async def list_blueprints(
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    views = await blueprint_service.list_blueprints(db, caller)
    return [BlueprintWithLock.model_validate(v) for v in views]


@router.post("", response_model=BlueprintBase, status_code=201)
async def create_blueprint(
    payload: BlueprintCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await blueprint_service.create_blueprint(db, caller, payload.name)


@router.get("/{blueprint_id}", response_model=BlueprintWithLock)
async def get_blueprint(
    blueprint_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    view = await blueprint_service.get_blueprint_view(db, caller, blueprint_id)
    return BlueprintWithLock.model_validate(view)


@router.patch("/{blueprint_id}", response_model=BlueprintBase)
async def rename_blueprint(
    blueprint_id: int,
    payload: BlueprintRename,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await blueprint_service.rename_blueprint(db, caller, blueprint_id, payload.name)


@router.delete("/{blueprint_id}", status_code=204)
async def delete_blueprint(
    blueprint_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
    store: LocalBlobStore = Depends(get_blob_store),
):
    await blueprint_service.delete_blueprint(db, caller, blueprint_id, store)
    return Response(status_code=204)


@router.get("/{blueprint_id}/layout", response_model=LayoutOut)
async def get_layout(
    blueprint_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    layout = await blueprint_service.get_layout(db, caller, blueprint_id)
    return LayoutOut.model_validate(layout)


@router.post("/{blueprint_id}/lock", response_model=LockResultOut)
async def acquire_lock(
    blueprint_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await locks.acquire_lock(db, caller, blueprint_id)


@router.post("/{blueprint_id}/unlock", response_model=LockResultOut)
async def release_lock(
    blueprint_id: int,
    payload: LockRelease | None = None,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    payload = payload or LockRelease()
    return await locks.release_lock(db, caller, blueprint_id, payload.has_changes, payload.description)


@router.post("/{blueprint_id}/force-unlock", response_model=LockResultOut)
async def force_release_lock(
    blueprint_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(ELEVATED_ROLE)),
):
    return await locks.force_release_lock(db, caller, blueprint_id)


@router.put("/{blueprint_id}/background", response_model=BlueprintBase)
async def upload_background(
    blueprint_id: int,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
    store: LocalBlobStore = Depends(get_blob_store),
):
    data = await file.read()
    return await blueprint_service.set_background_image(db, caller, blueprint_id, store, data)


@router.delete("/{blueprint_id}/background", response_model=BlueprintBase)
async def clear_background(
    blueprint_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
    store: LocalBlobStore = Depends(get_blob_store),
):
    return await blueprint_service.set_background_image(db, caller, blueprint_id, store, None)


@router.get("/{blueprint_id}/background")
async def get_background(
    blueprint_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
    store: LocalBlobStore = Depends(get_blob_store),
):
    view = await blueprint_service.get_blueprint_view(db, caller, blueprint_id)
    if not view.blueprint.background_image_id:
        raise NotFound("Blueprint has no background image")
    return Response(content=store.get(view.blueprint.background_image_id), media_type="application/octet-stream")
