from typing import Optional
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, EDIT_ROLE, ELEVATED_ROLE, VIEW_ROLE
from ..deps import get_db, require_role
from ..schemas import (
    RestoreRequest,
    RestoreResultOut,
    RevisionBase,
    RevisionCountOut,
    RevisionCreate,
    RevisionCreated,
)
from ..services import revisions as revision_service

router = APIRouter()


@router.get("", response_model=list[RevisionBase])
async def list_revisions(
    blueprint_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await revision_service.list_revisions(db, caller, blueprint_id)


@router.post("", response_model=RevisionCreated, status_code=201)
async def create_revision(
    payload: RevisionCreate,
    blueprint_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await revision_service.create_revision(db, caller, blueprint_id, payload.state, payload.description)


@router.get("/latest", response_model=Optional[RevisionBase])
async def latest_revision(
    blueprint_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await revision_service.latest_revision(db, caller, blueprint_id)


@router.get("/count", response_model=RevisionCountOut)
async def revision_count(
    blueprint_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await revision_service.revision_count(db, caller, blueprint_id)


@router.delete("", status_code=200)
async def delete_all_revisions(
    blueprint_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(ELEVATED_ROLE)),
):
    removed = await revision_service.delete_all_revisions(db, caller, blueprint_id)
    return {"removed": removed}


@router.get("/{revision_id}", response_model=RevisionBase)
async def get_revision(
    revision_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await revision_service.get_revision(db, caller, revision_id)


@router.get("/{revision_id}/preview", response_model=RevisionBase)
async def preview_revision(
    revision_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await revision_service.preview_revision(db, caller, revision_id)


@router.post("/{revision_id}/restore", response_model=RestoreResultOut)
async def restore_revision(
    revision_id: int,
    payload: RestoreRequest | None = None,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    description = payload.description if payload else None
    return await revision_service.restore_revision(db, caller, revision_id, description)


@router.delete("/{revision_id}", status_code=204)
async def delete_revision(
    revision_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(ELEVATED_ROLE)),
):
    await revision_service.delete_revision(db, caller, revision_id)
    return Response(status_code=204)
