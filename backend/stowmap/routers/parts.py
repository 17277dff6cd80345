from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, EDIT_ROLE, VIEW_ROLE
from ..deps import get_db, require_role
from ..schemas import PartBase, PartCreate
from ..services import parts as part_service

router = APIRouter()


@router.get("", response_model=list[PartBase])
async def list_parts(
    q: str | None = Query(None),
    include_archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await part_service.list_parts(db, caller, q, include_archived)


@router.post("", response_model=PartBase, status_code=201)
async def create_part(
    payload: PartCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await part_service.create_part(db, caller, **payload.model_dump())


@router.post("/{part_id}/archive", response_model=PartBase)
async def archive_part(
    part_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await part_service.set_archived(db, caller, part_id, True)


@router.post("/{part_id}/unarchive", response_model=PartBase)
async def unarchive_part(
    part_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await part_service.set_archived(db, caller, part_id, False)
