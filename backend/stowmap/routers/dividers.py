from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, EDIT_ROLE, VIEW_ROLE
from ..deps import get_db, require_role
from ..schemas import DividerBase, DividerCreate, DividerUpdate
from ..services import dividers as divider_service

router = APIRouter()


@router.get("", response_model=list[DividerBase])
async def list_dividers(
    blueprint_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await divider_service.list_dividers(db, caller, blueprint_id)


@router.post("", response_model=DividerBase, status_code=201)
async def create_divider(
    payload: DividerCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await divider_service.create_divider(db, caller, **payload.model_dump())


@router.patch("/{divider_id}", response_model=DividerBase)
async def update_divider(
    divider_id: int,
    payload: DividerUpdate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await divider_service.update_divider(db, caller, divider_id, payload.model_dump(exclude_unset=True, exclude_none=True))


@router.delete("/{divider_id}", status_code=204)
async def delete_divider(
    divider_id: int,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    await divider_service.delete_divider(db, caller, divider_id)
    return Response(status_code=204)
