from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, EDIT_ROLE
from ..deps import get_db, require_role
from ..schemas import (
    CompartmentBase,
    DrawerBase,
    DrawerCreate,
    DrawerUpdate,
    GridRequest,
    GridResultOut,
    ReorderRequest,
    SplitRequest,
    ZIndexUpdate,
)
from ..services import drawers as drawer_service
from ..services import reflow

router = APIRouter()


@router.post("", response_model=DrawerBase, status_code=201)
async def create_drawer(
    payload: DrawerCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await drawer_service.create_drawer(db, caller, **payload.model_dump())


@router.patch("/{drawer_id}", response_model=DrawerBase)
async def update_drawer(
    drawer_id: int,
    payload: DrawerUpdate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await drawer_service.update_drawer(db, caller, drawer_id, payload.model_dump(exclude_unset=True))


@router.delete("/{drawer_id}", status_code=204)
async def delete_drawer(
    drawer_id: int,
    force: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    await drawer_service.delete_drawer(db, caller, drawer_id, force=force)
    return Response(status_code=204)


@router.put("/{drawer_id}/z-index", response_model=DrawerBase)
async def reorder_drawer(
    drawer_id: int,
    payload: ZIndexUpdate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await drawer_service.reorder_drawer(db, caller, drawer_id, payload.z_index)


@router.post("/reorder", response_model=list[DrawerBase])
async def reorder_drawers(
    payload: ReorderRequest,
    blueprint_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    order = [(item.id, item.z_index) for item in payload.items]
    return await drawer_service.reorder_drawers(db, caller, blueprint_id, order)


@router.put("/{drawer_id}/grid", response_model=GridResultOut)
async def set_grid(
    drawer_id: int,
    payload: GridRequest,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    result = await reflow.set_grid(db, caller, drawer_id, payload.rows, payload.cols)
    return GridResultOut.model_validate(result)


@router.post("/{drawer_id}/split", response_model=list[CompartmentBase])
async def split_drawer(
    drawer_id: int,
    payload: SplitRequest,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    first, second = await reflow.split_drawer(
        db, caller, drawer_id, payload.orientation, payload.position, payload.compartment_id
    )
    return [first, second]
