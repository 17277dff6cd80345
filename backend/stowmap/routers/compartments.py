from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, EDIT_ROLE
from ..deps import get_db, require_role
from ..schemas import (
    CompartmentBase,
    CompartmentCreate,
    CompartmentUpdate,
    MergeRequest,
    RegridOut,
    ReorderRequest,
    SwapRequest,
    ZIndexUpdate,
)
from ..services import compartments as compartment_service
from ..services import reflow

router = APIRouter()


@router.post("", response_model=CompartmentBase, status_code=201)
async def create_compartment(
    payload: CompartmentCreate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await compartment_service.create_compartment(db, caller, **payload.model_dump())


@router.patch("/{compartment_id}", response_model=CompartmentBase)
async def update_compartment(
    compartment_id: int,
    payload: CompartmentUpdate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    changes = payload.model_dump(exclude_unset=True)
    return await compartment_service.update_compartment(db, caller, compartment_id, changes)


@router.delete("/{compartment_id}", response_model=RegridOut)
async def delete_compartment(
    compartment_id: int,
    force: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    regrid = await compartment_service.delete_compartment(db, caller, compartment_id, force=force)
    if regrid is None:
        return RegridOut()
    return RegridOut(rows=regrid[0], cols=regrid[1])


@router.put("/{compartment_id}/z-index", response_model=CompartmentBase)
async def reorder_compartment(
    compartment_id: int,
    payload: ZIndexUpdate,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await compartment_service.reorder_compartment(db, caller, compartment_id, payload.z_index)


@router.post("/reorder", response_model=list[CompartmentBase])
async def reorder_compartments(
    payload: ReorderRequest,
    drawer_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    order = [(item.id, item.z_index) for item in payload.items]
    return await compartment_service.reorder_compartments(db, caller, drawer_id, order)


@router.post("/swap", response_model=list[CompartmentBase])
async def swap_compartments(
    payload: SwapRequest,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    a, b = await reflow.swap_compartments(db, caller, payload.a_id, payload.b_id)
    return [a] if a is b else [a, b]


@router.post("/merge", response_model=CompartmentBase)
async def merge_compartments(
    payload: MergeRequest,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await reflow.merge_compartments(db, caller, payload.keep_id, payload.absorb_id)
