from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from ..caller import CallerContext, EDIT_ROLE, VIEW_ROLE
from ..deps import get_db, require_role
from ..models import TransactionAction
from ..schemas import InventoryBase, MoveRequest, StockChangeOut, StockMoveOut, StockRequest, TransactionBase
from ..services import inventory as inventory_service


router = APIRouter()


@router.get("", response_model=list[InventoryBase])
async def list_inventory(
    compartment_id: int | None = Query(None),
    part_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await inventory_service.list_inventory(db, caller, compartment_id, part_id)


@router.post("/check-in", response_model=StockChangeOut)
async def check_in(
    payload: StockRequest,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await inventory_service.check_in(
        db, caller, payload.part_id, payload.compartment_id, payload.quantity, payload.notes
    )


@router.post("/check-out", response_model=StockChangeOut)
async def check_out(
    payload: StockRequest,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await inventory_service.check_out(
        db, caller, payload.part_id, payload.compartment_id, payload.quantity, payload.notes
    )


@router.post("/move", response_model=StockMoveOut)
async def move(
    payload: MoveRequest,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await inventory_service.move(
        db,
        caller,
        payload.part_id,
        payload.source_compartment_id,
        payload.dest_compartment_id,
        payload.quantity,
        payload.notes,
    )


@router.post("/adjust", response_model=StockChangeOut)
async def adjust(
    payload: StockRequest,
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(EDIT_ROLE)),
):
    return await inventory_service.adjust(
        db, caller, payload.part_id, payload.compartment_id, payload.quantity, payload.notes
    )


@router.get("/transactions", response_model=list[TransactionBase])
async def list_transactions(
    part_id: int | None = Query(None),
    compartment_id: int | None = Query(None),
    action_type: TransactionAction | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    caller: CallerContext = Depends(require_role(VIEW_ROLE)),
):
    return await inventory_service.list_transactions(db, caller, part_id, compartment_id, action_type, limit)
