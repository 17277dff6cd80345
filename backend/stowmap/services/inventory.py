import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Type

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, VIEW_ROLE, require_min_role
from ..db import tx, utcnow
from ..errors import InventoryConflict, ValidationError
from ..models import Inventory, Part, Transaction, TransactionAction
from .access import get_compartment, get_part

logger = logging.getLogger(__name__)


@dataclass
class StockChange:
    inventory_id: int
    transaction_id: int
    old_quantity: int
    new_quantity: int


@dataclass
class StockMove:
    source_inventory_id: int
    dest_inventory_id: int
    transaction_id: int
    source_quantity: int
    dest_quantity: int


# Guards shared by every destructive layout path. They read live rows at the
# moment of the write since stock moves are not covered by the blueprint lock.

async def stock_by_compartment(db: AsyncSession, compartment_ids: Iterable[int]) -> dict[int, int]:
    ids = list(compartment_ids)
    if not ids:
        return {}
    res = await db.execute(
        select(Inventory.compartment_id, Inventory.quantity).where(
            Inventory.compartment_id.in_(ids), Inventory.quantity > 0
        )
    )
    totals: dict[int, int] = {}
    for compartment_id, quantity in res.all():
        totals[compartment_id] = totals.get(compartment_id, 0) + quantity
    return totals


async def stocked_compartment_ids(db: AsyncSession, compartment_ids: Iterable[int]) -> set[int]:
    return set(await stock_by_compartment(db, compartment_ids))


async def ensure_no_stock(
    db: AsyncSession,
    compartment_ids: Iterable[int],
    message: str,
    error: Type[InventoryConflict] = InventoryConflict,
) -> None:
    if await stocked_compartment_ids(db, compartment_ids):
        raise error(message)


async def purge_inventory(db: AsyncSession, compartment_ids: Iterable[int]) -> int:
    """Delete every inventory row of the given compartments; returns the units dropped."""
    ids = list(compartment_ids)
    if not ids:
        return 0
    totals = await stock_by_compartment(db, ids)
    await db.execute(delete(Inventory).where(Inventory.compartment_id.in_(ids)))
    return sum(totals.values())


async def _writable_part(db: AsyncSession, caller: CallerContext, part_id: int) -> Part:
    part = await get_part(db, caller, part_id)
    if part.archived:
        raise ValidationError("Cannot modify inventory for archived part")
    return part


async def _row(db: AsyncSession, part_id: int, compartment_id: int) -> Optional[Inventory]:
    res = await db.execute(
        select(Inventory)
        .where(Inventory.part_id == part_id, Inventory.compartment_id == compartment_id)
        .with_for_update()
    )
    return res.scalar_one_or_none()


def _check_positive(quantity: int) -> None:
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")


def _record(
    db: AsyncSession,
    caller: CallerContext,
    action: TransactionAction,
    delta: int,
    part_id: int,
    source_id: Optional[int],
    dest_id: Optional[int],
    notes: Optional[str],
) -> Transaction:
    entry = Transaction(
        org_id=caller.org_id,
        action_type=action,
        quantity_delta=delta,
        source_compartment_id=source_id,
        dest_compartment_id=dest_id,
        part_id=part_id,
        user_id=caller.user_id,
        timestamp=utcnow(),
        notes=notes,
    )
    db.add(entry)
    return entry


async def _add_to(
    db: AsyncSession, caller: CallerContext, part_id: int, compartment_id: int, quantity: int
) -> tuple[Inventory, int]:
    row = await _row(db, part_id, compartment_id)
    now = utcnow()
    if row:
        old = row.quantity
        row.quantity = old + quantity
        row.updated_at = now
        return row, old
    row = Inventory(
        org_id=caller.org_id,
        part_id=part_id,
        compartment_id=compartment_id,
        quantity=quantity,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    return row, 0


async def check_in(
    db: AsyncSession,
    caller: CallerContext,
    part_id: int,
    compartment_id: int,
    quantity: int,
    notes: Optional[str] = None,
) -> StockChange:
    require_min_role(caller, EDIT_ROLE)
    _check_positive(quantity)
    async with tx(db):
        await _writable_part(db, caller, part_id)
        await get_compartment(db, caller, compartment_id)
        row, old = await _add_to(db, caller, part_id, compartment_id, quantity)
        entry = _record(db, caller, TransactionAction.add, quantity, part_id, None, compartment_id, notes)
        await db.flush()
        result = StockChange(row.id, entry.id, old, row.quantity)
    logger.info("check-in", extra={"part_id": part_id, "compartment_id": compartment_id, "quantity": quantity})
    return result


async def check_out(
    db: AsyncSession,
    caller: CallerContext,
    part_id: int,
    compartment_id: int,
    quantity: int,
    notes: Optional[str] = None,
) -> StockChange:
    require_min_role(caller, EDIT_ROLE)
    _check_positive(quantity)
    async with tx(db):
        await _writable_part(db, caller, part_id)
        await get_compartment(db, caller, compartment_id)
        row = await _row(db, part_id, compartment_id)
        available = row.quantity if row else 0
        if row is None or available < quantity:
            raise ValidationError(f"Insufficient inventory. Available: {available}")
        row.quantity = available - quantity
        row.updated_at = utcnow()
        entry = _record(db, caller, TransactionAction.remove, -quantity, part_id, compartment_id, None, notes)
        await db.flush()
        result = StockChange(row.id, entry.id, available, row.quantity)
    logger.info("check-out", extra={"part_id": part_id, "compartment_id": compartment_id, "quantity": quantity})
    return result


async def move(
    db: AsyncSession,
    caller: CallerContext,
    part_id: int,
    source_compartment_id: int,
    dest_compartment_id: int,
    quantity: int,
    notes: Optional[str] = None,
) -> StockMove:
    require_min_role(caller, EDIT_ROLE)
    _check_positive(quantity)
    if source_compartment_id == dest_compartment_id:
        raise ValidationError("Source and destination compartments must be different")
    async with tx(db):
        await _writable_part(db, caller, part_id)
        await get_compartment(db, caller, source_compartment_id)
        await get_compartment(db, caller, dest_compartment_id)
        source = await _row(db, part_id, source_compartment_id)
        available = source.quantity if source else 0
        if source is None or available < quantity:
            raise ValidationError(f"Insufficient inventory in source. Available: {available}")
        source.quantity = available - quantity
        source.updated_at = utcnow()
        dest, _ = await _add_to(db, caller, part_id, dest_compartment_id, quantity)
        entry = _record(
            db, caller, TransactionAction.move, quantity, part_id, source_compartment_id, dest_compartment_id, notes
        )
        await db.flush()
        result = StockMove(source.id, dest.id, entry.id, source.quantity, dest.quantity)
    logger.info(
        "move",
        extra={
            "part_id": part_id,
            "source_compartment_id": source_compartment_id,
            "dest_compartment_id": dest_compartment_id,
            "quantity": quantity,
        },
    )
    return result


async def adjust(
    db: AsyncSession,
    caller: CallerContext,
    part_id: int,
    compartment_id: int,
    quantity: int,
    notes: Optional[str] = None,
) -> StockChange:
    """Set the exact on-hand quantity, recording the difference."""
    require_min_role(caller, EDIT_ROLE)
    if quantity < 0:
        raise ValidationError("Quantity cannot be negative")
    async with tx(db):
        await _writable_part(db, caller, part_id)
        await get_compartment(db, caller, compartment_id)
        row = await _row(db, part_id, compartment_id)
        now = utcnow()
        if row:
            old = row.quantity
            row.quantity = quantity
            row.updated_at = now
        else:
            old = 0
            row = Inventory(
                org_id=caller.org_id,
                part_id=part_id,
                compartment_id=compartment_id,
                quantity=quantity,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
        entry = _record(
            db,
            caller,
            TransactionAction.adjust,
            quantity - old,
            part_id,
            None,
            compartment_id,
            notes or f"Manual adjustment from {old} to {quantity}",
        )
        await db.flush()
        result = StockChange(row.id, entry.id, old, quantity)
    logger.info("adjust", extra={"part_id": part_id, "compartment_id": compartment_id, "quantity": quantity})
    return result


async def list_inventory(
    db: AsyncSession,
    caller: CallerContext,
    compartment_id: Optional[int] = None,
    part_id: Optional[int] = None,
) -> list[Inventory]:
    require_min_role(caller, VIEW_ROLE)
    stmt = select(Inventory).where(Inventory.org_id == caller.org_id)
    if compartment_id is not None:
        stmt = stmt.where(Inventory.compartment_id == compartment_id)
    if part_id is not None:
        stmt = stmt.where(Inventory.part_id == part_id)
    res = await db.execute(stmt.order_by(Inventory.compartment_id, Inventory.part_id))
    return list(res.scalars().all())


async def list_transactions(
    db: AsyncSession,
    caller: CallerContext,
    part_id: Optional[int] = None,
    compartment_id: Optional[int] = None,
    action_type: Optional[TransactionAction] = None,
    limit: int = 100,
) -> list[Transaction]:
    require_min_role(caller, VIEW_ROLE)
    stmt = select(Transaction).where(Transaction.org_id == caller.org_id)
    if part_id is not None:
        stmt = stmt.where(Transaction.part_id == part_id)
    if compartment_id is not None:
        stmt = stmt.where(
            or_(
                Transaction.source_compartment_id == compartment_id,
                Transaction.dest_compartment_id == compartment_id,
            )
        )
    if action_type is not None:
        stmt = stmt.where(Transaction.action_type == action_type)
    res = await db.execute(stmt.order_by(Transaction.timestamp.desc(), Transaction.id.desc()).limit(limit))
    return list(res.scalars().all())
