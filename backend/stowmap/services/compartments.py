import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, require_min_role
from ..db import tx, utcnow
from ..errors import CrossBlueprintNotAllowed, InventoryConflict, ValidationError
from ..models import Compartment
from .access import get_compartment, get_drawer, touch
from .audit import log_action
from .inventory import stock_by_compartment
from .locks import verify_lock
from .reflow import auto_regrid_on_delete, remove_compartments

logger = logging.getLogger(__name__)

COMPARTMENT_EDITABLE = ("x", "y", "width", "height", "rotation", "label", "drawer_id")


async def _next_z(db: AsyncSession, drawer_id: int) -> int:
    res = await db.execute(select(func.max(Compartment.z_index)).where(Compartment.drawer_id == drawer_id))
    top = res.scalar_one_or_none()
    return 0 if top is None else top + 1


async def create_compartment(
    db: AsyncSession,
    caller: CallerContext,
    drawer_id: int,
    x: float,
    y: float,
    width: float,
    height: float,
    rotation: float = 0,
    z_index: Optional[int] = None,
    label: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Compartment:
    require_min_role(caller, EDIT_ROLE)
    if width <= 0 or height <= 0:
        raise ValidationError("Width and height must be positive")
    now = now or utcnow()
    async with tx(db):
        drawer, blueprint = await get_drawer(db, caller, drawer_id)
        await verify_lock(db, caller, blueprint.id, now)
        if z_index is None:
            z_index = await _next_z(db, drawer.id)
        compartment = Compartment(
            drawer_id=drawer.id,
            x=x,
            y=y,
            width=width,
            height=height,
            rotation=rotation,
            z_index=z_index,
            label=label,
            created_at=now,
            updated_at=now,
        )
        db.add(compartment)
        drawer.updated_at = now
        blueprint.updated_at = now
        await db.flush()
    logger.info("compartment created", extra={"drawer_id": drawer_id, "compartment_id": compartment.id})
    return compartment


async def update_compartment(
    db: AsyncSession,
    caller: CallerContext,
    compartment_id: int,
    changes: dict,
    now: Optional[datetime] = None,
) -> Compartment:
    """Patch geometry/label, or move the compartment to another drawer of the same blueprint.

    A compartment holding stock may only change drawers together with an
    explicit new ``x`` and ``y`` in the destination.
    """
    require_min_role(caller, EDIT_ROLE)
    unknown = set(changes) - set(COMPARTMENT_EDITABLE)
    if unknown:
        raise ValidationError(f"Unsupported compartment fields: {', '.join(sorted(unknown))}")
    now = now or utcnow()
    async with tx(db):
        compartment, drawer, blueprint = await get_compartment(db, caller, compartment_id)
        await verify_lock(db, caller, blueprint.id, now)
        if changes.get("width", compartment.width) <= 0 or changes.get("height", compartment.height) <= 0:
            raise ValidationError("Width and height must be positive")

        source_drawer_id = compartment.drawer_id
        target_drawer_id = changes.get("drawer_id", source_drawer_id)
        if target_drawer_id != source_drawer_id:
            _, target_blueprint = await get_drawer(db, caller, target_drawer_id)
            if target_blueprint.id != blueprint.id:
                raise CrossBlueprintNotAllowed("Cannot move compartment to a drawer in another blueprint")
            stock = await stock_by_compartment(db, [compartment.id])
            if stock and ("x" not in changes or "y" not in changes):
                raise InventoryConflict("Moving a compartment that holds inventory requires its new position")

        for key, value in changes.items():
            setattr(compartment, key, value)
        compartment.updated_at = now
        await db.flush()
        await touch(db, now, blueprint.id, (source_drawer_id, target_drawer_id))
    if target_drawer_id != source_drawer_id:
        logger.info(
            "compartment reassigned",
            extra={"compartment_id": compartment_id, "from_drawer": source_drawer_id, "to_drawer": target_drawer_id},
        )
    return compartment


async def delete_compartment(
    db: AsyncSession,
    caller: CallerContext,
    compartment_id: int,
    force: bool = False,
    now: Optional[datetime] = None,
) -> Optional[tuple[int, int]]:
    """Delete one compartment and regrid what is left of a grid-managed drawer.

    Returns the new ``(rows, cols)`` when a regrid happened.
    """
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        compartment, drawer, blueprint = await get_compartment(db, caller, compartment_id)
        await verify_lock(db, caller, blueprint.id, now)
        stock = await stock_by_compartment(db, [compartment.id])
        if stock and not force:
            raise InventoryConflict("Cannot delete compartment containing inventory. Remove inventory first.")
        await remove_compartments(db, [compartment.id])
        if stock:
            await log_action(
                db,
                caller.org_id,
                caller.user_id,
                "compartment_force_delete",
                "compartment",
                compartment_id,
                {"units_dropped": sum(stock.values())},
            )
        regrid = await auto_regrid_on_delete(db, drawer, now)
        drawer.updated_at = now
        blueprint.updated_at = now
    logger.info("compartment deleted", extra={"compartment_id": compartment_id, "forced": bool(stock)})
    return regrid


async def reorder_compartment(
    db: AsyncSession, caller: CallerContext, compartment_id: int, z_index: int, now: Optional[datetime] = None
) -> Compartment:
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        compartment, drawer, blueprint = await get_compartment(db, caller, compartment_id)
        await verify_lock(db, caller, blueprint.id, now)
        compartment.z_index = z_index
        compartment.updated_at = now
        drawer.updated_at = now
        blueprint.updated_at = now
    return compartment


async def reorder_compartments(
    db: AsyncSession,
    caller: CallerContext,
    drawer_id: int,
    order: Sequence[tuple[int, int]],
    now: Optional[datetime] = None,
) -> list[Compartment]:
    """Apply several ``(compartment_id, z_index)`` pairs within one drawer."""
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        drawer, blueprint = await get_drawer(db, caller, drawer_id)
        await verify_lock(db, caller, blueprint.id, now)
        compartments = []
        for compartment_id, z_index in order:
            compartment, owner, _ = await get_compartment(db, caller, compartment_id)
            if owner.id != drawer.id:
                raise ValidationError("All compartments must belong to the same drawer")
            compartment.z_index = z_index
            compartment.updated_at = now
            compartments.append(compartment)
        drawer.updated_at = now
        blueprint.updated_at = now
    return compartments
