import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, require_min_role
from ..db import tx, utcnow
from ..errors import CrossBlueprintNotAllowed, InventoryConflict, ValidationError
from ..models import Compartment, Drawer
from .access import get_blueprint, get_drawer, list_compartments
from .audit import log_action
from .inventory import purge_inventory, stock_by_compartment
from .layout import grid_cells, validate_grid_dims
from .locks import verify_lock
from .reflow import relayout_grid

logger = logging.getLogger(__name__)

DRAWER_EDITABLE = ("x", "y", "width", "height", "rotation", "label")


def _check_size(width: float, height: float) -> None:
    if width <= 0 or height <= 0:
        raise ValidationError("Width and height must be positive")


async def _next_z(db: AsyncSession, blueprint_id: int) -> int:
    res = await db.execute(select(func.max(Drawer.z_index)).where(Drawer.blueprint_id == blueprint_id))
    top = res.scalar_one_or_none()
    return 0 if top is None else top + 1


async def create_drawer(
    db: AsyncSession,
    caller: CallerContext,
    blueprint_id: int,
    x: float,
    y: float,
    width: float,
    height: float,
    rotation: float = 0,
    z_index: Optional[int] = None,
    label: Optional[str] = None,
    grid_rows: Optional[int] = None,
    grid_cols: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Drawer:
    """Create a drawer; with ``grid_rows``/``grid_cols`` it starts filled with empty cells."""
    require_min_role(caller, EDIT_ROLE)
    _check_size(width, height)
    if (grid_rows is None) != (grid_cols is None):
        raise ValidationError("grid_rows and grid_cols must be given together")
    if grid_rows is not None:
        validate_grid_dims(grid_rows, grid_cols)
    now = now or utcnow()
    async with tx(db):
        blueprint = await verify_lock(db, caller, blueprint_id, now)
        if z_index is None:
            z_index = await _next_z(db, blueprint.id)
        drawer = Drawer(
            blueprint_id=blueprint.id,
            x=x,
            y=y,
            width=width,
            height=height,
            rotation=rotation,
            z_index=z_index,
            label=label,
            grid_rows=grid_rows,
            grid_cols=grid_cols,
            created_at=now,
            updated_at=now,
        )
        db.add(drawer)
        await db.flush()
        if grid_rows is not None:
            for row, col, rect in grid_cells(grid_rows, grid_cols, width, height):
                db.add(
                    Compartment(
                        drawer_id=drawer.id,
                        x=rect.x,
                        y=rect.y,
                        width=rect.width,
                        height=rect.height,
                        rotation=0,
                        z_index=row * grid_cols + col,
                        created_at=now,
                        updated_at=now,
                    )
                )
        blueprint.updated_at = now
        await db.flush()
    logger.info("drawer created", extra={"blueprint_id": blueprint_id, "drawer_id": drawer.id})
    return drawer


async def update_drawer(
    db: AsyncSession,
    caller: CallerContext,
    drawer_id: int,
    changes: dict,
    now: Optional[datetime] = None,
) -> Drawer:
    """Patch drawer fields. Resizing a grid-managed drawer re-fits its cells in place."""
    require_min_role(caller, EDIT_ROLE)
    unknown = set(changes) - set(DRAWER_EDITABLE)
    if unknown:
        raise ValidationError(f"Unsupported drawer fields: {', '.join(sorted(unknown))}")
    now = now or utcnow()
    async with tx(db):
        drawer, blueprint = await get_drawer(db, caller, drawer_id)
        await verify_lock(db, caller, blueprint.id, now)
        _check_size(changes.get("width", drawer.width), changes.get("height", drawer.height))
        for key, value in changes.items():
            setattr(drawer, key, value)
        drawer.updated_at = now
        resized = "width" in changes or "height" in changes
        if resized and await relayout_grid(db, drawer, now):
            logger.info("drawer cells re-fitted", extra={"drawer_id": drawer.id})
        blueprint.updated_at = now
        await db.flush()
    return drawer


async def delete_drawer(
    db: AsyncSession,
    caller: CallerContext,
    drawer_id: int,
    force: bool = False,
    now: Optional[datetime] = None,
) -> None:
    """Delete a drawer with its compartments; ``force`` also drops the stock they hold."""
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        drawer, blueprint = await get_drawer(db, caller, drawer_id)
        await verify_lock(db, caller, blueprint.id, now)
        compartments = await list_compartments(db, drawer.id)
        ids = [c.id for c in compartments]
        stock = await stock_by_compartment(db, ids)
        if stock and not force:
            first = next(c for c in compartments if c.id in stock)
            raise InventoryConflict(
                f'Cannot delete drawer: compartment "{first.label or first.id}" contains inventory. '
                "Remove inventory first."
            )
        dropped = await purge_inventory(db, ids)
        await db.execute(delete(Compartment).where(Compartment.drawer_id == drawer.id))
        await db.delete(drawer)
        blueprint.updated_at = now
        if stock:
            await log_action(
                db,
                caller.org_id,
                caller.user_id,
                "drawer_force_delete",
                "drawer",
                drawer_id,
                {"compartment_ids": sorted(stock), "units_dropped": dropped},
            )
    if stock:
        logger.warning("drawer deleted with stock", extra={"drawer_id": drawer_id, "units_dropped": dropped})
    else:
        logger.info("drawer deleted", extra={"drawer_id": drawer_id})


async def reorder_drawer(
    db: AsyncSession, caller: CallerContext, drawer_id: int, z_index: int, now: Optional[datetime] = None
) -> Drawer:
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        drawer, blueprint = await get_drawer(db, caller, drawer_id)
        await verify_lock(db, caller, blueprint.id, now)
        drawer.z_index = z_index
        drawer.updated_at = now
        blueprint.updated_at = now
    return drawer


async def reorder_drawers(
    db: AsyncSession,
    caller: CallerContext,
    blueprint_id: int,
    order: Sequence[tuple[int, int]],
    now: Optional[datetime] = None,
) -> list[Drawer]:
    """Apply several ``(drawer_id, z_index)`` pairs at once."""
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        blueprint = await get_blueprint(db, caller, blueprint_id)
        await verify_lock(db, caller, blueprint.id, now)
        drawers = []
        for drawer_id, z_index in order:
            drawer, owner = await get_drawer(db, caller, drawer_id)
            if owner.id != blueprint.id:
                raise CrossBlueprintNotAllowed("All drawers must belong to the same blueprint")
            drawer.z_index = z_index
            drawer.updated_at = now
            drawers.append(drawer)
        blueprint.updated_at = now
    return drawers
