"""Compartment reflow: grid repartitioning, auto-regrid, split, swap and merge.

Every public operation runs as one transaction behind the blueprint lock, so
validation failures and late write failures both leave the layout untouched.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, require_min_role
from ..config import get_settings
from ..db import tx, utcnow
from ..errors import (
    CrossBlueprintNotAllowed,
    GridShrinkBlocked,
    InventoryConflict,
    NoSplitTarget,
    SplitBlocked,
    UnsupportedRotation,
    ValidationError,
)
from ..models import Compartment, Drawer
from .access import get_compartment, get_drawer, list_compartments, touch
from .inventory import ensure_no_stock, purge_inventory, stocked_compartment_ids
from .layout import (
    Rect,
    SplitOrientation,
    assign_compartments_to_grid,
    cell_rect,
    choose_grid_dims,
    find_split_target,
    merged_rect,
    split_rect,
    validate_grid_dims,
)
from .locks import verify_lock

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class GridResult:
    drawer: Drawer
    compartments: list[Compartment]
    created: list[int] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)


def _require_unrotated(drawer: Drawer) -> None:
    if drawer.rotation:
        raise UnsupportedRotation("Grid and split operations are not supported for rotated drawers")


def _place(compartment: Compartment, rect: Rect, z_index: int, now: datetime) -> None:
    compartment.x = rect.x
    compartment.y = rect.y
    compartment.width = rect.width
    compartment.height = rect.height
    compartment.rotation = 0
    compartment.z_index = z_index
    compartment.updated_at = now


async def remove_compartments(db: AsyncSession, compartment_ids: Sequence[int]) -> None:
    """Drop compartments and their (already checked or forced) inventory rows."""
    ids = list(compartment_ids)
    if not ids:
        return
    await purge_inventory(db, ids)
    await db.execute(delete(Compartment).where(Compartment.id.in_(ids)))


def relayout_in_order(drawer: Drawer, ordered: Sequence[Compartment], rows: int, cols: int, now: datetime) -> None:
    """Place ``ordered`` into the drawer's cells row-major, keeping their ids."""
    for index, compartment in enumerate(ordered):
        row, col = divmod(index, cols)
        _place(compartment, cell_rect(row, col, rows, cols, drawer.width, drawer.height), index, now)


async def relayout_grid(db: AsyncSession, drawer: Drawer, now: datetime) -> bool:
    """Re-fit a grid-managed drawer's cells after a resize.

    Only applies when the compartment count still matches the recorded grid;
    freehand edits since the last grid change are left alone.
    """
    rows, cols = drawer.grid_rows, drawer.grid_cols
    if not rows or not cols or drawer.rotation:
        return False
    compartments = await list_compartments(db, drawer.id)
    if not compartments or len(compartments) != rows * cols:
        return False
    relayout_in_order(drawer, compartments, rows, cols, now)
    return True


async def auto_regrid_on_delete(db: AsyncSession, drawer: Drawer, now: datetime) -> Optional[tuple[int, int]]:
    """Re-lay out a grid-managed drawer's remaining compartments after one was deleted."""
    if not drawer.grid_rows or not drawer.grid_cols or drawer.rotation:
        return None
    remaining = await list_compartments(db, drawer.id)
    if not remaining:
        drawer.grid_rows = None
        drawer.grid_cols = None
        return None
    remaining.sort(key=lambda c: (c.z_index, c.created_at, c.id))
    rows, cols = choose_grid_dims(len(remaining), drawer.width, drawer.height)
    relayout_in_order(drawer, remaining, rows, cols, now)
    drawer.grid_rows = rows
    drawer.grid_cols = cols
    logger.info("auto-regrid", extra={"drawer_id": drawer.id, "rows": rows, "cols": cols})
    return rows, cols


async def set_grid(
    db: AsyncSession,
    caller: CallerContext,
    drawer_id: int,
    rows: int,
    cols: int,
    now: Optional[datetime] = None,
) -> GridResult:
    require_min_role(caller, EDIT_ROLE)
    validate_grid_dims(rows, cols)
    now = now or utcnow()
    async with tx(db):
        drawer, blueprint = await get_drawer(db, caller, drawer_id)
        await verify_lock(db, caller, blueprint.id, now)
        _require_unrotated(drawer)

        existing = await list_compartments(db, drawer.id)
        stocked = await stocked_compartment_ids(db, [c.id for c in existing])
        plan = assign_compartments_to_grid(existing, rows, cols, drawer.width, drawer.height, stocked)
        blocked = [cid for cid in plan.to_delete if cid in stocked]
        if blocked:
            logger.info("grid shrink blocked", extra={"drawer_id": drawer.id, "compartment_ids": blocked})
            raise GridShrinkBlocked(
                f"Cannot shrink grid: {len(blocked)} compartment(s) that would be removed contain inventory. "
                "Move inventory first."
            )

        await remove_compartments(db, plan.to_delete)
        by_id = {c.id: c for c in existing}
        for assignment in plan.assignments:
            rect = cell_rect(assignment.row, assignment.col, rows, cols, drawer.width, drawer.height)
            _place(by_id[assignment.compartment_id], rect, assignment.row * cols + assignment.col, now)
        created = []
        for row, col in plan.empty_cells:
            compartment = Compartment(drawer_id=drawer.id, created_at=now, label=None)
            _place(compartment, cell_rect(row, col, rows, cols, drawer.width, drawer.height), row * cols + col, now)
            db.add(compartment)
            created.append(compartment)

        drawer.grid_rows = rows
        drawer.grid_cols = cols
        drawer.updated_at = now
        blueprint.updated_at = now
        await db.flush()
        compartments = await list_compartments(db, drawer.id)
        result = GridResult(drawer, compartments, [c.id for c in created], list(plan.to_delete))
    logger.info(
        "grid applied",
        extra={"drawer_id": drawer_id, "rows": rows, "cols": cols, "deleted": len(result.deleted)},
    )
    return result


async def split_drawer(
    db: AsyncSession,
    caller: CallerContext,
    drawer_id: int,
    orientation: SplitOrientation,
    position: float,
    target_compartment_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> tuple[Compartment, Compartment]:
    """Cut one compartment (or an empty drawer) in two at a drawer-relative ``position``.

    The first half keeps the target's label and z-order; the second goes on top.
    """
    require_min_role(caller, EDIT_ROLE)
    orientation = SplitOrientation(orientation)
    now = now or utcnow()
    async with tx(db):
        drawer, blueprint = await get_drawer(db, caller, drawer_id)
        await verify_lock(db, caller, blueprint.id, now)
        _require_unrotated(drawer)
        compartments = await list_compartments(db, drawer.id)

        target: Optional[Compartment] = None
        if target_compartment_id is not None:
            target = next((c for c in compartments if c.id == target_compartment_id), None)
            if target is None:
                raise NoSplitTarget("Compartment does not belong to this drawer")
        elif compartments:
            target = find_split_target(compartments, orientation, position, settings.grid_size)
            if target is None:
                raise NoSplitTarget("No compartment found at split position")

        if target is not None:
            if target.rotation:
                raise UnsupportedRotation("Cannot split a rotated compartment")
            await ensure_no_stock(
                db, [target.id], "Cannot split compartment containing inventory", error=SplitBlocked
            )
            source = Rect.of(target)
            target_id = target.id
            label, z_index = target.label, target.z_index
        else:
            source = Rect(0, 0, drawer.width, drawer.height)
            target_id = None
            label, z_index = None, 0

        first_rect, second_rect = split_rect(source, orientation, position, settings.grid_size)
        top_z = max((c.z_index for c in compartments), default=z_index)
        first = Compartment(drawer_id=drawer.id, label=label, created_at=now)
        second = Compartment(drawer_id=drawer.id, label=None, created_at=now)
        _place(first, first_rect, z_index, now)
        _place(second, second_rect, top_z + 1, now)
        if target_id is not None:
            await remove_compartments(db, [target_id])
        db.add_all([first, second])

        # A split leaves a non-uniform layout.
        drawer.grid_rows = None
        drawer.grid_cols = None
        drawer.updated_at = now
        blueprint.updated_at = now
        await db.flush()
    logger.info(
        "split",
        extra={
            "drawer_id": drawer_id,
            "orientation": orientation.value,
            "position": position,
            "target_compartment_id": target_id,
        },
    )
    return first, second


async def swap_compartments(
    db: AsyncSession,
    caller: CallerContext,
    a_id: int,
    b_id: int,
    now: Optional[datetime] = None,
) -> tuple[Compartment, Compartment]:
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        a, _, blueprint_a = await get_compartment(db, caller, a_id)
        if a_id == b_id:
            return a, a
        b, _, blueprint_b = await get_compartment(db, caller, b_id)
        if blueprint_a.id != blueprint_b.id:
            raise CrossBlueprintNotAllowed("Cannot swap compartments across blueprints")
        await verify_lock(db, caller, blueprint_a.id, now)

        fields = ("drawer_id", "x", "y", "width", "height", "rotation")
        a_values = {f: getattr(a, f) for f in fields}
        b_values = {f: getattr(b, f) for f in fields}
        for f in fields:
            setattr(a, f, b_values[f])
            setattr(b, f, a_values[f])
        a.updated_at = now
        b.updated_at = now
        await db.flush()
        await touch(db, now, blueprint_a.id, (a_values["drawer_id"], b_values["drawer_id"]))
    logger.info("swap", extra={"compartment_ids": [a_id, b_id]})
    return a, b


async def merge_compartments(
    db: AsyncSession,
    caller: CallerContext,
    keep_id: int,
    absorb_id: int,
    now: Optional[datetime] = None,
) -> Compartment:
    """Grow ``keep_id`` over an edge-adjacent neighbour and delete the neighbour."""
    require_min_role(caller, EDIT_ROLE)
    if keep_id == absorb_id:
        raise ValidationError("Cannot merge a compartment with itself")
    now = now or utcnow()
    async with tx(db):
        keep, drawer, blueprint = await get_compartment(db, caller, keep_id)
        absorb, _, _ = await get_compartment(db, caller, absorb_id)
        if absorb.drawer_id != keep.drawer_id:
            raise ValidationError("Compartments must be in the same drawer to merge")
        await verify_lock(db, caller, blueprint.id, now)
        _require_unrotated(drawer)
        if keep.rotation or absorb.rotation:
            raise UnsupportedRotation("Cannot merge rotated compartments")
        union = merged_rect(Rect.of(keep), Rect.of(absorb))
        if union is None:
            raise ValidationError("Compartments must share a full edge to merge")
        await ensure_no_stock(
            db,
            [absorb.id],
            "Cannot merge: absorbed compartment contains inventory. Move inventory first.",
            error=InventoryConflict,
        )
        await remove_compartments(db, [absorb.id])
        _place(keep, union, keep.z_index, now)
        drawer.grid_rows = None
        drawer.grid_cols = None
        drawer.updated_at = now
        blueprint.updated_at = now
        await db.flush()
    logger.info("merge", extra={"keep_id": keep_id, "absorb_id": absorb_id})
    return keep
