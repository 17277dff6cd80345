import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, VIEW_ROLE, require_min_role
from ..db import tx, utcnow
from ..errors import InventoryConflict, LockedByOther, ValidationError
from ..models import Blueprint, BlueprintRevision, Compartment, Divider, Drawer
from .access import get_blueprint, list_compartments, list_dividers, list_drawers
from .audit import log_action
from .inventory import purge_inventory, stock_by_compartment
from .locks import LockState, lock_state, verify_lock
from .storage import LocalBlobStore

logger = logging.getLogger(__name__)


@dataclass
class BlueprintView:
    blueprint: Blueprint
    lock: LockState


@dataclass
class Layout:
    blueprint: Blueprint
    lock: LockState
    drawers: list[Drawer] = field(default_factory=list)
    compartments: list[Compartment] = field(default_factory=list)
    dividers: list[Divider] = field(default_factory=list)


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Blueprint name is required")
    return name


async def create_blueprint(db: AsyncSession, caller: CallerContext, name: str) -> Blueprint:
    require_min_role(caller, EDIT_ROLE)
    name = _clean_name(name)
    now = utcnow()
    async with tx(db):
        blueprint = Blueprint(org_id=caller.org_id, name=name, created_at=now, updated_at=now)
        db.add(blueprint)
        await db.flush()
    logger.info("blueprint created", extra={"blueprint_id": blueprint.id, "org_id": caller.org_id})
    return blueprint


async def rename_blueprint(db: AsyncSession, caller: CallerContext, blueprint_id: int, name: str) -> Blueprint:
    require_min_role(caller, EDIT_ROLE)
    name = _clean_name(name)
    async with tx(db):
        blueprint = await get_blueprint(db, caller, blueprint_id, for_update=True)
        blueprint.name = name
        blueprint.updated_at = utcnow()
    return blueprint


async def list_blueprints(
    db: AsyncSession, caller: CallerContext, now: Optional[datetime] = None
) -> list[BlueprintView]:
    require_min_role(caller, VIEW_ROLE)
    now = now or utcnow()
    res = await db.execute(
        select(Blueprint).where(Blueprint.org_id == caller.org_id).order_by(Blueprint.name, Blueprint.id)
    )
    return [BlueprintView(b, lock_state(b, now)) for b in res.scalars().all()]


async def get_blueprint_view(
    db: AsyncSession, caller: CallerContext, blueprint_id: int, now: Optional[datetime] = None
) -> BlueprintView:
    require_min_role(caller, VIEW_ROLE)
    blueprint = await get_blueprint(db, caller, blueprint_id)
    return BlueprintView(blueprint, lock_state(blueprint, now))


async def get_layout(
    db: AsyncSession, caller: CallerContext, blueprint_id: int, now: Optional[datetime] = None
) -> Layout:
    require_min_role(caller, VIEW_ROLE)
    blueprint = await get_blueprint(db, caller, blueprint_id)
    drawers = await list_drawers(db, blueprint.id)
    compartments = await list_compartments(db, [d.id for d in drawers])
    dividers = await list_dividers(db, blueprint.id)
    return Layout(blueprint, lock_state(blueprint, now), drawers, compartments, dividers)


async def delete_blueprint(
    db: AsyncSession,
    caller: CallerContext,
    blueprint_id: int,
    store: Optional[LocalBlobStore] = None,
    now: Optional[datetime] = None,
) -> None:
    """Remove a blueprint with its whole layout and revision history.

    Refuses while any compartment holds stock or while another user holds a
    valid lock. The background image is removed afterwards on a best-effort basis.
    """
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        blueprint = await get_blueprint(db, caller, blueprint_id, for_update=True)
        state = lock_state(blueprint, now)
        if state.locked and state.holder != caller.user_id:
            raise LockedByOther("Blueprint is locked by another user. Cannot delete.")
        drawers = await list_drawers(db, blueprint.id)
        compartments = await list_compartments(db, [d.id for d in drawers])
        ids = [c.id for c in compartments]
        stock = await stock_by_compartment(db, ids)
        if stock:
            blocked = next(c for c in compartments if c.id in stock)
            raise InventoryConflict(
                f'Cannot delete blueprint: compartment "{blocked.label or blocked.id}" contains inventory. '
                "Remove inventory first."
            )
        await purge_inventory(db, ids)
        await db.execute(delete(Compartment).where(Compartment.id.in_(ids)))
        await db.execute(delete(Drawer).where(Drawer.blueprint_id == blueprint.id))
        removed_dividers = await db.execute(delete(Divider).where(Divider.blueprint_id == blueprint.id))
        await db.execute(delete(BlueprintRevision).where(BlueprintRevision.blueprint_id == blueprint.id))
        image_id = blueprint.background_image_id
        await db.delete(blueprint)
        await log_action(
            db,
            caller.org_id,
            caller.user_id,
            "blueprint_delete",
            "blueprint",
            blueprint_id,
            {"drawers": len(drawers), "compartments": len(ids), "dividers": removed_dividers.rowcount},
        )
    if image_id and store is not None:
        store.discard(image_id)
    logger.info("blueprint deleted", extra={"blueprint_id": blueprint_id, "drawers": len(drawers)})


async def set_background_image(
    db: AsyncSession,
    caller: CallerContext,
    blueprint_id: int,
    store: LocalBlobStore,
    data: Optional[bytes],
    now: Optional[datetime] = None,
) -> Blueprint:
    """Replace (or with ``data=None`` clear) the background image. Lock-gated."""
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    new_id = store.put(data) if data is not None else None
    try:
        async with tx(db):
            blueprint = await verify_lock(db, caller, blueprint_id, now)
            old_id = blueprint.background_image_id
            blueprint.background_image_id = new_id
            blueprint.updated_at = now
    except Exception:
        if new_id:
            store.discard(new_id)
        raise
    if old_id:
        store.discard(old_id)
    return blueprint
