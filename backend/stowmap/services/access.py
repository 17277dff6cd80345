"""Org-scoped lookups shared by every service.

Rows belonging to another organization are reported exactly like missing
rows so tenants cannot discover each other's ids.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext
from ..errors import NotFound
from ..models import Blueprint, Compartment, Divider, Drawer, Part


async def get_blueprint(
    db: AsyncSession, caller: CallerContext, blueprint_id: int, for_update: bool = False
) -> Blueprint:
    stmt = select(Blueprint).where(Blueprint.id == blueprint_id)
    if for_update:
        stmt = stmt.with_for_update()
    res = await db.execute(stmt)
    blueprint = res.scalar_one_or_none()
    if not blueprint or blueprint.org_id != caller.org_id:
        raise NotFound("Blueprint not found or access denied")
    return blueprint


async def get_drawer(db: AsyncSession, caller: CallerContext, drawer_id: int) -> tuple[Drawer, Blueprint]:
    drawer = await db.get(Drawer, drawer_id)
    if not drawer:
        raise NotFound("Drawer not found")
    blueprint = await db.get(Blueprint, drawer.blueprint_id)
    if not blueprint or blueprint.org_id != caller.org_id:
        raise NotFound("Drawer not found")
    return drawer, blueprint


async def get_compartment(
    db: AsyncSession, caller: CallerContext, compartment_id: int
) -> tuple[Compartment, Drawer, Blueprint]:
    compartment = await db.get(Compartment, compartment_id)
    if not compartment:
        raise NotFound("Compartment not found")
    drawer = await db.get(Drawer, compartment.drawer_id)
    if not drawer:
        raise NotFound("Compartment not found")
    blueprint = await db.get(Blueprint, drawer.blueprint_id)
    if not blueprint or blueprint.org_id != caller.org_id:
        raise NotFound("Compartment not found")
    return compartment, drawer, blueprint


async def get_divider(db: AsyncSession, caller: CallerContext, divider_id: int) -> tuple[Divider, Blueprint]:
    divider = await db.get(Divider, divider_id)
    if not divider:
        raise NotFound("Divider not found")
    blueprint = await db.get(Blueprint, divider.blueprint_id)
    if not blueprint or blueprint.org_id != caller.org_id:
        raise NotFound("Divider not found")
    return divider, blueprint


async def get_part(db: AsyncSession, caller: CallerContext, part_id: int) -> Part:
    part = await db.get(Part, part_id)
    if not part or part.org_id != caller.org_id:
        raise NotFound("Part not found")
    return part


async def list_drawers(db: AsyncSession, blueprint_id: int) -> list[Drawer]:
    res = await db.execute(
        select(Drawer).where(Drawer.blueprint_id == blueprint_id).order_by(Drawer.z_index, Drawer.id)
    )
    return list(res.scalars().all())


async def list_compartments(db: AsyncSession, drawer_ids: int | list[int]) -> list[Compartment]:
    if isinstance(drawer_ids, int):
        drawer_ids = [drawer_ids]
    if not drawer_ids:
        return []
    res = await db.execute(
        select(Compartment)
        .where(Compartment.drawer_id.in_(drawer_ids))
        .order_by(Compartment.drawer_id, Compartment.z_index, Compartment.id)
    )
    return list(res.scalars().all())


async def touch(
    db: AsyncSession,
    now: datetime,
    blueprint_id: Optional[int] = None,
    drawer_ids: tuple[int, ...] = (),
):
    """Bump ``updated_at`` on the drawers and blueprint a mutation touched."""
    ids = [d for d in dict.fromkeys(drawer_ids) if d is not None]
    if ids:
        await db.execute(update(Drawer).where(Drawer.id.in_(ids)).values(updated_at=now))
    if blueprint_id is not None:
        await db.execute(update(Blueprint).where(Blueprint.id == blueprint_id).values(updated_at=now))


async def list_dividers(db: AsyncSession, blueprint_id: int) -> list[Divider]:
    res = await db.execute(select(Divider).where(Divider.blueprint_id == blueprint_id).order_by(Divider.id))
    return list(res.scalars().all())
