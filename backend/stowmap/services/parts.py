from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, VIEW_ROLE, require_min_role
from ..db import tx, utcnow
from ..errors import ValidationError
from ..models import Part
from .access import get_part


async def create_part(
    db: AsyncSession,
    caller: CallerContext,
    name: str,
    sku: str,
    category: str = "",
    description: Optional[str] = None,
) -> Part:
    require_min_role(caller, EDIT_ROLE)
    name = (name or "").strip()
    sku = (sku or "").strip()
    if not name or not sku:
        raise ValidationError("Part name and SKU are required")
    async with tx(db):
        res = await db.execute(select(Part.id).where(Part.org_id == caller.org_id, Part.sku == sku))
        if res.scalar_one_or_none() is not None:
            raise ValidationError(f'A part with SKU "{sku}" already exists')
        now = utcnow()
        part = Part(
            org_id=caller.org_id,
            name=name,
            sku=sku,
            category=(category or "").strip(),
            description=description,
            created_at=now,
            updated_at=now,
        )
        db.add(part)
        await db.flush()
    return part


async def list_parts(
    db: AsyncSession,
    caller: CallerContext,
    q: Optional[str] = None,
    include_archived: bool = False,
) -> list[Part]:
    require_min_role(caller, VIEW_ROLE)
    stmt = select(Part).where(Part.org_id == caller.org_id)
    if not include_archived:
        stmt = stmt.where(Part.archived.is_(False))
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(Part.name.ilike(like), Part.sku.ilike(like)))
    res = await db.execute(stmt.order_by(Part.name, Part.id))
    return list(res.scalars().all())


async def set_archived(db: AsyncSession, caller: CallerContext, part_id: int, archived: bool = True) -> Part:
    require_min_role(caller, EDIT_ROLE)
    async with tx(db):
        part = await get_part(db, caller, part_id)
        part.archived = archived
        part.updated_at = utcnow()
    return part
