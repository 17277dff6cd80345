import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, VIEW_ROLE, require_min_role
from ..db import tx, utcnow
from ..errors import ValidationError
from ..models import Divider
from .access import get_blueprint, get_divider, list_dividers as _list_dividers
from .locks import verify_lock

logger = logging.getLogger(__name__)

DIVIDER_EDITABLE = ("x1", "y1", "x2", "y2", "thickness")
DEFAULT_THICKNESS = 4


def _check_thickness(thickness: float) -> None:
    if thickness <= 0:
        raise ValidationError("Thickness must be positive")


async def list_dividers(db: AsyncSession, caller: CallerContext, blueprint_id: int) -> list[Divider]:
    require_min_role(caller, VIEW_ROLE)
    blueprint = await get_blueprint(db, caller, blueprint_id)
    return await _list_dividers(db, blueprint.id)


async def create_divider(
    db: AsyncSession,
    caller: CallerContext,
    blueprint_id: int,
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    thickness: Optional[float] = None,
    now: Optional[datetime] = None,
) -> Divider:
    require_min_role(caller, EDIT_ROLE)
    thickness = DEFAULT_THICKNESS if thickness is None else thickness
    _check_thickness(thickness)
    now = now or utcnow()
    async with tx(db):
        blueprint = await verify_lock(db, caller, blueprint_id, now)
        divider = Divider(
            blueprint_id=blueprint.id,
            x1=x1,
            y1=y1,
            x2=x2,
            y2=y2,
            thickness=thickness,
            created_at=now,
            updated_at=now,
        )
        db.add(divider)
        blueprint.updated_at = now
        await db.flush()
    logger.info("divider created", extra={"blueprint_id": blueprint_id, "divider_id": divider.id})
    return divider


async def update_divider(
    db: AsyncSession,
    caller: CallerContext,
    divider_id: int,
    changes: dict,
    now: Optional[datetime] = None,
) -> Divider:
    require_min_role(caller, EDIT_ROLE)
    unknown = set(changes) - set(DIVIDER_EDITABLE)
    if unknown:
        raise ValidationError(f"Unsupported divider fields: {', '.join(sorted(unknown))}")
    if "thickness" in changes:
        _check_thickness(changes["thickness"])
    now = now or utcnow()
    async with tx(db):
        divider, blueprint = await get_divider(db, caller, divider_id)
        await verify_lock(db, caller, blueprint.id, now)
        for key, value in changes.items():
            setattr(divider, key, value)
        divider.updated_at = now
        blueprint.updated_at = now
        await db.flush()
    return divider


async def delete_divider(
    db: AsyncSession, caller: CallerContext, divider_id: int, now: Optional[datetime] = None
) -> None:
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db):
        divider, blueprint = await get_divider(db, caller, divider_id)
        await verify_lock(db, caller, blueprint.id, now)
        await db.delete(divider)
        blueprint.updated_at = now
    logger.info("divider deleted", extra={"blueprint_id": blueprint.id, "divider_id": divider_id})
