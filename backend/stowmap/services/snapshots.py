import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext
from ..config import get_settings
from ..models import Blueprint, BlueprintRevision, Compartment, Drawer
from .access import list_compartments, list_drawers

logger = logging.getLogger(__name__)
settings = get_settings()

DRAWER_FIELDS = ("x", "y", "width", "height", "rotation", "z_index", "label", "grid_rows", "grid_cols")
COMPARTMENT_FIELDS = ("drawer_id", "x", "y", "width", "height", "rotation", "z_index", "label")


def drawer_snapshot(drawer: Drawer) -> dict:
    data = {"id": drawer.id}
    data.update({field: getattr(drawer, field) for field in DRAWER_FIELDS})
    return data


def compartment_snapshot(compartment: Compartment) -> dict:
    data = {"id": compartment.id}
    data.update({field: getattr(compartment, field) for field in COMPARTMENT_FIELDS})
    return data


async def snapshot_layout(db: AsyncSession, blueprint_id: int) -> dict:
    drawers = await list_drawers(db, blueprint_id)
    compartments = await list_compartments(db, [d.id for d in drawers])
    return {
        "drawers": [drawer_snapshot(d) for d in drawers],
        "compartments": [compartment_snapshot(c) for c in compartments],
    }


async def _revisions_oldest_first(db: AsyncSession, blueprint_id: int) -> list[BlueprintRevision]:
    res = await db.execute(
        select(BlueprintRevision)
        .where(BlueprintRevision.blueprint_id == blueprint_id)
        .order_by(BlueprintRevision.version)
    )
    return list(res.scalars().all())


async def insert_revision(
    db: AsyncSession,
    caller: CallerContext,
    blueprint: Blueprint,
    state: dict,
    description: Optional[str],
    now: datetime,
    protect: Optional[int] = None,
) -> BlueprintRevision:
    """Append a revision and evict the oldest ones beyond ``MAX_REVISIONS``.

    The version is one past the blueprint's high-water mark, never a reused
    number, even when the newest revisions were deleted by hand. The revision
    with id ``protect`` is never evicted.
    """
    existing = await _revisions_oldest_first(db, blueprint.id)
    max_existing = existing[-1].version if existing else 0
    version = max(blueprint.last_revision_version or 0, max_existing) + 1

    revision = BlueprintRevision(
        org_id=blueprint.org_id,
        blueprint_id=blueprint.id,
        version=version,
        state=state,
        description=description,
        created_by=caller.user_id,
        created_at=now,
    )
    db.add(revision)
    blueprint.last_revision_version = version

    keep = settings.max_revisions - 1
    candidates = [r for r in existing if r.id != protect]
    evicted = candidates[: max(len(existing) - keep, 0)]
    if evicted:
        await db.execute(delete(BlueprintRevision).where(BlueprintRevision.id.in_([r.id for r in evicted])))
        logger.info(
            "revisions evicted",
            extra={"blueprint_id": blueprint.id, "versions": [r.version for r in evicted]},
        )
    await db.flush()
    logger.info("revision created", extra={"blueprint_id": blueprint.id, "version": version})
    return revision
