"""Bounded, versioned snapshots of a blueprint's drawer/compartment geometry."""

import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, ELEVATED_ROLE, VIEW_ROLE, require_min_role
from ..config import get_settings
from ..db import tx, utcnow
from ..errors import InventoryConflict, NotFound, ValidationError
from ..models import BlueprintRevision, Compartment, Drawer, User
from .access import get_blueprint, list_compartments, list_drawers
from .audit import log_action
from .inventory import purge_inventory, stock_by_compartment
from .locks import verify_lock
from .snapshots import insert_revision, snapshot_layout

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class RevisionView:
    id: int
    blueprint_id: int
    version: int
    description: Optional[str]
    created_by: int
    created_by_name: str
    created_at: datetime
    state: Optional[dict] = None


@dataclass
class RevisionCount:
    count: int
    max_revisions: int
    is_near_limit: bool


@dataclass
class RestoreResult:
    success: bool
    message: str
    backup_revision_id: Optional[int] = None
    new_revision_id: Optional[int] = None


def _view(revision: BlueprintRevision, user_name: Optional[str], with_state: bool = False) -> RevisionView:
    return RevisionView(
        id=revision.id,
        blueprint_id=revision.blueprint_id,
        version=revision.version,
        description=revision.description,
        created_by=revision.created_by,
        created_by_name=user_name or "Unknown User",
        created_at=revision.created_at,
        state=revision.state if with_state else None,
    )


def _validate_state(state: dict) -> None:
    if not isinstance(state, dict) or not isinstance(state.get("drawers"), list):
        raise ValidationError("Revision state must contain a drawers list")
    if not isinstance(state.get("compartments", []), list):
        raise ValidationError("Revision state compartments must be a list")


async def _get_revision(db: AsyncSession, caller: CallerContext, revision_id: int) -> BlueprintRevision:
    revision = await db.get(BlueprintRevision, revision_id)
    if not revision or revision.org_id != caller.org_id:
        raise NotFound("Revision not found or access denied")
    return revision


async def create_revision(
    db: AsyncSession,
    caller: CallerContext,
    blueprint_id: int,
    state: Optional[dict] = None,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BlueprintRevision:
    """Record ``state`` (or the live layout when omitted) as the next version."""
    require_min_role(caller, EDIT_ROLE)
    if state is not None:
        _validate_state(state)
    now = now or utcnow()
    async with tx(db):
        blueprint = await get_blueprint(db, caller, blueprint_id, for_update=True)
        if state is None:
            state = await snapshot_layout(db, blueprint.id)
        revision = await insert_revision(db, caller, blueprint, state, description, now)
    return revision


async def restore_revision(
    db: AsyncSession,
    caller: CallerContext,
    revision_id: int,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RestoreResult:
    """Replace the live layout with a saved revision.

    The current layout is saved first as an auto-backup, and a marker revision
    is appended afterwards, so every restore adds exactly two versions. The
    whole sequence is one transaction; an inventory conflict is detected before
    anything is written.
    """
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db, retryable=False):
        revision = await _get_revision(db, caller, revision_id)
        blueprint = await verify_lock(db, caller, revision.blueprint_id, now)
        target_version = revision.version
        saved = copy.deepcopy(revision.state)

        drawers = await list_drawers(db, blueprint.id)
        compartments = await list_compartments(db, [d.id for d in drawers])
        stock = await stock_by_compartment(db, [c.id for c in compartments])
        if stock:
            blocked = next(c for c in compartments if c.id in stock)
            raise InventoryConflict(
                f'Cannot restore: compartment "{blocked.label or blocked.id}" contains inventory. '
                "Remove inventory first."
            )

        current = await snapshot_layout(db, blueprint.id)
        backup = await insert_revision(
            db,
            caller,
            blueprint,
            current,
            f"Auto-backup before restoring to v{target_version}",
            now,
            protect=revision.id,
        )

        await purge_inventory(db, [c.id for c in compartments])
        await db.execute(delete(Compartment).where(Compartment.id.in_([c.id for c in compartments])))
        await db.execute(delete(Drawer).where(Drawer.blueprint_id == blueprint.id))

        drawer_ids: dict = {}
        for item in saved.get("drawers", []):
            drawer = Drawer(
                blueprint_id=blueprint.id,
                x=item["x"],
                y=item["y"],
                width=item["width"],
                height=item["height"],
                rotation=item.get("rotation", 0),
                z_index=item.get("z_index", 0),
                label=item.get("label"),
                grid_rows=item.get("grid_rows"),
                grid_cols=item.get("grid_cols"),
                created_at=now,
                updated_at=now,
            )
            db.add(drawer)
            await db.flush()
            drawer_ids[item.get("id")] = drawer.id

        skipped = 0
        for item in saved.get("compartments", []):
            new_drawer_id = drawer_ids.get(item.get("drawer_id"))
            if new_drawer_id is None:
                skipped += 1
                continue
            db.add(
                Compartment(
                    drawer_id=new_drawer_id,
                    x=item["x"],
                    y=item["y"],
                    width=item["width"],
                    height=item["height"],
                    rotation=item.get("rotation", 0),
                    z_index=item.get("z_index", 0),
                    label=item.get("label"),
                    created_at=now,
                    updated_at=now,
                )
            )

        blueprint.updated_at = now
        marker = await insert_revision(
            db,
            caller,
            blueprint,
            saved,
            description or f"Restored to version {target_version}",
            now,
            protect=revision.id,
        )
        await log_action(
            db,
            caller.org_id,
            caller.user_id,
            "revision_restore",
            "blueprint",
            blueprint.id,
            {"version": target_version, "backup_version": backup.version, "marker_version": marker.version},
        )
        result = RestoreResult(
            True, f"Successfully restored to version {target_version}", backup.id, marker.id
        )
    if skipped:
        logger.warning(
            "orphan compartments skipped on restore", extra={"revision_id": revision_id, "skipped": skipped}
        )
    logger.info("revision restored", extra={"revision_id": revision_id, "version": target_version})
    return result


async def delete_revision(db: AsyncSession, caller: CallerContext, revision_id: int) -> None:
    require_min_role(caller, ELEVATED_ROLE)
    async with tx(db):
        revision = await _get_revision(db, caller, revision_id)
        blueprint_id, version = revision.blueprint_id, revision.version
        await db.delete(revision)
        await log_action(
            db, caller.org_id, caller.user_id, "revision_delete", "blueprint", blueprint_id, {"version": version}
        )
    logger.info("revision deleted", extra={"blueprint_id": blueprint_id, "version": version})


async def delete_all_revisions(db: AsyncSession, caller: CallerContext, blueprint_id: int) -> int:
    require_min_role(caller, ELEVATED_ROLE)
    async with tx(db):
        blueprint = await get_blueprint(db, caller, blueprint_id, for_update=True)
        res = await db.execute(delete(BlueprintRevision).where(BlueprintRevision.blueprint_id == blueprint.id))
        removed = res.rowcount or 0
        await log_action(
            db, caller.org_id, caller.user_id, "revision_delete_all", "blueprint", blueprint.id, {"removed": removed}
        )
    logger.info("revisions cleared", extra={"blueprint_id": blueprint_id, "removed": removed})
    return removed


async def list_revisions(db: AsyncSession, caller: CallerContext, blueprint_id: int) -> list[RevisionView]:
    require_min_role(caller, VIEW_ROLE)
    blueprint = await get_blueprint(db, caller, blueprint_id)
    res = await db.execute(
        select(BlueprintRevision, User.name)
        .outerjoin(User, User.id == BlueprintRevision.created_by)
        .where(BlueprintRevision.blueprint_id == blueprint.id)
        .order_by(BlueprintRevision.version.desc())
    )
    return [_view(revision, name) for revision, name in res.all()]


async def get_revision(db: AsyncSession, caller: CallerContext, revision_id: int) -> RevisionView:
    require_min_role(caller, VIEW_ROLE)
    revision = await _get_revision(db, caller, revision_id)
    user = await db.get(User, revision.created_by)
    return _view(revision, user.name if user else None, with_state=True)


async def latest_revision(db: AsyncSession, caller: CallerContext, blueprint_id: int) -> Optional[RevisionView]:
    require_min_role(caller, VIEW_ROLE)
    blueprint = await get_blueprint(db, caller, blueprint_id)
    res = await db.execute(
        select(BlueprintRevision, User.name)
        .outerjoin(User, User.id == BlueprintRevision.created_by)
        .where(BlueprintRevision.blueprint_id == blueprint.id)
        .order_by(BlueprintRevision.version.desc())
        .limit(1)
    )
    row = res.first()
    if row is None:
        return None
    return _view(row[0], row[1], with_state=True)


async def revision_count(db: AsyncSession, caller: CallerContext, blueprint_id: int) -> RevisionCount:
    require_min_role(caller, VIEW_ROLE)
    blueprint = await get_blueprint(db, caller, blueprint_id)
    res = await db.execute(
        select(func.count(BlueprintRevision.id)).where(BlueprintRevision.blueprint_id == blueprint.id)
    )
    count = res.scalar_one()
    limit = settings.max_revisions
    return RevisionCount(count, limit, count >= limit - settings.revision_near_limit_margin)


async def preview_revision(db: AsyncSession, caller: CallerContext, revision_id: int) -> RevisionView:
    """Same as :func:`get_revision`; never touches the live layout."""
    return await get_revision(db, caller, revision_id)
