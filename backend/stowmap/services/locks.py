"""Single-writer editing lock over a blueprint's geometry.

Expiry is lazy: nothing sweeps stale locks. Validity is derived on every
check from ``lock_timestamp`` by :func:`lock_state`, so an abandoned lock
simply becomes acquirable once it is older than the configured expiration.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..caller import CallerContext, EDIT_ROLE, ELEVATED_ROLE, require_min_role
from ..config import get_settings
from ..db import tx, utcnow
from ..errors import LockedByOther, NotLocked
from ..models import Blueprint
from .access import get_blueprint
from .audit import log_action
from .snapshots import insert_revision, snapshot_layout

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class LockState:
    holder: Optional[int] = None
    expires_at: Optional[datetime] = None

    @property
    def locked(self) -> bool:
        return self.holder is not None


UNLOCKED = LockState()


@dataclass
class LockResult:
    success: bool
    message: str
    locked_by: Optional[int] = None
    previous_holder: Optional[int] = None
    revision_id: Optional[int] = None


def lock_state(blueprint: Blueprint, now: Optional[datetime] = None) -> LockState:
    if blueprint.locked_by is None or blueprint.lock_timestamp is None:
        return UNLOCKED
    now = now or utcnow()
    expires_at = blueprint.lock_timestamp + settings.lock_expiration
    if now >= expires_at:
        return UNLOCKED
    return LockState(holder=blueprint.locked_by, expires_at=expires_at)


async def acquire_lock(
    db: AsyncSession, caller: CallerContext, blueprint_id: int, now: Optional[datetime] = None
) -> LockResult:
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db, retryable=True):
        blueprint = await get_blueprint(db, caller, blueprint_id, for_update=True)
        state = lock_state(blueprint, now)
        if state.locked and state.holder == caller.user_id:
            blueprint.lock_timestamp = now
            blueprint.updated_at = now
            logger.info("lock extended", extra={"blueprint_id": blueprint_id, "user_id": caller.user_id})
            return LockResult(True, "Lock extended", locked_by=caller.user_id)
        if state.locked:
            logger.info(
                "lock refused",
                extra={"blueprint_id": blueprint_id, "user_id": caller.user_id, "holder": state.holder},
            )
            return LockResult(False, "Blueprint is locked by another user", locked_by=state.holder)
        blueprint.locked_by = caller.user_id
        blueprint.lock_timestamp = now
        blueprint.updated_at = now
    logger.info("lock acquired", extra={"blueprint_id": blueprint_id, "user_id": caller.user_id})
    return LockResult(True, "Lock acquired", locked_by=caller.user_id)


async def release_lock(
    db: AsyncSession,
    caller: CallerContext,
    blueprint_id: int,
    has_changes: bool = False,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LockResult:
    """Release the caller's lock; snapshot the layout first when the session changed it."""
    require_min_role(caller, EDIT_ROLE)
    now = now or utcnow()
    async with tx(db, retryable=not has_changes):
        blueprint = await get_blueprint(db, caller, blueprint_id, for_update=True)
        state = lock_state(blueprint, now)
        if not state.locked:
            return LockResult(True, "Lock was already expired or not held")
        if state.holder != caller.user_id:
            return LockResult(False, "Only the lock holder can release the lock", locked_by=state.holder)
        revision_id = None
        if has_changes:
            layout = await snapshot_layout(db, blueprint.id)
            revision = await insert_revision(db, caller, blueprint, layout, description or "Editing session", now)
            revision_id = revision.id
        blueprint.locked_by = None
        blueprint.lock_timestamp = None
        blueprint.updated_at = now
    logger.info("lock released", extra={"blueprint_id": blueprint_id, "user_id": caller.user_id})
    return LockResult(True, "Lock released successfully", revision_id=revision_id)


async def force_release_lock(
    db: AsyncSession, caller: CallerContext, blueprint_id: int, now: Optional[datetime] = None
) -> LockResult:
    require_min_role(caller, ELEVATED_ROLE)
    now = now or utcnow()
    async with tx(db, retryable=True):
        blueprint = await get_blueprint(db, caller, blueprint_id, for_update=True)
        previous_holder = blueprint.locked_by
        blueprint.locked_by = None
        blueprint.lock_timestamp = None
        blueprint.updated_at = now
        await log_action(
            db,
            caller.org_id,
            caller.user_id,
            "lock_force_release",
            "blueprint",
            blueprint.id,
            {"previous_holder": previous_holder},
        )
    logger.warning(
        "lock force-released",
        extra={"blueprint_id": blueprint_id, "user_id": caller.user_id, "previous_holder": previous_holder},
    )
    return LockResult(True, "Lock force-released by authorized user", previous_holder=previous_holder)


async def verify_lock(
    db: AsyncSession, caller: CallerContext, blueprint_id: int, now: Optional[datetime] = None
) -> Blueprint:
    """Gate for every geometry mutation. Runs inside the caller's transaction."""
    blueprint = await get_blueprint(db, caller, blueprint_id, for_update=True)
    state = lock_state(blueprint, now)
    if not state.locked:
        raise NotLocked("Blueprint is not locked. Acquire lock before editing.")
    if state.holder != caller.user_id:
        raise LockedByOther("Blueprint is locked by another user. Cannot edit.")
    return blueprint
