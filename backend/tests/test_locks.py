from datetime import timedelta

import pytest
from sqlalchemy import select

from stowmap.db import utcnow
from stowmap.errors import Forbidden, LockedByOther, NotFound, NotLocked
from stowmap.models import AuditLog
from stowmap.services import blueprints, compartments, drawers, locks, revisions
from stowmap.services.access import get_blueprint

pytestmark = pytest.mark.anyio


async def test_acquire_extend_and_refuse(db, world):
    blueprint = await blueprints.create_blueprint(db, world.officer, "Bench")
    t0 = utcnow()

    first = await locks.acquire_lock(db, world.officer, blueprint.id, now=t0)
    assert first.success and first.message == "Lock acquired"

    again = await locks.acquire_lock(db, world.officer, blueprint.id, now=t0 + timedelta(seconds=60))
    assert again.success and again.message == "Lock extended"

    other = await locks.acquire_lock(db, world.officer2, blueprint.id, now=t0 + timedelta(seconds=200))
    assert not other.success
    assert other.locked_by == world.officer.user_id


async def test_lock_expires_lazily(db, world):
    blueprint = await blueprints.create_blueprint(db, world.officer, "Bench")
    t0 = utcnow()
    await locks.acquire_lock(db, world.officer, blueprint.id, now=t0)

    refused = await locks.acquire_lock(db, world.officer2, blueprint.id, now=t0 + timedelta(seconds=200))
    assert not refused.success

    taken = await locks.acquire_lock(db, world.officer2, blueprint.id, now=t0 + timedelta(seconds=310))
    assert taken.success
    fresh = await get_blueprint(db, world.officer2, blueprint.id)
    assert fresh.locked_by == world.officer2.user_id


async def test_lock_state_reports_expiry(db, world):
    blueprint = await blueprints.create_blueprint(db, world.officer, "Bench")
    t0 = utcnow()
    await locks.acquire_lock(db, world.officer, blueprint.id, now=t0)
    state = locks.lock_state(blueprint, t0 + timedelta(seconds=10))
    assert state.locked
    assert state.expires_at == t0 + timedelta(seconds=300)
    assert locks.lock_state(blueprint, t0 + timedelta(seconds=300)) == locks.UNLOCKED


async def test_mutation_requires_lock(db, world):
    blueprint = await blueprints.create_blueprint(db, world.officer, "Bench")
    blueprint_id = blueprint.id
    with pytest.raises(NotLocked):
        await drawers.create_drawer(db, world.officer, blueprint_id, x=0, y=0, width=100, height=100)

    await locks.acquire_lock(db, world.officer, blueprint_id)
    with pytest.raises(LockedByOther):
        await drawers.create_drawer(db, world.officer2, blueprint_id, x=0, y=0, width=100, height=100)

    drawer = await drawers.create_drawer(db, world.officer, blueprint_id, x=0, y=0, width=100, height=100)
    assert drawer.blueprint_id == blueprint_id


async def test_expired_lock_rejects_mutation(db, world):
    blueprint = await blueprints.create_blueprint(db, world.officer, "Bench")
    blueprint_id = blueprint.id
    await locks.acquire_lock(db, world.officer, blueprint_id, now=utcnow() - timedelta(seconds=301))
    with pytest.raises(NotLocked):
        await drawers.create_drawer(db, world.officer, blueprint_id, x=0, y=0, width=100, height=100)


async def test_release_by_holder_only(db, world, locked_blueprint):
    denied = await locks.release_lock(db, world.officer2, locked_blueprint.id)
    assert not denied.success
    assert denied.locked_by == world.officer.user_id

    released = await locks.release_lock(db, world.officer, locked_blueprint.id)
    assert released.success and released.revision_id is None

    again = await locks.release_lock(db, world.officer, locked_blueprint.id)
    assert again.success
    assert again.message == "Lock was already expired or not held"


async def test_release_with_changes_snapshots_layout(db, world, grid_drawer):
    drawer, _ = grid_drawer
    result = await locks.release_lock(
        db, world.officer, drawer.blueprint_id, has_changes=True, description="Added bins"
    )
    assert result.success and result.revision_id is not None

    latest = await revisions.latest_revision(db, world.member, drawer.blueprint_id)
    assert latest.id == result.revision_id
    assert latest.version == 1
    assert latest.description == "Added bins"
    assert len(latest.state["drawers"]) == 1
    assert len(latest.state["compartments"]) == 4


async def test_release_without_description_uses_default(db, world, grid_drawer):
    drawer, _ = grid_drawer
    await locks.release_lock(db, world.officer, drawer.blueprint_id, has_changes=True)
    latest = await revisions.latest_revision(db, world.member, drawer.blueprint_id)
    assert latest.description == "Editing session"


async def test_force_release_requires_elevated_role(db, world, locked_blueprint):
    blueprint_id = locked_blueprint.id
    with pytest.raises(Forbidden):
        await locks.force_release_lock(db, world.officer2, blueprint_id)

    result = await locks.force_release_lock(db, world.exec, blueprint_id)
    assert result.success
    assert result.previous_holder == world.officer.user_id

    res = await db.execute(select(AuditLog).where(AuditLog.action == "lock_force_release"))
    entry = res.scalar_one()
    assert entry.entity_id == blueprint_id
    assert entry.payload_json == {"previous_holder": world.officer.user_id}

    # The previous holder's next edit is refused.
    with pytest.raises(NotLocked):
        await drawers.create_drawer(db, world.officer, blueprint_id, x=0, y=0, width=100, height=100)


async def test_member_cannot_lock(db, world, locked_blueprint):
    with pytest.raises(Forbidden):
        await locks.acquire_lock(db, world.member, locked_blueprint.id)


async def test_other_org_sees_not_found(db, world, locked_blueprint):
    with pytest.raises(NotFound):
        await locks.acquire_lock(db, world.outsider, locked_blueprint.id)


async def test_lock_holder_edits_while_other_reads(db, world, grid_drawer):
    drawer, cells = grid_drawer
    layout = await blueprints.get_layout(db, world.member, drawer.blueprint_id)
    assert layout.lock.holder == world.officer.user_id
    assert len(layout.compartments) == 4

    with pytest.raises(LockedByOther):
        await compartments.update_compartment(db, world.officer2, cells[0].id, {"label": "A1"})
