import pytest
from sqlalchemy import select

from stowmap.config import get_settings
from stowmap.errors import Forbidden, InventoryConflict, NotFound, NotLocked, ValidationError
from stowmap.models import AuditLog
from stowmap.services import blueprints, compartments, inventory, locks, revisions

pytestmark = pytest.mark.anyio


def _geometry(items):
    return sorted((i.x, i.y, i.width, i.height) for i in items)


async def test_versions_increase(db, world, locked_blueprint):
    created = [
        await revisions.create_revision(db, world.officer, locked_blueprint.id, description=f"r{n}")
        for n in range(3)
    ]
    assert [r.version for r in created] == [1, 2, 3]
    listed = await revisions.list_revisions(db, world.member, locked_blueprint.id)
    assert [r.version for r in listed] == [3, 2, 1]
    assert listed[0].created_by_name == "Officer"
    assert listed[0].state is None


async def test_history_is_bounded(db, world, locked_blueprint, monkeypatch):
    monkeypatch.setattr(get_settings(), "max_revisions", 5)
    for _ in range(8):
        await revisions.create_revision(db, world.officer, locked_blueprint.id)
    listed = await revisions.list_revisions(db, world.member, locked_blueprint.id)
    assert [r.version for r in listed] == [8, 7, 6, 5, 4]
    count = await revisions.revision_count(db, world.member, locked_blueprint.id)
    assert count.count == 5
    assert count.max_revisions == 5


async def test_versions_not_reused_after_delete(db, world, locked_blueprint):
    await revisions.create_revision(db, world.officer, locked_blueprint.id)
    second = await revisions.create_revision(db, world.officer, locked_blueprint.id)
    await revisions.delete_revision(db, world.exec, second.id)
    third = await revisions.create_revision(db, world.officer, locked_blueprint.id)
    assert third.version == 3

    removed = await revisions.delete_all_revisions(db, world.exec, locked_blueprint.id)
    assert removed == 2
    assert await revisions.latest_revision(db, world.member, locked_blueprint.id) is None
    fourth = await revisions.create_revision(db, world.officer, locked_blueprint.id)
    assert fourth.version == 4


async def test_near_limit_flag(db, world, locked_blueprint, monkeypatch):
    monkeypatch.setattr(get_settings(), "max_revisions", 10)
    for _ in range(4):
        await revisions.create_revision(db, world.officer, locked_blueprint.id)
    count = await revisions.revision_count(db, world.member, locked_blueprint.id)
    assert not count.is_near_limit
    await revisions.create_revision(db, world.officer, locked_blueprint.id)
    count = await revisions.revision_count(db, world.member, locked_blueprint.id)
    assert count.is_near_limit


async def test_create_rejects_malformed_state(db, world, locked_blueprint):
    with pytest.raises(ValidationError):
        await revisions.create_revision(db, world.officer, locked_blueprint.id, state={"compartments": []})


async def test_roles(db, world, locked_blueprint):
    blueprint_id = locked_blueprint.id
    with pytest.raises(Forbidden):
        await revisions.create_revision(db, world.member, blueprint_id)
    revision = await revisions.create_revision(db, world.officer, blueprint_id)
    with pytest.raises(Forbidden):
        await revisions.delete_revision(db, world.officer, revision.id)
    with pytest.raises(NotFound):
        await revisions.get_revision(db, world.outsider, revision.id)


async def test_restore_round_trip(db, world, grid_drawer):
    drawer, cells = grid_drawer
    blueprint_id = drawer.blueprint_id
    original = _geometry(cells)
    saved = await revisions.create_revision(db, world.officer, blueprint_id, description="four bins")
    saved_id = saved.id

    await compartments.delete_compartment(db, world.officer, cells[1].id)
    changed = await blueprints.get_layout(db, world.member, blueprint_id)
    assert len(changed.compartments) == 3

    result = await revisions.restore_revision(db, world.officer, saved_id)
    assert result.success
    assert result.message == "Successfully restored to version 1"

    layout = await blueprints.get_layout(db, world.member, blueprint_id)
    assert len(layout.drawers) == 1
    assert (layout.drawers[0].grid_rows, layout.drawers[0].grid_cols) == (2, 2)
    assert _geometry(layout.compartments) == original

    history = await revisions.list_revisions(db, world.member, blueprint_id)
    assert [r.version for r in history] == [3, 2, 1]
    assert history[0].id == result.new_revision_id
    assert history[0].description == "Restored to version 1"
    assert history[1].id == result.backup_revision_id
    assert history[1].description == "Auto-backup before restoring to v1"

    backup = await revisions.get_revision(db, world.member, result.backup_revision_id)
    assert len(backup.state["compartments"]) == 3

    res = await db.execute(select(AuditLog).where(AuditLog.action == "revision_restore"))
    assert res.scalar_one().payload_json["version"] == 1


async def test_restore_blocked_by_inventory(db, world, grid_drawer):
    drawer, cells = grid_drawer
    blueprint_id = drawer.blueprint_id
    saved = await revisions.create_revision(db, world.officer, blueprint_id)
    saved_id = saved.id
    await inventory.check_in(db, world.officer, world.part_id, cells[2].id, 5)
    before = _geometry(cells)

    with pytest.raises(InventoryConflict):
        await revisions.restore_revision(db, world.officer, saved_id)

    count = await revisions.revision_count(db, world.member, blueprint_id)
    assert count.count == 1
    layout = await blueprints.get_layout(db, world.member, blueprint_id)
    assert _geometry(layout.compartments) == before


async def test_restore_requires_lock(db, world, grid_drawer):
    drawer, _ = grid_drawer
    blueprint_id = drawer.blueprint_id
    saved = await revisions.create_revision(db, world.officer, blueprint_id)
    saved_id = saved.id
    await locks.release_lock(db, world.officer, blueprint_id)
    with pytest.raises(NotLocked):
        await revisions.restore_revision(db, world.officer, saved_id)


async def test_restore_unknown_revision(db, world, locked_blueprint):
    with pytest.raises(NotFound) as exc:
        await revisions.restore_revision(db, world.officer, 999)
    assert exc.value.detail == "Revision not found or access denied"


async def test_restore_skips_orphan_compartments(db, world, locked_blueprint):
    blueprint_id = locked_blueprint.id
    state = {
        "drawers": [{"id": 10, "x": 0, "y": 0, "width": 200, "height": 100, "label": "Top"}],
        "compartments": [
            {"id": 1, "drawer_id": 10, "x": 0, "y": 0, "width": 50, "height": 50},
            {"id": 2, "drawer_id": 99, "x": 0, "y": 0, "width": 50, "height": 50},
        ],
    }
    saved = await revisions.create_revision(db, world.officer, blueprint_id, state=state)
    await revisions.restore_revision(db, world.officer, saved.id, description="imported")

    layout = await blueprints.get_layout(db, world.member, blueprint_id)
    assert [d.label for d in layout.drawers] == ["Top"]
    assert len(layout.compartments) == 1
    assert layout.compartments[0].drawer_id == layout.drawers[0].id
    latest = await revisions.latest_revision(db, world.member, blueprint_id)
    assert latest.description == "imported"


async def test_preview_leaves_layout_alone(db, world, grid_drawer):
    drawer, _ = grid_drawer
    saved = await revisions.create_revision(db, world.officer, drawer.blueprint_id)
    preview = await revisions.preview_revision(db, world.member, saved.id)
    assert preview.version == 1
    assert len(preview.state["compartments"]) == 4


async def test_restore_keeps_target_when_history_is_full(db, world, grid_drawer, monkeypatch):
    monkeypatch.setattr(get_settings(), "max_revisions", 3)
    drawer, _ = grid_drawer
    blueprint_id = drawer.blueprint_id
    oldest = await revisions.create_revision(db, world.officer, blueprint_id, description="oldest")
    oldest_id = oldest.id
    for _ in range(2):
        await revisions.create_revision(db, world.officer, blueprint_id)

    result = await revisions.restore_revision(db, world.officer, oldest_id)
    assert result.success

    history = await revisions.list_revisions(db, world.member, blueprint_id)
    assert [r.version for r in history] == [5, 4, 1]
    assert (await revisions.get_revision(db, world.member, oldest_id)).description == "oldest"
