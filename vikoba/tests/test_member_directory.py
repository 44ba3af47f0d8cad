"""
Member directory tests: code lookup, admin snapshot and code assignment.
"""

import pytest

from vikoba.app.core.exceptions import NotFoundError, ValidationError
from vikoba.app.models.enums import ActorRole, MemberStatus
from vikoba.app.schemas.member import MemberCreate
from vikoba.app.services.audit import ACTIVITY_COLLECTION, ActivityAction
from vikoba.app.services.member_directory import MemberDirectory


@pytest.mark.asyncio
async def test_resolve_member_code_ignores_case(store, seed_members):
    directory = MemberDirectory(store)

    assert (await directory.resolve_member_code("sbk002")).id == "X"
    assert (await directory.resolve_member_code(" SBK002 ")).id == "X"
    assert await directory.resolve_member_code("SBK999") is None
    assert await directory.resolve_member_code("") is None


@pytest.mark.asyncio
async def test_add_member_rejects_taken_code(store, seed_members, admin_actor):
    with pytest.raises(ValidationError):
        await MemberDirectory(store).add_member(
            admin_actor, MemberCreate(display_name="Copycat", member_code="sbk001")
        )


@pytest.mark.asyncio
async def test_add_member_is_audited(store, seed_members):
    entries = await store.query(ACTIVITY_COLLECTION, {"action": ActivityAction.MEMBER_ADDED})

    assert {entry["entity_id"] for entry in entries} == {"A1", "A2", "M", "X", "Y"}


@pytest.mark.asyncio
async def test_active_admins_only(store, seed_members, admin_actor):
    directory = MemberDirectory(store)
    await directory.add_member(
        admin_actor,
        MemberCreate(id="A9", display_name="Former Chair", role=ActorRole.ADMIN, status=MemberStatus.INACTIVE),
    )

    assert await directory.list_active_admins() == {"A1": "Amina Juma", "A2": "Baraka Ali"}


@pytest.mark.asyncio
async def test_require_member(store, seed_members):
    directory = MemberDirectory(store)

    assert (await directory.require_member("M")).display_name == "Mary Mushi"
    with pytest.raises(NotFoundError):
        await directory.require_member("ghost")


@pytest.mark.asyncio
async def test_assign_member_codes_skips_taken_codes(store, admin_actor):
    directory = MemberDirectory(store)
    await directory.add_member(admin_actor, MemberCreate(id="P", display_name="Pendo"))
    await directory.add_member(admin_actor, MemberCreate(id="Q", display_name="Queen", member_code="SBK001"))
    await directory.add_member(admin_actor, MemberCreate(id="R", display_name="Rehema"))

    assignments = await directory.assign_member_codes(admin_actor)

    assert {a.member_id: a.member_code for a in assignments} == {"P": "SBK002", "R": "SBK003"}
    assert (await directory.get_member("P")).member_code == "SBK002"
    assert await directory.assign_member_codes(admin_actor) == []

    entries = await store.query(ACTIVITY_COLLECTION, {"action": ActivityAction.MEMBER_CODE_ASSIGNED})
    assert len(entries) == 1
    assert entries[0]["metadata"]["assignments"] == {"P": "SBK002", "R": "SBK003"}


@pytest.mark.asyncio
async def test_seed_members_runs_once(store):
    from vikoba.seed_members import seed_members

    created = await seed_members(store)
    assert [profile.id for profile in created] == ["chair", "treasurer"]
    assert await MemberDirectory(store).list_active_admins() == {
        "chair": "Group Chairperson", "treasurer": "Group Treasurer",
    }

    assert await seed_members(store) == []
