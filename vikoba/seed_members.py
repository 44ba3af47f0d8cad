"""
Directory seeding script for a new group.

Creates the founding chairperson and treasurer as admins so that loan
requests have approvers. Run once after the database is set up.
"""

import asyncio
from typing import List

from vikoba.app.db.document_store import DocumentStore, SqlDocumentStore
from vikoba.app.db.session import AsyncSessionLocal, create_tables, engine
from vikoba.app.models.enums import ActorRole
from vikoba.app.schemas.member import SYSTEM_ACTOR, MemberCreate, MemberProfile
from vikoba.app.services.member_directory import MemberDirectory

FOUNDING_ADMINS = [
    MemberCreate(id="chair", display_name="Group Chairperson", role=ActorRole.ADMIN, member_code="SBK001"),
    MemberCreate(id="treasurer", display_name="Group Treasurer", role=ActorRole.ADMIN, member_code="SBK002"),
]


async def seed_members(store: DocumentStore) -> List[MemberProfile]:
    """
    Add the founding admins unless the group already has an active admin.

    Returns:
        Profiles created by this run
    """
    directory = MemberDirectory(store)
    if await directory.list_active_admins():
        print("ℹ️  Group already has admins, skipping seeding")
        return []

    created = []
    for payload in FOUNDING_ADMINS:
        profile = await directory.add_member(SYSTEM_ACTOR, payload)
        created.append(profile)
        print(f"✅ Created admin {profile.display_name} ({profile.member_code})")
    return created


async def main():
    await create_tables(engine)
    async with AsyncSessionLocal() as db:
        await seed_members(SqlDocumentStore(db))
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
