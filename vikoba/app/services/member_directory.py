"""
Member directory.

Resolves the external member codes used on paper sheets (SBK001, ...) to
member ids, supplies the active admin snapshot for loan requests, and
assigns codes in sign-up order.
"""

import logging
from typing import Dict, List, Optional

from vikoba.app.core.config import Settings, settings as default_settings
from vikoba.app.core.exceptions import NotFoundError, PreconditionFailed, ValidationError
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.models.enums import ActorRole, EntityType, MemberStatus
from vikoba.app.schemas.member import Actor, MemberCodeAssignment, MemberCreate, MemberProfile
from vikoba.app.services.audit import ActivityAction, log_event

logger = logging.getLogger("vikoba.members")

MEMBER_COLLECTION = "members"


class MemberDirectory:

    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings

    def format_member_code(self, number: int) -> str:
        return f"{self.settings.member_code_prefix}{number:03d}"

    async def add_member(self, actor: Actor, payload: MemberCreate) -> MemberProfile:
        if payload.member_code and await self.resolve_member_code(payload.member_code):
            raise ValidationError(
                f"Member code {payload.member_code} is already taken",
                details={"member_code": payload.member_code},
            )

        profile = MemberProfile(
            id=payload.id,
            member_code=payload.member_code.upper() if payload.member_code else None,
            display_name=payload.display_name,
            email=payload.email,
            role=payload.role,
            status=payload.status,
            group_code=actor.group_code,
        )
        member_id = await self.store.put(
            MEMBER_COLLECTION,
            profile.model_dump(mode="json", exclude={"id"}),
            doc_id=payload.id,
        )
        profile.id = member_id

        await log_event(
            self.store,
            actor,
            ActivityAction.MEMBER_ADDED,
            EntityType.MEMBER,
            member_id,
            f"Added {profile.role.value.lower()} {profile.display_name}",
            affected_member_id=member_id,
            after={"display_name": profile.display_name, "role": profile.role.value},
        )
        logger.info("Member %s added to group %s", member_id, actor.group_code)
        return profile

    async def get_member(self, member_id: str) -> MemberProfile:
        document = await self.store.get(MEMBER_COLLECTION, member_id)
        return MemberProfile.model_validate(document)

    async def list_members(self, status: Optional[MemberStatus] = None) -> List[MemberProfile]:
        filters = {"status": status} if status else None
        documents = await self.store.query(MEMBER_COLLECTION, filters)
        members = [MemberProfile.model_validate(document) for document in documents]
        members.sort(key=lambda member: member.created_at)
        return members

    async def resolve_member_code(self, member_code: str) -> Optional[MemberProfile]:
        """Case-insensitive lookup of a member by their external code."""
        wanted = member_code.strip().upper()
        if not wanted:
            return None
        for member in await self.list_members():
            if member.member_code and member.member_code.upper() == wanted:
                return member
        return None

    async def code_index(self) -> Dict[str, MemberProfile]:
        """Upper-cased member code -> profile, for batch lookups."""
        return {
            member.member_code.upper(): member
            for member in await self.list_members()
            if member.member_code
        }

    async def list_active_admins(self) -> Dict[str, str]:
        """Admin id -> display name for every active admin."""
        documents = await self.store.query(
            MEMBER_COLLECTION,
            {"role": ActorRole.ADMIN, "status": MemberStatus.ACTIVE},
        )
        return {document["id"]: document["display_name"] for document in documents}

    async def assign_member_codes(self, actor: Actor) -> List[MemberCodeAssignment]:
        """
        Give every member without a code the next free one, in sign-up order.

        Codes already taken are skipped, so running this twice assigns
        nothing the second time.
        """
        members = await self.list_members()
        taken = {member.member_code.upper() for member in members if member.member_code}

        assignments = []
        number = 1
        for member in members:
            if member.member_code:
                continue
            while self.format_member_code(number) in taken:
                number += 1
            code = self.format_member_code(number)

            try:
                await self.store.update_if(
                    MEMBER_COLLECTION,
                    member.id,
                    lambda current: not current.get("member_code"),
                    {"member_code": code},
                )
            except PreconditionFailed:
                logger.info("Member %s received a code concurrently, skipping", member.id)
                continue
            taken.add(code)
            assignments.append(MemberCodeAssignment(member_id=member.id, member_code=code))
            number += 1

        if assignments:
            await log_event(
                self.store,
                actor,
                ActivityAction.MEMBER_CODE_ASSIGNED,
                EntityType.MEMBER,
                "member-codes",
                f"Assigned {len(assignments)} member codes",
                metadata={"assignments": {a.member_id: a.member_code for a in assignments}},
            )
        return assignments

    async def require_member(self, member_id: str) -> MemberProfile:
        try:
            return await self.get_member(member_id)
        except NotFoundError:
            raise NotFoundError("Member", member_id) from None
