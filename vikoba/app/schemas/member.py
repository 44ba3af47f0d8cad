"""
Member directory and actor schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional
from vikoba.app.models.enums import ActorRole, MemberStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Actor(BaseModel):
    """Already-authenticated caller, as supplied by the identity provider."""
    actor_id: str
    actor_name: str
    role: ActorRole
    group_code: str = "DEFAULT"

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


# Actor used for scheduled jobs that run without a caller
SYSTEM_ACTOR = Actor(actor_id="system", actor_name="System", role=ActorRole.ADMIN)


class MemberCreate(BaseModel):
    """Schema for adding a member to the directory."""
    id: Optional[str] = Field(None, min_length=1, max_length=64)
    display_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    role: ActorRole = ActorRole.MEMBER
    status: MemberStatus = MemberStatus.ACTIVE
    member_code: Optional[str] = Field(None, max_length=20)


class MemberProfile(BaseModel):
    """Directory record for one member of the group."""
    id: Optional[str] = None
    member_code: Optional[str] = None
    display_name: str
    email: Optional[str] = None
    role: ActorRole = ActorRole.MEMBER
    status: MemberStatus = MemberStatus.ACTIVE
    group_code: str = "DEFAULT"
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True


class MemberCodeAssignment(BaseModel):
    member_id: str
    member_code: str
