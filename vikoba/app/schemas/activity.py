"""
Activity log schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Any, Dict, Optional
from vikoba.app.models.enums import ActivityStatus, ActorRole, EntityType
from vikoba.app.schemas.ledger import as_utc
from vikoba.app.schemas.member import utcnow


class ActivityLogEntry(BaseModel):
    """Immutable record of one mutating action."""
    id: Optional[str] = None
    actor_id: str
    actor_name: str
    actor_role: ActorRole
    action: str
    entity_type: EntityType
    entity_id: str
    affected_member_id: Optional[str] = None
    description: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    status: ActivityStatus = ActivityStatus.SUCCESS
    failure_reason: Optional[str] = None
    group_code: str = "DEFAULT"
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    @classmethod
    def _aware(cls, value):
        return as_utc(value)


class ActivityFilter(BaseModel):
    group_code: Optional[str] = None
    actor_id: Optional[str] = None
    action: Optional[str] = None
    entity_type: Optional[EntityType] = None
    affected_member_id: Optional[str] = None
    status: Optional[ActivityStatus] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = Field(None, ge=1, le=1000)

    @field_validator("start", "end")
    @classmethod
    def _aware(cls, value):
        return as_utc(value)


class ActivityStats(BaseModel):
    group_code: str
    total: int = 0
    by_action: Dict[str, int] = Field(default_factory=dict)
    by_actor: Dict[str, int] = Field(default_factory=dict)
    failed_count: int = 0
    success_rate: float = 0.0
