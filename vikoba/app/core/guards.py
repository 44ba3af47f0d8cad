"""
Security guards for role-based and ownership-based access control.
"""

from fastapi import Depends
from vikoba.app.core.dependencies import get_current_actor
from vikoba.app.core.exceptions import AuthorizationError
from vikoba.app.schemas.member import Actor


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """
    Dependency for admin-only endpoints.

    Usage:
        @router.post("/admin/penalties/sweep")
        async def sweep(admin: Actor = Depends(require_admin)):
            ...
    """
    if not actor.is_admin:
        raise AuthorizationError("Admin access required")
    return actor


def require_self_or_admin(member_id: str, actor: Actor = Depends(get_current_actor)) -> Actor:
    """
    Dependency for endpoints scoped to one member.

    `member_id` is taken from the path, so members reach only their own
    records while admins reach everyone's.
    """
    if not actor.is_admin and actor.actor_id != member_id:
        raise AuthorizationError("You may only access your own records")
    return actor


def enforce_self_or_admin(actor: Actor, member_id: str) -> None:
    """Same check as require_self_or_admin, for resources loaded inside the endpoint."""
    if not actor.is_admin and actor.actor_id != member_id:
        raise AuthorizationError("You may only access your own records")
