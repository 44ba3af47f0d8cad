"""
Request dependencies for FastAPI.

Resolves the calling actor from the bearer token and binds a document
store to the request's database session.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from vikoba.app.core.config import settings
from vikoba.app.core.jwt import decode_access_token
from vikoba.app.db.document_store import DocumentStore, SqlDocumentStore
from vikoba.app.db.session import get_db
from vikoba.app.models.enums import ActorRole
from vikoba.app.schemas.member import Actor

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    """
    FastAPI dependency for the authenticated caller.

    The identity provider is trusted: a token with a valid signature is
    enough, no directory lookup is made.

    Returns:
        Actor built from the token claims (sub, name, role, group)

    Raises:
        HTTPException: 401 if the token is invalid or lacks required claims
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    actor_id = payload.get("sub")
    try:
        role = ActorRole(payload.get("role"))
    except ValueError:
        role = None
    if not actor_id or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Actor(
        actor_id=str(actor_id),
        actor_name=payload.get("name") or str(actor_id),
        role=role,
        group_code=payload.get("group") or settings.default_group_code,
    )


async def get_store(db: AsyncSession = Depends(get_db)) -> DocumentStore:
    return SqlDocumentStore(db)
