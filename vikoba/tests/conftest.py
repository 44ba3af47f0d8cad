"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from vikoba.app.main import app
from vikoba.app.core.config import settings
from vikoba.app.db.document_store import InMemoryDocumentStore, SqlDocumentStore
from vikoba.app.db.session import get_db, create_tables, Base
from vikoba.app.models.enums import ActorRole
from vikoba.app.schemas.member import Actor, MemberCreate
from vikoba.app.services.member_directory import MemberDirectory

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(test_engine)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """Async client for testing, bound to the test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


@pytest.fixture
def sql_store(db_session):
    return SqlDocumentStore(db_session)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


# Actors and tokens

@pytest.fixture
def admin_actor():
    return Actor(actor_id="A1", actor_name="Amina Juma", role=ActorRole.ADMIN)


@pytest.fixture
def second_admin_actor():
    return Actor(actor_id="A2", actor_name="Baraka Ali", role=ActorRole.ADMIN)


@pytest.fixture
def member_actor():
    return Actor(actor_id="M", actor_name="Mary Mushi", role=ActorRole.MEMBER)


def make_token(actor_id: str, name: str, role: str, group: str = "DEFAULT") -> str:
    return jwt.encode(
        {"sub": actor_id, "name": name, "role": role, "group": group},
        settings.secret_key,
        algorithm=settings.algorithm,
    )


@pytest.fixture
def auth_headers():
    """Factory for bearer headers: auth_headers("A1", "Admin")."""
    def _headers(actor_id: str, role: str = "Member", name: str = None, group: str = "DEFAULT") -> dict:
        token = make_token(actor_id, name or actor_id, role, group)
        return {"Authorization": f"Bearer {token}"}
    return _headers


# Directory seed shared by the domain tests

@pytest.fixture
async def seed_members(store, admin_actor):
    """
    Two active admins (A1, A2) and three members:
    M (SBK001), X (SBK002) and Y (SBK003).
    """
    directory = MemberDirectory(store)
    people = [
        MemberCreate(id="A1", display_name="Amina Juma", role=ActorRole.ADMIN, member_code="SBK010"),
        MemberCreate(id="A2", display_name="Baraka Ali", role=ActorRole.ADMIN, member_code="SBK011"),
        MemberCreate(id="M", display_name="Mary Mushi", member_code="SBK001"),
        MemberCreate(id="X", display_name="Xavier Kimaro", member_code="SBK002"),
        MemberCreate(id="Y", display_name="Yusuf Said", member_code="SBK003"),
    ]
    profiles = {}
    for person in people:
        profile = await directory.add_member(admin_actor, person)
        profiles[profile.id] = profile
    return profiles
