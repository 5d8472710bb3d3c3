"""Global test fixtures for the organic groups test suite."""

from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from organic_groups.core.context import create_og_context
from organic_groups.core.database.base import Base
from organic_groups.core.database.engine import import_models
from organic_groups.features.entities.service import create_entity
from organic_groups.features.groups.service import add_group, add_group_content_field
from organic_groups.features.memberships.service import create_membership, save_membership
from organic_groups.features.permissions.catalog import ADMINISTRATOR, ANONYMOUS, AUTHENTICATED
from organic_groups.features.permissions.service import ensure_default_roles, grant_permissions
from organic_groups.features.users.models import User

# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# OG Fixtures
# ============================================================================


@pytest.fixture
def og():
    """A fresh OgContext; owners are not auto-subscribed to their groups."""
    return create_og_context(
        cache_enabled=True,
        group_manager_full_access=False,
        create_manager_membership=False,
    )


@pytest.fixture
def make_user(db):
    async def _make_user(name: str, is_admin: bool = False) -> User:
        user = User(email=f"{name}@example.com", name=name, is_admin=is_admin)
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_content(db, og):
    async def _make_content(entity_type, bundle, owner, *groups, field_name="og_group_ref", label=""):
        references = {field_name: [group.id for group in groups]} if groups else {}
        return await create_entity(
            db,
            og,
            entity_type,
            bundle,
            label=label or f"{bundle} by {owner.name}",
            owner=owner,
            references=references,
        )

    return _make_content


async def declare_club(db, og):
    """
    Declare node:club as a group with two group content bundles:
    node:article and comment:newsletter_subscription.
    """
    await add_group(db, og, "node", "club")
    await add_group_content_field(db, og, "node", "article", "node")
    await add_group_content_field(db, og, "comment", "newsletter_subscription", "node")
    return await ensure_default_roles(db, og.catalog, og.cache, "node", "club")


@pytest_asyncio.fixture
async def club(db, og, make_user):
    """
    A club group with the newsletter / article permission matrix:

    - non-member: create newsletter_subscription comment
    - member: create, update own, delete own newsletter_subscription comment;
      create article content, delete own article content
    - administrator: edit any article content
    """
    roles = await declare_club(db, og)
    await grant_permissions(db, og, roles[ANONYMOUS], ["create newsletter_subscription comment"])
    await grant_permissions(db, og, roles[AUTHENTICATED], [
        "create newsletter_subscription comment",
        "update own newsletter_subscription comment",
        "delete own newsletter_subscription comment",
        "create article content",
        "delete own article content",
    ])
    await grant_permissions(db, og, roles[ADMINISTRATOR], ["edit any article content"])

    owner = await make_user("owner")
    member = await make_user("member")
    other_member = await make_user("other_member")
    group_admin = await make_user("group_admin")
    outsider = await make_user("outsider")

    group = await create_entity(db, og, "node", "club", label="Chess club", owner=owner)
    for user in (member, other_member):
        await save_membership(db, og, create_membership(og, user, group))
    await save_membership(db, og, create_membership(og, group_admin, group, roles=[roles[ADMINISTRATOR]]))

    return SimpleNamespace(
        group=group,
        roles=roles,
        owner=owner,
        member=member,
        other_member=other_member,
        group_admin=group_admin,
        outsider=outsider,
    )
