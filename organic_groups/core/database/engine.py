"""
Async engine and sessions for the OG tables.

Sessions never expire objects on commit: memberships, roles and entities
are handed to the access engine after being saved, and attribute access on
an expired object would need an implicit (unsupported) async load.

DATABASE_URL picks the backend; sqlite+aiosqlite by default,
postgresql+asyncpg works without code changes once asyncpg is installed.
"""
from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from organic_groups.core import config


engine = create_async_engine(
    config.SQLALCHEMY_DATABASE_URL,
    # SQLite file connections are cheap; don't pool them across event loops
    poolclass=NullPool if config.SQLALCHEMY_DATABASE_URL.startswith("sqlite") else None,
    echo=False,
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session. Commits what the route left pending (e.g. lazily
    provisioned default roles) and rolls back on error.

    Usage in FastAPI routes:
        @router.get("/{group_type}/{group_bundle}/roles")
        async def list_roles(group_type: str, group_bundle: str, db: AsyncSession = Depends(get_db)):
            return await get_roles_for_bundle(db, group_type, group_bundle)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def import_models() -> None:
    """Import all models so they are registered on Base.metadata."""
    from organic_groups.features.users.models import User  # noqa: F401
    from organic_groups.features.entities.models import Entity  # noqa: F401
    from organic_groups.features.groups.models import GroupBundle, GroupContentField  # noqa: F401
    from organic_groups.features.permissions.models import OgRole  # noqa: F401
    from organic_groups.features.memberships.models import OgMembership  # noqa: F401


async def init_db():
    """
    Create the users, entity, registry, role and membership tables.

    Called from the application startup hook and the provisioning script.
    """
    from organic_groups.core.database.base import Base

    import_models()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
