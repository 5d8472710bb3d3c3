"""
Seed script to declare group types and provision role permissions.

Run this script after database initialization to create:
- Group bundles and the audience fields of group content bundles
- The built-in roles of every group bundle
- Initial role-permission assignments
- An optional site admin (OG_ADMIN_EMAIL)

Usage:
    uv run python -m scripts.provision_roles
"""
import asyncio
import os
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.context import OgContext, create_og_context
from organic_groups.core.database.engine import get_db, init_db
from organic_groups.features.groups.service import add_group, add_group_content_field, load_registry
from organic_groups.features.permissions.catalog import ADMINISTRATOR, ANONYMOUS, AUTHENTICATED
from organic_groups.features.permissions.service import ensure_default_roles, grant_permissions
from organic_groups.features.users.models import User
from organic_groups.utils import get_logger


log = get_logger(__name__)


# (entity type, bundle)
GROUP_BUNDLES = [
    ("node", "club"),
]

# (entity type, bundle, target type, field name)
GROUP_CONTENT_BUNDLES = [
    ("node", "article", "node", None),
    ("comment", "newsletter_subscription", "node", None),
]

# Group bundle -> role name -> permissions
DEFAULT_GRANTS = {
    ("node", "club"): {
        ANONYMOUS: [
            "create newsletter_subscription comment",
        ],
        AUTHENTICATED: [
            "create newsletter_subscription comment",
            "update own newsletter_subscription comment",
            "delete own newsletter_subscription comment",
            "create article content",
            "edit own article content",
            "delete own article content",
        ],
        ADMINISTRATOR: [
            "edit any article content",
            "delete any article content",
            "update any newsletter_subscription comment",
            "delete any newsletter_subscription comment",
        ],
    },
}


async def seed_registry(db: AsyncSession, og: OgContext):
    """Declare group bundles and group content audience fields."""
    log.info("Declaring group bundles...")
    for entity_type, bundle in GROUP_BUNDLES:
        if await add_group(db, og, entity_type, bundle):
            log.info(f"Declared group bundle: {entity_type}:{bundle}")
        else:
            log.debug(f"Group bundle '{entity_type}:{bundle}' already exists, skipping")

    for entity_type, bundle, target_type, field_name in GROUP_CONTENT_BUNDLES:
        field = await add_group_content_field(db, og, entity_type, bundle, target_type, field_name=field_name)
        log.info(f"Audience field {field.field_name} on {entity_type}:{bundle} -> {target_type}")


async def seed_roles(db: AsyncSession, og: OgContext):
    """
    Grant the default permission matrix.

    Args:
        db: Database session
        og: Context holding the registry the grants are validated against
    """
    log.info("Granting role permissions...")

    for (group_type, group_bundle), grants in DEFAULT_GRANTS.items():
        roles = await ensure_default_roles(db, og.catalog, og.cache, group_type, group_bundle)
        for role_name, permissions in grants.items():
            role = await grant_permissions(db, og, roles[role_name], permissions)
            log.info(f"Role '{role.id}' has {len(role.get_permissions())} permissions")

    log.info("Role permissions granted successfully")


async def seed_admin(db: AsyncSession, email: str):
    """Create the site admin if it doesn't exist yet."""
    result = await db.execute(select(User).where(User.email == email))
    if result.scalars().first():
        log.debug(f"User '{email}' already exists, skipping")
        return

    db.add(User(email=email, name="Administrator", is_admin=True))
    await db.commit()
    log.info(f"Created site admin: {email}")


async def main():
    """Main function to provision groups and roles."""
    log.info("Starting role provisioning...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    og = create_og_context()

    # Get database session
    async for db in get_db():
        try:
            await load_registry(db, og.registry)
            await seed_registry(db, og)
            await seed_roles(db, og)

            admin_email = os.environ.get("OG_ADMIN_EMAIL")
            if admin_email:
                await seed_admin(db, admin_email)

            log.info("Role provisioning completed successfully!")
            log.info("")
            log.info("Group bundles:")
            for entity_type, bundles in og.registry.get_all_group_bundles().items():
                log.info(f"  - {entity_type}: {', '.join(bundles)}")

        except Exception as e:
            log.error(f"Error provisioning roles: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
