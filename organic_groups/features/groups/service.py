"""
Keeps the persistent group registry tables and the in-memory GroupRegistry
in sync.
"""
from typing import TYPE_CHECKING, Iterable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.features.groups.models import GroupBundle, GroupContentField
from organic_groups.features.groups.registry import AudienceField, GroupRegistry
from organic_groups.features.permissions.service import delete_roles_for_bundle, ensure_default_roles
from organic_groups.utils import get_logger

if TYPE_CHECKING:
    from organic_groups.core.context import OgContext


log = get_logger(__name__)


async def load_registry(db: AsyncSession, registry: GroupRegistry) -> GroupRegistry:
    """Rebuild the in-memory registry from the database."""
    registry.clear()

    result = await db.execute(select(GroupBundle).order_by(GroupBundle.entity_type, GroupBundle.bundle))
    bundles = result.scalars().all()
    for group_bundle in bundles:
        registry.add_group(group_bundle.entity_type, group_bundle.bundle)

    result = await db.execute(
        select(GroupContentField).order_by(GroupContentField.entity_type, GroupContentField.bundle)
    )
    fields = result.scalars().all()
    for field in fields:
        registry.add_group_content_field(
            field.entity_type,
            field.bundle,
            field.target_type,
            field_name=field.field_name,
            target_bundles=field.target_bundles or (),
        )

    log.info(f"Loaded {len(bundles)} group bundles and {len(fields)} audience fields")
    return registry


async def _get_group_bundle(db: AsyncSession, entity_type: str, bundle: str) -> Optional[GroupBundle]:
    result = await db.execute(
        select(GroupBundle).where(GroupBundle.entity_type == entity_type, GroupBundle.bundle == bundle)
    )
    return result.scalar_one_or_none()


async def _get_content_field(
    db: AsyncSession,
    entity_type: str,
    bundle: str,
    field_name: str,
) -> Optional[GroupContentField]:
    result = await db.execute(
        select(GroupContentField).where(
            GroupContentField.entity_type == entity_type,
            GroupContentField.bundle == bundle,
            GroupContentField.field_name == field_name,
        )
    )
    return result.scalar_one_or_none()


async def add_group(db: AsyncSession, og: "OgContext", entity_type: str, bundle: str) -> bool:
    """
    Declare a bundle a group and provision its default roles.

    Returns:
        True if the bundle was not a group before
    """
    created = False
    if await _get_group_bundle(db, entity_type, bundle) is None:
        db.add(GroupBundle(entity_type=entity_type, bundle=bundle))
        created = True

    og.registry.add_group(entity_type, bundle)
    await ensure_default_roles(db, og.catalog, og.cache, entity_type, bundle)
    await db.commit()
    return created


async def remove_group(db: AsyncSession, og: "OgContext", entity_type: str, bundle: str) -> bool:
    """
    Remove a bundle from groups, deleting its roles (built-in ones included).

    Existing memberships are kept; they lose every role of the bundle.
    """
    group_bundle = await _get_group_bundle(db, entity_type, bundle)
    if group_bundle is not None:
        await db.delete(group_bundle)
        await db.commit()

    removed = og.registry.remove_group(entity_type, bundle)
    count = await delete_roles_for_bundle(db, og, entity_type, bundle)
    log.info(f"Removed group bundle {entity_type}:{bundle} and {count} roles")
    return group_bundle is not None or removed


async def add_group_content_field(
    db: AsyncSession,
    og: "OgContext",
    entity_type: str,
    bundle: str,
    target_type: str,
    field_name: Optional[str] = None,
    target_bundles: Iterable[str] = (),
) -> AudienceField:
    """
    Attach an audience field to a bundle and persist it. The registry
    defines the bundle's permissions in the catalog.

    Raises:
        ConfigurationError: If the registry rejects the field
    """
    audience = og.registry.add_group_content_field(
        entity_type,
        bundle,
        target_type,
        field_name=field_name,
        target_bundles=target_bundles,
    )

    row = await _get_content_field(db, entity_type, bundle, audience.field_name)
    if row is None:
        row = GroupContentField(entity_type=entity_type, bundle=bundle, field_name=audience.field_name)
        db.add(row)
    row.target_type = audience.target_type
    row.target_bundles = list(audience.target_bundles)
    await db.commit()
    return audience


async def remove_group_content_field(
    db: AsyncSession,
    og: "OgContext",
    entity_type: str,
    bundle: str,
    field_name: Optional[str] = None,
) -> bool:
    field_name = field_name or og.registry.default_field
    row = await _get_content_field(db, entity_type, bundle, field_name)
    if row is not None:
        await db.delete(row)
        await db.commit()
    removed = og.registry.remove_group_content_field(entity_type, bundle, field_name)
    return row is not None or removed
