"""
Entity persistence with audience validation and access cache hooks.
"""
from typing import TYPE_CHECKING, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.exceptions import InvalidGroupReference
from organic_groups.features.entities.models import Entity
from organic_groups.features.memberships.service import create_membership, delete_memberships, save_membership
from organic_groups.features.permissions.catalog import ADMINISTRATOR
from organic_groups.features.permissions.service import ensure_default_roles
from organic_groups.features.users.models import is_anonymous
from organic_groups.utils import get_logger

if TYPE_CHECKING:
    from organic_groups.core.context import OgContext


log = get_logger(__name__)


async def get_entity(db: AsyncSession, entity_type: str, entity_id: str) -> Optional[Entity]:
    entity = await db.get(Entity, entity_id)
    if entity is None or entity.entity_type != entity_type:
        return None
    return entity


async def get_entities(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    bundle: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Entity]:
    stmt = select(Entity)
    if entity_type is not None:
        stmt = stmt.where(Entity.entity_type == entity_type)
    if bundle is not None:
        stmt = stmt.where(Entity.bundle == bundle)
    result = await db.execute(stmt.order_by(Entity.id).offset(skip).limit(limit))
    return list(result.scalars().all())


async def validate_audience(db: AsyncSession, og: "OgContext", entity: Entity) -> None:
    """
    Check that every audience field value references an existing group.

    Raises:
        InvalidGroupReference: If a referenced entity is missing, is not a
            group, or is of a bundle the field does not accept
    """
    for field in og.registry.get_audience_fields(entity.entity_type, entity.bundle):
        for group_id in entity.get_referenced_ids(field.field_name):
            target = await get_entity(db, field.target_type, group_id)
            if target is None:
                raise InvalidGroupReference(
                    f"The entity {group_id} does not exist.",
                    {"field_name": field.field_name, "entity_id": group_id},
                )
            if not og.registry.resolve_group(target):
                raise InvalidGroupReference(
                    f"The entity {target.label or target.id} is not a group.",
                    {"field_name": field.field_name, "entity_id": group_id},
                )
            if field.target_bundles and target.bundle not in field.target_bundles:
                raise InvalidGroupReference(
                    f"The entity {target.label or target.id} is not a valid group for {field.field_name}.",
                    {"field_name": field.field_name, "entity_id": group_id, "bundle": target.bundle},
                )


async def create_entity(
    db: AsyncSession,
    og: "OgContext",
    entity_type: str,
    bundle: str,
    label: str = "",
    owner=None,
    references: Optional[Dict[str, List[str]]] = None,
) -> Entity:
    """
    Create an entity.

    If the entity is a group and has an owner, the owner is subscribed as
    the group's administrator (unless disabled on the context).

    Raises:
        InvalidGroupReference: If an audience field references a non-group
    """
    entity = Entity(
        entity_type=entity_type,
        bundle=bundle,
        label=label,
        owner_id=None if is_anonymous(owner) else owner.id,
        references={field: list(ids) for field, ids in (references or {}).items()},
    )
    await validate_audience(db, og, entity)

    db.add(entity)
    await db.commit()
    await db.refresh(entity)
    og.cache.invalidate_entity(entity.entity_type, entity.id)
    log.info(f"Created entity {entity.entity_type}:{entity.bundle} {entity.id}")

    if og.create_manager_membership and entity.owner_id and og.registry.resolve_group(entity):
        roles = await ensure_default_roles(db, og.catalog, og.cache, entity_type, bundle)
        membership = create_membership(og, owner, entity, roles=[roles[ADMINISTRATOR]])
        await save_membership(db, og, membership)
        log.info(f"Subscribed owner {entity.owner_id} as administrator of {entity.entity_type}:{entity.id}")

    return entity


async def update_entity(
    db: AsyncSession,
    og: "OgContext",
    entity: Entity,
    label: Optional[str] = None,
    owner_id: Optional[str] = None,
    references: Optional[Dict[str, List[str]]] = None,
) -> Entity:
    """
    Update label, owner or audience references.

    Raises:
        InvalidGroupReference: If an audience field references a non-group;
            the entity is left unchanged
    """
    if references is not None:
        candidate = Entity(
            entity_type=entity.entity_type,
            bundle=entity.bundle,
            references=dict(entity.references or {}),
        )
        for field_name, ids in references.items():
            candidate.set_references(field_name, ids)
        await validate_audience(db, og, candidate)
        entity.references = candidate.references

    if label is not None:
        entity.label = label
    if owner_id is not None:
        entity.owner_id = owner_id

    await db.commit()
    await db.refresh(entity)
    og.cache.invalidate_entity(entity.entity_type, entity.id)
    return entity


async def delete_entity(db: AsyncSession, og: "OgContext", entity: Entity) -> None:
    """Delete an entity; deleting a group deletes its memberships too."""
    if og.registry.resolve_group(entity):
        await delete_memberships(db, og, group_type=entity.entity_type, group_id=entity.id, commit=False)

    await db.delete(entity)
    await db.commit()
    og.cache.invalidate_entity(entity.entity_type, entity.id)
    log.info(f"Deleted entity {entity.entity_type}:{entity.id}")
