"""
Role provisioning and administration.

Every function that writes a role invalidates the access cache for the
role's group bundle.
"""
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.exceptions import ConfigurationError, RoleLocked, UnknownPermission
from organic_groups.features.access.cache import AccessCache
from organic_groups.features.memberships.models import OgMembership, og_membership_roles
from organic_groups.features.permissions.catalog import Permission, PermissionCatalog
from organic_groups.features.permissions.models import (
    DEFAULT_ROLES,
    OgRole,
    RoleType,
    make_role_id,
)
from organic_groups.utils import get_logger

if TYPE_CHECKING:
    from organic_groups.core.context import OgContext


log = get_logger(__name__)


def available_permissions(og: "OgContext", group_type: str, group_bundle: str) -> List[Permission]:
    """
    Permissions that make sense for roles of a group bundle.

    Includes:
    1. Group-level permissions
    2. Group content permissions of every bundle with an audience field
       targeting this group bundle
    """
    permissions = og.catalog.group_permissions()
    seen = set()
    for field in og.registry.get_fields_targeting(group_type, group_bundle):
        key = (field.entity_type, field.bundle)
        if key in seen:
            continue
        seen.add(key)
        permissions.extend(og.catalog.define_permissions(*key))
    return permissions


async def get_role(db: AsyncSession, role_id: str) -> Optional[OgRole]:
    return await db.get(OgRole, role_id)


async def get_roles_for_bundle(db: AsyncSession, group_type: str, group_bundle: str) -> List[OgRole]:
    result = await db.execute(
        select(OgRole)
        .where(OgRole.group_type == group_type, OgRole.group_bundle == group_bundle)
        .order_by(OgRole.weight, OgRole.name)
    )
    return list(result.scalars().all())


async def ensure_default_roles(
    db: AsyncSession,
    catalog: PermissionCatalog,
    cache: AccessCache,
    group_type: str,
    group_bundle: str,
) -> Dict[str, OgRole]:
    """
    Create the built-in roles of a group bundle if they are missing.

    New roles get the default grants of the group-level permissions. Only
    flushes; the caller's transaction decides when to commit.

    Returns:
        Dictionary of role name -> OgRole for every role of the bundle
    """
    roles = {role.name: role for role in await get_roles_for_bundle(db, group_type, group_bundle)}
    group_permissions = catalog.group_permissions()

    created = []
    for name, (role_type, label, weight) in DEFAULT_ROLES.items():
        if name in roles:
            continue
        role = OgRole(
            id=make_role_id(group_type, group_bundle, name),
            name=name,
            label=label,
            group_type=group_type,
            group_bundle=group_bundle,
            role_type=role_type,
            is_admin=role_type == RoleType.ADMINISTRATOR,
            weight=weight,
            permissions=catalog.default_permissions(name, group_permissions),
        )
        db.add(role)
        roles[name] = role
        created.append(name)

    if created:
        await db.flush()
        cache.invalidate_group_bundle(group_type, group_bundle)
        log.info(f"Provisioned default roles {created} for {group_type}:{group_bundle}")

    return roles


async def save_role(db: AsyncSession, og: "OgContext", role: OgRole) -> OgRole:
    """Persist a role and drop cached decisions for its group bundle."""
    db.add(role)
    await db.commit()
    await db.refresh(role)
    og.cache.invalidate_group_bundle(role.group_type, role.group_bundle)
    log.debug(f"Saved role {role.id} with {len(role.get_permissions())} permissions")
    return role


async def create_role(
    db: AsyncSession,
    og: "OgContext",
    group_type: str,
    group_bundle: str,
    name: str,
    label: Optional[str] = None,
    permissions: Iterable[str] = (),
    weight: Optional[int] = None,
) -> OgRole:
    """
    Create a custom role for a group bundle.

    Raises:
        ConfigurationError: If the bundle is not a group or the name is reserved
        UnknownPermission: If a permission does not apply to the bundle
        IntegrityError: If the role already exists
    """
    if not og.registry.is_group(group_type, group_bundle):
        raise ConfigurationError(
            f"{group_type}:{group_bundle} is not a group",
            {"group_type": group_type, "group_bundle": group_bundle},
        )
    if name in DEFAULT_ROLES:
        raise ConfigurationError(f"Role name '{name}' is reserved", {"name": name})

    permissions = list(permissions)
    _check_permissions(og, group_type, group_bundle, permissions)

    if weight is None:
        existing = await get_roles_for_bundle(db, group_type, group_bundle)
        weight = max((role.weight for role in existing), default=len(DEFAULT_ROLES) - 1) + 1

    role = OgRole(
        id=make_role_id(group_type, group_bundle, name),
        name=name,
        label=label or name,
        group_type=group_type,
        group_bundle=group_bundle,
        role_type=RoleType.STANDARD,
        is_admin=False,
        weight=weight,
        permissions=[],
    )
    for permission in permissions:
        role.grant_permission(permission)
    return await save_role(db, og, role)


async def grant_permissions(
    db: AsyncSession,
    og: "OgContext",
    role: OgRole,
    permissions: Iterable[str],
    validate: bool = True,
) -> OgRole:
    """
    Grant permissions to a role and save it. Already granted ones are skipped.

    Raises:
        UnknownPermission: If validating and a permission does not apply to
            the role's bundle
    """
    permissions = list(permissions)
    if validate:
        _check_permissions(og, role.group_type, role.group_bundle, permissions)
    for permission in permissions:
        role.grant_permission(permission)
    return await save_role(db, og, role)


async def revoke_permissions(
    db: AsyncSession,
    og: "OgContext",
    role: OgRole,
    permissions: Iterable[str],
) -> OgRole:
    """Revoke permissions from a role and save it. Missing ones are ignored."""
    for permission in permissions:
        role.revoke_permission(permission)
    return await save_role(db, og, role)


async def delete_role(db: AsyncSession, og: "OgContext", role: OgRole, force: bool = False) -> None:
    """
    Delete a role, revoking it from every membership that holds it.

    Args:
        force: Allow deleting a built-in role (used when a group bundle is removed)

    Raises:
        RoleLocked: If the role is built-in and force is not set
    """
    if role.is_locked and not force:
        raise RoleLocked(f"Role {role.id} is a built-in role", {"role_id": role.id})

    result = await db.execute(
        select(OgMembership)
        .join(og_membership_roles, og_membership_roles.c.membership_id == OgMembership.id)
        .where(og_membership_roles.c.role_id == role.id)
    )
    memberships = result.scalars().all()
    for membership in memberships:
        membership.revoke_role(role)

    await db.delete(role)
    await db.commit()

    og.cache.invalidate_group_bundle(role.group_type, role.group_bundle)
    log.info(f"Deleted role {role.id}, revoked from {len(memberships)} memberships")


async def delete_roles_for_bundle(db: AsyncSession, og: "OgContext", group_type: str, group_bundle: str) -> int:
    roles = await get_roles_for_bundle(db, group_type, group_bundle)
    for role in roles:
        await delete_role(db, og, role, force=True)
    return len(roles)


def _check_permissions(og: "OgContext", group_type: str, group_bundle: str, permissions: List[str]) -> None:
    known = {p.name for p in available_permissions(og, group_type, group_bundle)}
    unknown = [p for p in permissions if p not in known]
    if unknown:
        raise UnknownPermission(
            f"Permissions not available for {group_type}:{group_bundle}: {', '.join(unknown)}",
            {"permissions": unknown},
        )
