"""
Membership manager: create, save, look up and delete OG memberships.

Saving or deleting a membership invalidates the access cache for the group
and for the member.
"""
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.exceptions import InvalidMembership
from organic_groups.features.entities.models import Entity
from organic_groups.features.memberships.models import MembershipState, OgMembership, TYPE_DEFAULT
from organic_groups.features.permissions.models import OgRole
from organic_groups.features.permissions.service import ensure_default_roles
from organic_groups.utils import get_logger

if TYPE_CHECKING:
    from organic_groups.core.context import OgContext


log = get_logger(__name__)


def create_membership(
    og: "OgContext",
    user,
    group,
    field_name: Optional[str] = None,
    state: MembershipState | str = MembershipState.ACTIVE,
    membership_type: str = TYPE_DEFAULT,
    roles: Iterable[OgRole] = (),
) -> OgMembership:
    """
    Build an unsaved membership of `user` in `group`.

    Raises:
        InvalidMembership: If the user is anonymous, the group entity is not
            a group, or a role belongs to another group bundle
    """
    if not og.registry.resolve_group(group):
        raise InvalidMembership(
            f"The entity {group.label or group.id} is not a group.",
            {"entity_type": group.entity_type, "bundle": group.bundle},
        )

    roles = list(roles)
    for role in roles:
        if (role.group_type, role.group_bundle) != (group.entity_type, group.bundle):
            raise InvalidMembership(
                f"Role {role.id} does not belong to {group.entity_type}:{group.bundle}",
                {"role_id": role.id},
            )

    membership = OgMembership(type=membership_type)
    return (
        membership
        .set_user(user)
        .set_group(group)
        .set_field_name(field_name or og.registry.default_field)
        .set_state(state)
        .set_roles(roles)
    )


async def save_membership(db: AsyncSession, og: "OgContext", membership: OgMembership) -> OgMembership:
    """
    Validate and persist a membership.

    Raises:
        InvalidMembership: If pre-save validation fails
    """
    membership.pre_save()
    db.add(membership)
    await db.commit()
    await db.refresh(membership)

    og.cache.invalidate_group(membership.group_type, membership.group_id)
    og.cache.invalidate_user(membership.uid)
    log.info(
        f"Saved membership {membership.id} of user {membership.uid} in "
        f"{membership.group_type}:{membership.group_id} ({membership.state.value})"
    )
    return membership


async def get_membership_by_id(db: AsyncSession, membership_id: str) -> Optional[OgMembership]:
    return await db.get(OgMembership, membership_id)


async def get_membership(
    db: AsyncSession,
    user_id: Optional[str],
    group_type: str,
    group_id: str,
    field_name: Optional[str] = None,
    states: Optional[Iterable[MembershipState]] = None,
) -> Optional[OgMembership]:
    """
    Get the membership of a user in a group.

    Without `field_name` any channel matches; the oldest membership wins.
    """
    if not user_id:
        return None
    memberships = await get_memberships(
        db,
        user_id=user_id,
        group_type=group_type,
        group_id=group_id,
        field_name=field_name,
        states=states,
        limit=1,
    )
    return memberships[0] if memberships else None


async def get_memberships(
    db: AsyncSession,
    user_id: Optional[str] = None,
    group_type: Optional[str] = None,
    group_id: Optional[str] = None,
    field_name: Optional[str] = None,
    states: Optional[Iterable[MembershipState]] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[OgMembership]:
    stmt = select(OgMembership)
    if user_id is not None:
        stmt = stmt.where(OgMembership.uid == user_id)
    if group_type is not None:
        stmt = stmt.where(OgMembership.group_type == group_type)
    if group_id is not None:
        stmt = stmt.where(OgMembership.group_id == group_id)
    if field_name is not None:
        stmt = stmt.where(OgMembership.field_name == field_name)
    if states is not None:
        stmt = stmt.where(OgMembership.state.in_([MembershipState(s) for s in states]))

    stmt = stmt.order_by(OgMembership.created_at, OgMembership.id).offset(skip)
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_user_groups(
    db: AsyncSession,
    user_id: Optional[str],
    states: Iterable[MembershipState] = (MembershipState.ACTIVE,),
    field_name: Optional[str] = None,
) -> Dict[str, List[str]]:
    """
    Groups a user is a member of.

    Returns:
        Dictionary of group entity type -> group ids, in membership order
    """
    if not user_id:
        return {}
    groups: Dict[str, List[str]] = {}
    for membership in await get_memberships(db, user_id=user_id, field_name=field_name, states=states):
        ids = groups.setdefault(membership.group_type, [])
        if membership.group_id not in ids:
            ids.append(membership.group_id)
    return groups


async def get_membership_roles(db: AsyncSession, og: "OgContext", membership: OgMembership) -> List[OgRole]:
    """
    Effective roles of a membership, the implicit defaults of its state included.

    Raises:
        InvalidMembership: If the membership's group no longer exists
    """
    group = await db.get(Entity, membership.group_id)
    if group is None or group.entity_type != membership.group_type:
        raise InvalidMembership(
            f"The group {membership.group_type}:{membership.group_id} of membership {membership.id} does not exist.",
            {"membership_id": membership.id},
        )
    default_roles = await ensure_default_roles(db, og.catalog, og.cache, group.entity_type, group.bundle)
    return membership.get_effective_roles(default_roles)


async def membership_has_permission(
    db: AsyncSession,
    og: "OgContext",
    membership: OgMembership,
    permission: str,
) -> bool:
    """True if any effective role of the membership grants the permission."""
    return any(role.has_permission(permission) for role in await get_membership_roles(db, og, membership))


async def delete_membership(db: AsyncSession, og: "OgContext", membership: OgMembership) -> None:
    await db.delete(membership)
    await db.commit()
    og.cache.invalidate_group(membership.group_type, membership.group_id)
    og.cache.invalidate_user(membership.uid)
    log.info(f"Deleted membership {membership.id}")


async def delete_memberships(
    db: AsyncSession,
    og: "OgContext",
    user_id: Optional[str] = None,
    group_type: Optional[str] = None,
    group_id: Optional[str] = None,
    commit: bool = True,
) -> int:
    """
    Delete every membership matching the filters.

    Used when a group entity or a user is deleted.
    """
    if user_id is None and group_id is None:
        raise ValueError("Either user_id or group_id is required")

    memberships = await get_memberships(db, user_id=user_id, group_type=group_type, group_id=group_id)
    for membership in memberships:
        await db.delete(membership)
    if commit:
        await db.commit()

    if user_id is not None:
        og.cache.invalidate_user(user_id)
    if group_id is not None and group_type is not None:
        og.cache.invalidate_group(group_type, group_id)
    elif group_id is not None:
        og.cache.reset()
    log.info(f"Deleted {len(memberships)} memberships (user={user_id}, group={group_type}:{group_id})")
    return len(memberships)
