"""
Membership management API routes.

Group-level permissions decide who may do what:
- subscribing oneself needs "subscribe" (pending) or
  "subscribe without approval" (active)
- subscribing someone else needs "add user" or "manage members"
- changing state needs "approve and deny subscription" or "manage members"
- changing roles needs "manage members"
- unsubscribing oneself needs "unsubscribe"
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.context import OgContext, get_og
from organic_groups.core.database.engine import get_db
from organic_groups.features.entities.models import Entity
from organic_groups.features.entities.service import get_entity
from organic_groups.features.memberships.models import MembershipState, OgMembership
from organic_groups.features.memberships.schemas import (
    MembershipCreate,
    MembershipResponse,
    MembershipRoleAssign,
    MembershipStateUpdate,
)
from organic_groups.features.memberships.service import (
    create_membership,
    delete_membership,
    get_membership,
    get_membership_by_id,
    get_memberships,
    get_user_groups,
    save_membership,
)
from organic_groups.features.permissions.service import ensure_default_roles, get_role
from organic_groups.features.users.dependencies import get_current_user
from organic_groups.features.users.models import User
from organic_groups.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _get_group_or_404(db: AsyncSession, og: OgContext, group_type: str, group_id: str) -> Entity:
    group = await get_entity(db, group_type, group_id)
    if group is None or not og.registry.resolve_group(group):
        raise HTTPException(status_code=404, detail="Group not found")
    return group


async def _get_membership_or_404(db: AsyncSession, membership_id: str) -> OgMembership:
    membership = await get_membership_by_id(db, membership_id)
    if membership is None:
        raise HTTPException(status_code=404, detail="Membership not found")
    return membership


async def _require_group_permission(
    db: AsyncSession,
    og: OgContext,
    group: Entity,
    user: User,
    permissions: List[str],
) -> None:
    result = await og.access.user_access(db, group, permissions, user)
    if not result.is_allowed():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied: requires one of {permissions}"
        )


# ============================================================================
# Membership Routes
# ============================================================================

@router.post("/", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def subscribe(
    data: MembershipCreate,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_user)
):
    """Subscribe a user to a group."""
    group = await _get_group_or_404(db, og, data.group_type, data.group_id)

    member = await db.get(User, data.user_id)
    if member is None:
        raise HTTPException(status_code=404, detail="User not found")

    state = data.state
    if member.id == current_user.id and not data.roles:
        without_approval = await og.access.user_access(db, group, "subscribe without approval", current_user)
        if without_approval.is_allowed():
            state = state or MembershipState.ACTIVE
        else:
            await _require_group_permission(db, og, group, current_user, ["subscribe"])
            if state not in (None, MembershipState.PENDING):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Membership requires approval"
                )
            state = MembershipState.PENDING
    else:
        await _require_group_permission(db, og, group, current_user, ["add user", "manage members"])
        state = state or MembershipState.ACTIVE

    field_name = data.field_name or og.registry.default_field
    if await get_membership(db, member.id, group.entity_type, group.id, field_name) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already subscribed to this group"
        )

    bundle_roles = await ensure_default_roles(db, og.catalog, og.cache, group.entity_type, group.bundle)
    unknown = [name for name in data.roles if name not in bundle_roles]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown roles: {', '.join(unknown)}")

    membership = create_membership(
        og,
        member,
        group,
        field_name=field_name,
        state=state,
        membership_type=data.type,
        roles=[bundle_roles[name] for name in data.roles],
    )
    membership = await save_membership(db, og, membership)
    log.info(f"User {current_user.id} subscribed {member.id} to {group.entity_type}:{group.id}")
    return membership


@router.get("/", response_model=List[MembershipResponse])
async def list_memberships(
    user_id: Optional[str] = None,
    group_type: Optional[str] = None,
    group_id: Optional[str] = None,
    state: Optional[MembershipState] = None,
    field_name: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List memberships with optional filtering."""
    return await get_memberships(
        db,
        user_id=user_id,
        group_type=group_type,
        group_id=group_id,
        field_name=field_name,
        states=[state] if state else None,
        skip=skip,
        limit=limit,
    )


@router.get("/users/{user_id}/groups", response_model=dict[str, list[str]])
async def list_user_groups(
    user_id: str,
    state: List[MembershipState] = Query([MembershipState.ACTIVE]),
    field_name: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Groups a user belongs to, by group entity type."""
    return await get_user_groups(db, user_id, states=state, field_name=field_name)


@router.get("/{membership_id}", response_model=MembershipResponse)
async def get_membership_by_id_route(
    membership_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a specific membership by ID."""
    return await _get_membership_or_404(db, membership_id)


@router.patch("/{membership_id}/state", response_model=MembershipResponse)
async def change_state(
    membership_id: str,
    data: MembershipStateUpdate,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_user)
):
    """Approve, block or reactivate a membership."""
    membership = await _get_membership_or_404(db, membership_id)
    group = await _get_group_or_404(db, og, membership.group_type, membership.group_id)
    await _require_group_permission(
        db, og, group, current_user, ["approve and deny subscription", "manage members"]
    )

    membership.set_state(data.state)
    return await save_membership(db, og, membership)


@router.post("/{membership_id}/roles", response_model=MembershipResponse)
async def add_membership_role(
    membership_id: str,
    data: MembershipRoleAssign,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_user)
):
    """Assign a role of the group's bundle to a membership."""
    membership = await _get_membership_or_404(db, membership_id)
    group = await _get_group_or_404(db, og, membership.group_type, membership.group_id)
    await _require_group_permission(db, og, group, current_user, ["manage members"])

    role = await get_role(db, data.role_id)
    if role is None or (role.group_type, role.group_bundle) != (group.entity_type, group.bundle):
        raise HTTPException(status_code=400, detail="Role does not belong to this group")

    membership.add_role(role)
    return await save_membership(db, og, membership)


@router.delete("/{membership_id}/roles/{role_id}", response_model=MembershipResponse)
async def revoke_membership_role(
    membership_id: str,
    role_id: str,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_user)
):
    """Revoke a role from a membership."""
    membership = await _get_membership_or_404(db, membership_id)
    group = await _get_group_or_404(db, og, membership.group_type, membership.group_id)
    await _require_group_permission(db, og, group, current_user, ["manage members"])

    role = await get_role(db, role_id)
    if role is None:
        raise HTTPException(status_code=404, detail="Role not found")

    membership.revoke_role(role)
    return await save_membership(db, og, membership)


@router.delete("/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unsubscribe(
    membership_id: str,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_user)
):
    """Delete a membership; members may remove their own."""
    membership = await _get_membership_or_404(db, membership_id)
    group = await _get_group_or_404(db, og, membership.group_type, membership.group_id)
    if membership.uid == current_user.id:
        await _require_group_permission(db, og, group, current_user, ["unsubscribe", "manage members"])
    else:
        await _require_group_permission(db, og, group, current_user, ["manage members"])

    await delete_membership(db, og, membership)
