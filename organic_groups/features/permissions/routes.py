"""
Permission catalog and OG role management API routes.

Role ids follow "<group type>-<group bundle>-<role name>", e.g.
"node-club-administrator".
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from organic_groups.core.context import OgContext, get_og
from organic_groups.core.database.engine import get_db
from organic_groups.features.users.dependencies import get_current_user, get_current_admin_user
from organic_groups.features.users.models import User
from organic_groups.features.permissions.models import OgRole
from organic_groups.features.permissions.schemas import (
    PermissionChange,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
)
from organic_groups.features.permissions.service import (
    available_permissions,
    create_role,
    delete_role,
    ensure_default_roles,
    get_role,
    get_roles_for_bundle,
    grant_permissions,
    revoke_permissions,
    save_role,
)
from organic_groups.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _get_role_or_404(db: AsyncSession, role_id: str) -> OgRole:
    role = await get_role(db, role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


def _require_group(og: OgContext, group_type: str, group_bundle: str) -> None:
    if not og.registry.is_group(group_type, group_bundle):
        raise HTTPException(status_code=404, detail=f"{group_type}:{group_bundle} is not a group")


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role_by_id(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a specific role by ID."""
    return await _get_role_or_404(db, role_id)


@router.patch("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Update a role's label or weight (admin only)."""
    role = await _get_role_or_404(db, role_id)

    update_data = role_update.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in update_data.items():
        setattr(role, key, value)

    return await save_role(db, og, role)


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role_by_id(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a custom role, revoking it from all memberships (admin only)."""
    role = await _get_role_or_404(db, role_id)
    await delete_role(db, og, role)
    log.info(f"Role {role_id} deleted by {current_user.id}")


@router.post("/roles/{role_id}/grant", response_model=RoleResponse)
async def grant_role_permissions(
    role_id: str,
    change: PermissionChange,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Grant permissions to a role (admin only)."""
    role = await _get_role_or_404(db, role_id)
    return await grant_permissions(db, og, role, change.permissions)


@router.post("/roles/{role_id}/revoke", response_model=RoleResponse)
async def revoke_role_permissions(
    role_id: str,
    change: PermissionChange,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Revoke permissions from a role (admin only)."""
    role = await _get_role_or_404(db, role_id)
    return await revoke_permissions(db, og, role, change.permissions)


# ============================================================================
# Group Bundle Routes
# ============================================================================

@router.get("/{group_type}/{group_bundle}", response_model=List[PermissionResponse])
async def list_permissions(
    group_type: str,
    group_bundle: str,
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_user)
):
    """List the permissions available to roles of a group bundle."""
    _require_group(og, group_type, group_bundle)
    return available_permissions(og, group_type, group_bundle)


@router.get("/{group_type}/{group_bundle}/roles", response_model=List[RoleResponse])
async def list_roles(
    group_type: str,
    group_bundle: str,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_user)
):
    """List the roles of a group bundle, built-in roles first."""
    _require_group(og, group_type, group_bundle)
    await ensure_default_roles(db, og.catalog, og.cache, group_type, group_bundle)
    return await get_roles_for_bundle(db, group_type, group_bundle)


@router.post(
    "/{group_type}/{group_bundle}/roles",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_group_role(
    group_type: str,
    group_bundle: str,
    role: RoleCreate,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a custom role in a group bundle (admin only)."""
    _require_group(og, group_type, group_bundle)
    try:
        db_role = await create_role(
            db,
            og,
            group_type,
            group_bundle,
            role.name,
            label=role.label,
            permissions=role.permissions,
            weight=role.weight,
        )
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role with this name already exists"
        )
    log.info(f"Role {db_role.id} created by {current_user.id}")
    return db_role
