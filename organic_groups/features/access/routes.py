"""
Access check API routes.

Lets collaborators ask the engine before rendering a control or performing
an operation elsewhere.
"""
from typing import Optional, Union
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.context import OgContext, get_og
from organic_groups.core.database.engine import get_db
from organic_groups.features.access.schemas import (
    AccessCheckRequest,
    AccessCheckResponse,
    UserPermissionsResponse,
)
from organic_groups.features.entities.models import Entity
from organic_groups.features.entities.service import get_entity
from organic_groups.features.users.dependencies import get_current_account, get_current_admin_user
from organic_groups.features.users.models import ANONYMOUS_USER, AnonymousUser, User, is_anonymous


router = APIRouter()


async def _resolve_account(
    db: AsyncSession,
    account: Union[User, AnonymousUser],
    user_id: Optional[str],
) -> Union[User, AnonymousUser]:
    if user_id is None or (not is_anonymous(account) and user_id == account.id):
        return account
    if is_anonymous(account) or not account.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required to check access for another user",
        )
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/check", response_model=AccessCheckResponse)
async def check_access(
    data: AccessCheckRequest,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    account: Union[User, AnonymousUser] = Depends(get_current_account)
):
    """Run the access engine for an operation on an entity."""
    user = await _resolve_account(db, account, data.user_id)

    if data.entity_id is not None:
        entity = await get_entity(db, data.entity_type, data.entity_id)
        if entity is None:
            raise HTTPException(status_code=404, detail="Entity not found")
    elif data.bundle is not None:
        entity = Entity(
            entity_type=data.entity_type,
            bundle=data.bundle,
            owner_id=None if is_anonymous(user) else user.id,
            references=data.references,
        )
    else:
        raise HTTPException(status_code=400, detail="Either entity_id or bundle is required")

    result = await og.access.user_access_entity(db, data.operation, entity, user)
    return AccessCheckResponse(
        verdict=result.verdict,
        reason=result.reason,
        user_id=None if is_anonymous(user) else user.id,
    )


@router.get("/groups/{group_type}/{group_id}/users/{user_id}", response_model=UserPermissionsResponse)
async def get_user_group_permissions(
    group_type: str,
    group_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    admin: User = Depends(get_current_admin_user)
):
    """Effective roles and permissions of a user in a group (admin only). Use "anonymous" for visitors."""
    group = await get_entity(db, group_type, group_id)
    if group is None or not og.registry.resolve_group(group):
        raise HTTPException(status_code=404, detail="Group not found")

    if user_id == "anonymous":
        user = ANONYMOUS_USER
    else:
        user = await db.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")

    roles = await og.access.get_user_roles(db, group, user)
    permissions = await og.access.get_user_permissions(db, group, user)
    return UserPermissionsResponse(
        user_id=None if is_anonymous(user) else user.id,
        group_type=group_type,
        group_id=group_id,
        roles=[role.id for role in roles],
        permissions=sorted(permissions),
    )
