"""
Entity API routes.

Create, update and delete go through the OG access engine. When the engine
has no opinion (the entity is neither a group nor group content) the default
policy applies: authenticated users may create, owners and admins may
update and delete.
"""
from typing import List, Optional, Union
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.context import OgContext, get_og
from organic_groups.core.database.engine import get_db
from organic_groups.features.entities.models import Entity
from organic_groups.features.entities.schemas import EntityCreate, EntityResponse, EntityUpdate
from organic_groups.features.entities.service import (
    create_entity,
    delete_entity,
    get_entities,
    get_entity,
    update_entity,
)
from organic_groups.features.users.dependencies import get_current_account
from organic_groups.features.users.models import AnonymousUser, User, is_anonymous
from organic_groups.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _authorize(
    db: AsyncSession,
    og: OgContext,
    operation: str,
    entity: Entity,
    account: Union[User, AnonymousUser],
) -> None:
    result = await og.access.user_access_entity(db, operation, entity, account)
    if result.is_allowed():
        return
    if result.is_neutral() and not is_anonymous(account):
        if operation == "create" or account.is_admin or entity.owner_id == account.id:
            return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=result.reason or f"Permission denied: {operation}"
    )


async def _get_entity_or_404(db: AsyncSession, entity_type: str, entity_id: str) -> Entity:
    entity = await get_entity(db, entity_type, entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    return entity


@router.post("/", response_model=EntityResponse, status_code=status.HTTP_201_CREATED)
async def create_entity_route(
    data: EntityCreate,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    account: Union[User, AnonymousUser] = Depends(get_current_account)
):
    """Create an entity owned by the current account."""
    # Unsaved, only used for the access check
    candidate = Entity(
        entity_type=data.entity_type,
        bundle=data.bundle,
        label=data.label,
        owner_id=None if is_anonymous(account) else account.id,
        references=data.references,
    )
    if og.registry.resolve_group(candidate) and not og.registry.is_group_content(data.entity_type, data.bundle):
        # A new group has no roles to check against yet
        if is_anonymous(account):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    else:
        await _authorize(db, og, "create", candidate, account)

    return await create_entity(
        db,
        og,
        data.entity_type,
        data.bundle,
        label=data.label,
        owner=account,
        references=data.references,
    )


@router.get("/", response_model=List[EntityResponse])
async def list_entities(
    entity_type: Optional[str] = None,
    bundle: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db)
):
    """List entities with optional filtering."""
    return await get_entities(db, entity_type=entity_type, bundle=bundle, skip=skip, limit=limit)


@router.get("/{entity_type}/{entity_id}", response_model=EntityResponse)
async def get_entity_route(
    entity_type: str,
    entity_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Get a specific entity."""
    return await _get_entity_or_404(db, entity_type, entity_id)


@router.patch("/{entity_type}/{entity_id}", response_model=EntityResponse)
async def update_entity_route(
    entity_type: str,
    entity_id: str,
    data: EntityUpdate,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    account: Union[User, AnonymousUser] = Depends(get_current_account)
):
    """Update an entity."""
    entity = await _get_entity_or_404(db, entity_type, entity_id)
    await _authorize(db, og, "update", entity, account)

    return await update_entity(
        db,
        og,
        entity,
        label=data.label,
        owner_id=data.owner_id,
        references=data.references,
    )


@router.delete("/{entity_type}/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entity_route(
    entity_type: str,
    entity_id: str,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    account: Union[User, AnonymousUser] = Depends(get_current_account)
):
    """Delete an entity; deleting a group deletes its memberships."""
    entity = await _get_entity_or_404(db, entity_type, entity_id)
    await _authorize(db, og, "delete", entity, account)

    await delete_entity(db, og, entity)
    log.info(f"Entity {entity_type}:{entity_id} deleted by {account.id}")
