"""
Group registry API routes: group bundles and audience fields.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.context import OgContext, get_og
from organic_groups.core.database.engine import get_db
from organic_groups.features.groups.schemas import (
    AudienceFieldCreate,
    AudienceFieldResponse,
    GroupBundleCreate,
)
from organic_groups.features.groups.service import (
    add_group,
    add_group_content_field,
    remove_group,
    remove_group_content_field,
)
from organic_groups.features.users.dependencies import get_current_admin_user
from organic_groups.features.users.models import User
from organic_groups.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Group Bundle Routes
# ============================================================================

@router.get("/", response_model=dict[str, list[str]])
async def list_group_bundles(
    entity_type: str | None = None,
    og: OgContext = Depends(get_og)
):
    """List group bundles, by entity type."""
    return og.registry.get_all_group_bundles(entity_type)


@router.post("/", response_model=dict[str, list[str]], status_code=status.HTTP_201_CREATED)
async def declare_group_bundle(
    data: GroupBundleCreate,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Declare a bundle a group and create its default roles (admin only)."""
    created = await add_group(db, og, data.entity_type, data.bundle)
    if created:
        log.info(f"Group bundle {data.entity_type}:{data.bundle} declared by {current_user.id}")
    return og.registry.get_all_group_bundles(data.entity_type)


@router.delete("/{entity_type}/{bundle}", status_code=status.HTTP_204_NO_CONTENT)
async def undeclare_group_bundle(
    entity_type: str,
    bundle: str,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Remove a bundle from groups, deleting its roles (admin only)."""
    if not await remove_group(db, og, entity_type, bundle):
        raise HTTPException(status_code=404, detail="Group bundle not found")


@router.get("/content/{entity_type}", response_model=List[str])
async def list_group_content_bundles(
    entity_type: str,
    og: OgContext = Depends(get_og)
):
    """Bundles of an entity type that carry an audience field."""
    return sorted(og.registry.get_group_content_bundles(entity_type))


# ============================================================================
# Audience Field Routes
# ============================================================================

@router.get("/fields/{entity_type}/{bundle}", response_model=List[AudienceFieldResponse])
async def list_audience_fields(
    entity_type: str,
    bundle: str,
    og: OgContext = Depends(get_og)
):
    """Audience fields of a group content bundle."""
    return og.registry.get_audience_fields(entity_type, bundle)


@router.post("/fields", response_model=AudienceFieldResponse, status_code=status.HTTP_201_CREATED)
async def create_audience_field(
    data: AudienceFieldCreate,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Attach an audience field to a bundle (admin only)."""
    return await add_group_content_field(
        db,
        og,
        data.entity_type,
        data.bundle,
        data.target_type,
        field_name=data.field_name,
        target_bundles=data.target_bundles,
    )


@router.delete("/fields/{entity_type}/{bundle}/{field_name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_audience_field(
    entity_type: str,
    bundle: str,
    field_name: str,
    db: AsyncSession = Depends(get_db),
    og: OgContext = Depends(get_og),
    current_user: User = Depends(get_current_admin_user)
):
    """Detach an audience field (admin only)."""
    if not await remove_group_content_field(db, og, entity_type, bundle, field_name):
        raise HTTPException(status_code=404, detail="Audience field not found")
