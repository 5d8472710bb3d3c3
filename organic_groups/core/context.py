"""
OgContext bundles the collaborators every group operation needs: the
permission catalog, the group registry, the access cache and the access
engine. One context is created per process (see `organic_groups.main`) and
passed explicitly to services; nothing reads it from module globals.
"""
from dataclasses import dataclass
from typing import Optional
from fastapi import Request

from organic_groups.core import config
from organic_groups.features.access.cache import AccessCache
from organic_groups.features.access.engine import OgAccess
from organic_groups.features.groups.registry import GroupRegistry
from organic_groups.features.permissions.catalog import PermissionCatalog


@dataclass
class OgContext:
    cache: AccessCache
    catalog: PermissionCatalog
    registry: GroupRegistry
    access: OgAccess
    create_manager_membership: bool = True


def create_og_context(
    cache_enabled: Optional[bool] = None,
    super_user_id: Optional[str] = None,
    group_manager_full_access: Optional[bool] = None,
    create_manager_membership: Optional[bool] = None,
    default_field: Optional[str] = None,
) -> OgContext:
    """
    Build a context from explicit arguments, falling back to config values.

    Usage:
        og = create_og_context()
        await load_registry(db, og.registry)
        result = await og.access.user_access_entity(db, "update", entity, user)
    """
    cache = AccessCache(enabled=config.OG_ACCESS_CACHE_ENABLED if cache_enabled is None else cache_enabled)
    catalog = PermissionCatalog()
    registry = GroupRegistry(cache=cache, default_field=default_field, catalog=catalog)
    access = OgAccess(
        registry=registry,
        catalog=catalog,
        cache=cache,
        super_user_id=config.OG_SUPER_USER_ID if super_user_id is None else super_user_id,
        group_manager_full_access=(
            config.OG_GROUP_MANAGER_FULL_ACCESS if group_manager_full_access is None else group_manager_full_access
        ),
    )
    return OgContext(
        cache=cache,
        catalog=catalog,
        registry=registry,
        access=access,
        create_manager_membership=(
            config.OG_CREATE_MANAGER_MEMBERSHIP if create_manager_membership is None else create_manager_membership
        ),
    )


def get_og(request: Request) -> OgContext:
    """FastAPI dependency returning the application's OgContext."""
    return request.app.state.og
