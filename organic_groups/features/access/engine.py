"""
OG access decision engine.

`OgAccess.user_access_entity` answers whether a user may perform an
operation on an entity that is a group or group content:

1. Classify the entity; neither group nor group content -> neutral
2. Super-user bypass -> allowed
3. Resolve the groups the entity is, or belongs to
4. Resolve the user's effective roles in each group from their membership
5. Allowed if any role in any group grants a candidate permission, where an
   owned entity accepts both the "own" and the "any" permission
6. Otherwise forbidden

Missing catalog entries degrade to forbidden; a decision never raises.
"""
from typing import FrozenSet, Iterable, List, Optional, Union
from sqlalchemy.ext.asyncio import AsyncSession

from organic_groups.core.exceptions import UnknownPermission
from organic_groups.features.access.cache import AccessCache
from organic_groups.features.access.verdict import AccessResult
from organic_groups.features.entities.service import get_entity
from organic_groups.features.groups.registry import GroupableEntity, GroupRegistry
from organic_groups.features.memberships.service import get_membership
from organic_groups.features.permissions.catalog import (
    ADMINISTER_GROUP,
    ADMINISTRATOR,
    ANONYMOUS,
    ANY,
    OWN,
    PermissionCatalog,
)
from organic_groups.features.permissions.models import OgRole
from organic_groups.features.permissions.service import ensure_default_roles
from organic_groups.features.users.models import is_anonymous
from organic_groups.utils import get_logger


log = get_logger(__name__)


class OgAccess:
    """
    Access decisions for groups and group content.

    Holds no per-call state; everything reusable between calls lives in the
    shared AccessCache.
    """

    def __init__(
        self,
        registry: GroupRegistry,
        catalog: PermissionCatalog,
        cache: AccessCache,
        super_user_id: Optional[str] = None,
        group_manager_full_access: bool = False,
    ):
        self.registry = registry
        self.catalog = catalog
        self.cache = cache
        self.super_user_id = super_user_id
        self.group_manager_full_access = group_manager_full_access

    # ==========================================
    # Entry points
    # ==========================================

    async def user_access_entity(
        self,
        db: AsyncSession,
        operation: str,
        entity: GroupableEntity,
        user,
    ) -> AccessResult:
        """
        Decide whether `user` may perform `operation` on `entity`.

        Args:
            db: Database session
            operation: "create", "update", "delete" or a registered custom operation
            entity: Group or group content entity; may be unsaved for "create"
            user: Acting account, or the anonymous sentinel

        Returns:
            Neutral if the entity is neither a group nor group content,
            otherwise allowed or forbidden
        """
        is_group = self.registry.resolve_group(entity)
        is_group_content = self.registry.is_group_content(entity.entity_type, entity.bundle)
        if not is_group and not is_group_content:
            return AccessResult.neutral(f"{entity.entity_type}:{entity.bundle} is not a group or group content")

        if self.is_super_user(user):
            return AccessResult.allowed("bypass og access")

        # Unsaved entities are checked every time
        key = None
        if entity.id is not None:
            key = (_user_id(user), operation, entity.entity_type, str(entity.id))
            cached = self.cache.get_verdict(key)
            if cached is not None:
                return cached

        # Taken before any await; a write landing mid-check voids the result for caching
        generation = self.cache.generation

        try:
            result = await self._check_entity(db, operation, entity, user, is_group, is_group_content)
        except UnknownPermission as e:
            log.warning(f"Access denied, {e.message}")
            result = AccessResult.forbidden(e.message)

        if key is not None:
            self.cache.set_verdict(key, result, generation)
        return result

    async def user_access(
        self,
        db: AsyncSession,
        group: GroupableEntity,
        permissions: Union[str, Iterable[str]],
        user,
        field_name: Optional[str] = None,
    ) -> AccessResult:
        """
        Check if a user holds any of `permissions` in a group.

        "administer group" satisfies every check, and so does owning the
        group when group manager full access is enabled.
        """
        if isinstance(permissions, str):
            permissions = [permissions]
        permissions = list(permissions)

        if self.is_super_user(user):
            return AccessResult.allowed("bypass og access")
        if not self.registry.resolve_group(group):
            return AccessResult.forbidden(f"{group.entity_type}:{group.id} is not a group")

        if self.group_manager_full_access and self._owns(group, user):
            return AccessResult.allowed("group manager")

        granted = await self.get_user_permissions(db, group, user, field_name)
        if ADMINISTER_GROUP in granted:
            return AccessResult.allowed(ADMINISTER_GROUP)
        for permission in permissions:
            if permission in granted:
                return AccessResult.allowed(permission)

        return AccessResult.forbidden(
            f"None of [{', '.join(permissions)}] granted in {group.entity_type}:{group.id}"
        )

    def is_super_user(self, user) -> bool:
        """Site admins and the configured super user bypass group access."""
        if is_anonymous(user):
            return False
        if getattr(user, "is_admin", False):
            return True
        return self.super_user_id is not None and str(user.id) == str(self.super_user_id)

    # ==========================================
    # Roles and permissions
    # ==========================================

    async def get_user_roles(
        self,
        db: AsyncSession,
        group: GroupableEntity,
        user,
        field_name: Optional[str] = None,
    ) -> List[OgRole]:
        """
        Effective roles of a user in a group.

        - no membership (anonymous included) or pending: the non-member role
        - active: the member role plus every assigned role
        - blocked: nothing
        """
        field_name = field_name or self.registry.default_field
        roles = await ensure_default_roles(db, self.catalog, self.cache, group.entity_type, group.bundle)

        membership = None
        if not is_anonymous(user):
            membership = await get_membership(db, user.id, group.entity_type, str(group.id), field_name)

        if membership is None:
            return [roles[ANONYMOUS]]
        return membership.get_effective_roles(roles)

    async def get_user_permissions(
        self,
        db: AsyncSession,
        group: GroupableEntity,
        user,
        field_name: Optional[str] = None,
    ) -> FrozenSet[str]:
        """Union of the permissions of the user's effective roles in a group."""
        field_name = field_name or self.registry.default_field
        key = (_user_id(user), group.entity_type, group.bundle, str(group.id), field_name)
        cached = self.cache.get_permissions(key)
        if cached is not None:
            return cached
        generation = self.cache.generation

        roles = await self.get_user_roles(db, group, user, field_name)
        permissions = frozenset(p for role in roles for p in role.get_permissions())
        self.cache.set_permissions(key, permissions, generation)
        return permissions

    async def is_group_admin(self, db: AsyncSession, group: GroupableEntity, user) -> bool:
        roles = await self.get_user_roles(db, group, user)
        return any(role.name == ADMINISTRATOR for role in roles)

    # ==========================================
    # Internals
    # ==========================================

    async def _check_entity(
        self,
        db: AsyncSession,
        operation: str,
        entity: GroupableEntity,
        user,
        is_group: bool,
        is_group_content: bool,
    ) -> AccessResult:
        result = None
        if is_group:
            try:
                permission = self.catalog.group_permission_for(operation)
            except UnknownPermission:
                # Still answerable as group content
                if not is_group_content:
                    raise
            else:
                result = await self.user_access(db, entity, permission, user)
                if result.is_allowed() or not is_group_content:
                    return result

        return await self._check_group_content(db, operation, entity, user)

    async def _check_group_content(
        self,
        db: AsyncSession,
        operation: str,
        entity: GroupableEntity,
        user,
    ) -> AccessResult:
        permissions = self._content_permissions(operation, entity, user)

        groups_by_field = self.registry.resolve_groups_by_field(entity)
        if not groups_by_field:
            return AccessResult.forbidden(f"{entity.entity_type}:{entity.id} does not belong to any group")

        for field_name, groups in sorted(groups_by_field.items()):
            for group_type, group_id in sorted(groups):
                group = await get_entity(db, group_type, group_id)
                if group is None or not self.registry.resolve_group(group):
                    log.debug(f"Skipping reference to {group_type}:{group_id}, not a group")
                    continue
                result = await self.user_access(db, group, permissions, user, field_name=field_name)
                if result.is_allowed():
                    return result

        return AccessResult.forbidden(
            f"None of [{', '.join(permissions)}] granted in the groups of {entity.entity_type}:{entity.id}"
        )

    def _content_permissions(self, operation: str, entity: GroupableEntity, user) -> List[str]:
        """
        Candidate permissions for an operation on group content.

        "any" always qualifies; "own" only when the user owns the entity.

        Raises:
            UnknownPermission: If the operation is not in the catalog
        """
        op = self.catalog.get_operation(operation)
        if op is None or not op.owner_scoped:
            return [self.catalog.permission_name(entity.entity_type, entity.bundle, operation)]

        permissions = [self.catalog.permission_name(entity.entity_type, entity.bundle, operation, ANY)]
        if self._owns(entity, user):
            permissions.append(self.catalog.permission_name(entity.entity_type, entity.bundle, operation, OWN))
        return permissions

    @staticmethod
    def _owns(entity: GroupableEntity, user) -> bool:
        if is_anonymous(user) or entity.owner_id is None:
            return False
        return str(entity.owner_id) == str(user.id)


def _user_id(user) -> Optional[str]:
    return None if is_anonymous(user) else str(user.id)
