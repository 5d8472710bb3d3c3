"""
Permission catalog for groups and group content.

Group-level permissions are a fixed list. Group content permissions are
derived per bundle from the registered operations, following the naming
convention `<verb> <own|any> <bundle> <kind>`, e.g. "update own article content".
Operations that are not ownership-scoped (create) drop the scope:
"create article content".
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from organic_groups.core.exceptions import ConfigurationError, UnknownPermission
from organic_groups.utils import get_logger


log = get_logger(__name__)


OWN = "own"
ANY = "any"

# Built-in role names, as used in role ids ("<type>-<bundle>-<name>")
ANONYMOUS = "non-member"
AUTHENTICATED = "member"
ADMINISTRATOR = "administrator"

ADMINISTER_GROUP = "administer group"

# Entity types whose bundles are labelled "content" instead of the type id
ENTITY_KIND_LABELS: Dict[str, str] = {"node": "content"}

# Entity types that name an operation differently in their permissions
OPERATION_VERB_OVERRIDES: Dict[Tuple[str, str], str] = {("node", "update"): "edit"}


@dataclass(frozen=True)
class Permission:
    """A catalog entry. Not tied to any group instance."""

    name: str
    title: str
    description: str = ""
    restrict_access: bool = False
    default_roles: Tuple[str, ...] = ()

    # Set for group content permissions only
    entity_type: Optional[str] = None
    bundle: Optional[str] = None
    operation: Optional[str] = None
    owner: Optional[str] = None

    @property
    def is_group_content(self) -> bool:
        return self.entity_type is not None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "restrict_access": self.restrict_access,
            "default_roles": list(self.default_roles),
            "entity_type": self.entity_type,
            "bundle": self.bundle,
            "operation": self.operation,
            "owner": self.owner,
        }


@dataclass(frozen=True)
class Operation:
    """An entity operation that group content permissions can be defined for."""

    name: str
    owner_scoped: bool = True
    verbs: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)


GROUP_PERMISSIONS: List[Permission] = [
    Permission(
        ADMINISTER_GROUP,
        "Administer group",
        "Manage group members and content in the group.",
        restrict_access=True,
    ),
    Permission(
        "update group",
        "Edit group",
        "Edit the group. Note: this permission controls only node entity type groups.",
        restrict_access=True,
        default_roles=(ADMINISTRATOR,),
    ),
    Permission(
        "delete group",
        "Delete group",
        "Delete the group entity.",
        restrict_access=True,
    ),
    Permission(
        "manage members",
        "Manage members",
        "Manage members of the group, including their roles.",
        restrict_access=True,
        default_roles=(ADMINISTRATOR,),
    ),
    Permission(
        "add user",
        "Add user",
        "Add users to the group.",
        default_roles=(ADMINISTRATOR,),
    ),
    Permission(
        "approve and deny subscription",
        "Approve and deny subscription",
        "Users may allow or deny another user's subscription request.",
        default_roles=(ADMINISTRATOR,),
    ),
    Permission(
        "subscribe",
        "Subscribe to group",
        "Allow non-members to request membership to a group (approval required).",
        default_roles=(ANONYMOUS,),
    ),
    Permission(
        "subscribe without approval",
        "Subscribe to group (no approval required)",
        "Allow non-members to join a group without an approval from group administrators.",
    ),
    Permission(
        "unsubscribe",
        "Unsubscribe from group",
        "Allow members to unsubscribe themselves from a group, removing their membership.",
        default_roles=(AUTHENTICATED,),
    ),
]


class PermissionCatalog:
    """
    Static declaration of group and group content permissions.

    The catalog has no side effects beyond memoizing the permissions it has
    derived, so that `is_restricted` can answer for them later. Bundles it
    has derived permissions for are remembered; registering an operation
    derives the new names for all of them.
    """

    def __init__(self):
        self._operations: Dict[str, Operation] = {}
        self._group_permissions: Dict[str, Permission] = {p.name: p for p in GROUP_PERMISSIONS}
        self._content_permissions: Dict[str, Permission] = {}
        self._content_bundles: Dict[Tuple[str, str], None] = {}

        self.register_operation("create", owner_scoped=False)
        self.register_operation("update")
        self.register_operation("delete")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register_operation(
        self,
        name: str,
        owner_scoped: bool = True,
        verbs: Optional[Dict[str, str]] = None,
    ) -> Operation:
        """
        Make a custom operation available to group content permissions.

        Args:
            name: Operation name as passed to the access engine (e.g. "publish")
            owner_scoped: Whether "own" and "any" variants are defined
            verbs: Per entity type verb overrides, e.g. {"node": "edit"}

        Raises:
            ConfigurationError: If the name is empty or contains whitespace
        """
        if not name or name != name.strip() or " " in name:
            raise ConfigurationError(
                f"Invalid operation name {name!r}",
                {"operation": name},
            )
        operation = Operation(name=name, owner_scoped=owner_scoped, verbs=dict(verbs or {}))
        self._operations[name] = operation
        # Derived names may have changed
        self._content_permissions.clear()
        for entity_type, bundle in list(self._content_bundles):
            self.define_permissions(entity_type, bundle)
        return operation

    def get_operation(self, name: str) -> Optional[Operation]:
        return self._operations.get(name)

    def operations(self) -> List[Operation]:
        return list(self._operations.values())

    def verb(self, entity_type: str, operation: str) -> str:
        op = self._operations.get(operation)
        if op is not None and entity_type in op.verbs:
            return op.verbs[entity_type]
        return OPERATION_VERB_OVERRIDES.get((entity_type, operation), operation)

    @staticmethod
    def kind(entity_type: str) -> str:
        return ENTITY_KIND_LABELS.get(entity_type, entity_type)

    # ------------------------------------------------------------------
    # Group permissions
    # ------------------------------------------------------------------

    def register_group_permission(self, permission: Permission) -> None:
        if permission.is_group_content:
            raise ConfigurationError(
                f"'{permission.name}' is a group content permission",
                {"permission": permission.name},
            )
        self._group_permissions[permission.name] = permission

    def group_permissions(self) -> List[Permission]:
        return list(self._group_permissions.values())

    def group_permission_for(self, operation: str) -> str:
        """
        Name of the permission guarding an operation on a group entity.

        Raises:
            UnknownPermission: If no "<operation> group" permission exists
        """
        name = f"{operation} group"
        if name not in self._group_permissions:
            raise UnknownPermission(
                f"No group permission defined for operation '{operation}'",
                {"operation": operation},
            )
        return name

    # ------------------------------------------------------------------
    # Group content permissions
    # ------------------------------------------------------------------

    def permission_name(
        self,
        entity_type: str,
        bundle: str,
        operation: str,
        owner: Optional[str] = None,
    ) -> str:
        """
        Build a group content permission name.

        Raises:
            UnknownPermission: If the operation is not registered, or the
                ownership scope does not fit the operation
        """
        op = self._operations.get(operation)
        if op is None:
            raise UnknownPermission(
                f"No permission defined for operation '{operation}' on {entity_type}:{bundle}",
                {"entity_type": entity_type, "bundle": bundle, "operation": operation},
            )

        verb = self.verb(entity_type, operation)
        kind = self.kind(entity_type)
        if not op.owner_scoped:
            if owner is not None:
                raise UnknownPermission(
                    f"Operation '{operation}' has no '{owner}' variant",
                    {"operation": operation, "owner": owner},
                )
            return f"{verb} {bundle} {kind}"

        if owner not in (OWN, ANY):
            raise UnknownPermission(
                f"Operation '{operation}' requires an ownership scope",
                {"operation": operation, "owner": owner},
            )
        return f"{verb} {owner} {bundle} {kind}"

    def define_permissions(self, entity_type: str, bundle: str) -> List[Permission]:
        """Return the group content permissions of one bundle."""
        kind = self.kind(entity_type)
        permissions = []
        for op in self._operations.values():
            verb = self.verb(entity_type, op.name)
            if not op.owner_scoped:
                permissions.append(Permission(
                    name=self.permission_name(entity_type, bundle, op.name),
                    title=f"{bundle}: {verb.capitalize()} new {kind}",
                    default_roles=(AUTHENTICATED,),
                    entity_type=entity_type,
                    bundle=bundle,
                    operation=op.name,
                ))
                continue

            permissions.append(Permission(
                name=self.permission_name(entity_type, bundle, op.name, OWN),
                title=f"{bundle}: {verb.capitalize()} own {kind}",
                default_roles=(AUTHENTICATED,),
                entity_type=entity_type,
                bundle=bundle,
                operation=op.name,
                owner=OWN,
            ))
            permissions.append(Permission(
                name=self.permission_name(entity_type, bundle, op.name, ANY),
                title=f"{bundle}: {verb.capitalize()} any {kind}",
                restrict_access=True,
                default_roles=(ADMINISTRATOR,),
                entity_type=entity_type,
                bundle=bundle,
                operation=op.name,
                owner=ANY,
            ))

        self._content_bundles[(entity_type, bundle)] = None
        for permission in permissions:
            self._content_permissions[permission.name] = permission
        return permissions

    def forget_permissions(self, entity_type: str, bundle: str) -> None:
        """Drop the memoized permissions of a bundle that is no longer group content."""
        self._content_bundles.pop((entity_type, bundle), None)
        self._content_permissions = {
            name: permission
            for name, permission in self._content_permissions.items()
            if (permission.entity_type, permission.bundle) != (entity_type, bundle)
        }

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_permission(self, name: str) -> Permission:
        """
        Look up a group permission, or a content permission already defined.

        Raises:
            UnknownPermission: If the name is not in the catalog
        """
        if name in self._group_permissions:
            return self._group_permissions[name]
        if name in self._content_permissions:
            return self._content_permissions[name]
        raise UnknownPermission(f"Unknown permission '{name}'", {"permission": name})

    def is_restricted(self, name: str) -> bool:
        return self.get_permission(name).restrict_access

    def default_permissions(self, role_name: str, permissions: Iterable[Permission]) -> List[str]:
        """Names among `permissions` granted to a built-in role by default."""
        return [p.name for p in permissions if role_name in p.default_roles]
