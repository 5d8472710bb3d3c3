"""
Group registry.

Tracks which entity type + bundle pairs are groups, and which audience
fields turn a bundle into group content. The registry is an in-memory view;
`organic_groups.features.groups.service` keeps it in sync with the
database. Every mutation invalidates the access cache, and audience field
changes keep the permission catalog's content permissions defined.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Set, Tuple, runtime_checkable

from organic_groups.core import config
from organic_groups.core.exceptions import ConfigurationError
from organic_groups.features.access.cache import AccessCache
from organic_groups.features.permissions.catalog import PermissionCatalog
from organic_groups.utils import get_logger


log = get_logger(__name__)

# Name reserved for the "is a group" flag; audience fields can't use it
GROUP_FIELD = "og_group"

GroupKey = Tuple[str, str]


@runtime_checkable
class GroupableEntity(Protocol):
    """Entity introspection needed by the registry and the access engine."""

    @property
    def entity_type(self) -> str:
        ...

    @property
    def bundle(self) -> str:
        ...

    @property
    def id(self) -> Optional[str]:
        ...

    @property
    def owner_id(self) -> Optional[str]:
        ...

    def get_referenced_ids(self, field_name: str) -> List[str]:
        ...


@dataclass(frozen=True)
class AudienceField:
    """An audience field making `entity_type:bundle` group content."""

    entity_type: str
    bundle: str
    field_name: str
    target_type: str
    target_bundles: Tuple[str, ...] = ()

    def targets(self, group_type: str, group_bundle: Optional[str] = None) -> bool:
        if group_type != self.target_type:
            return False
        if group_bundle is None or not self.target_bundles:
            return True
        return group_bundle in self.target_bundles


class GroupRegistry:
    """In-memory registry of group bundles and group content fields."""

    def __init__(
        self,
        cache: Optional[AccessCache] = None,
        default_field: Optional[str] = None,
        catalog: Optional[PermissionCatalog] = None,
    ):
        self.cache = cache
        self.catalog = catalog
        self.default_field = default_field or config.OG_DEFAULT_AUDIENCE_FIELD
        self._groups: Dict[str, Set[str]] = {}
        self._fields: Dict[GroupKey, Dict[str, AudienceField]] = {}

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def add_group(self, entity_type: str, bundle: str) -> bool:
        """
        Declare a bundle a group.

        Returns:
            True if the bundle was not a group before
        """
        bundles = self._groups.setdefault(entity_type, set())
        if bundle in bundles:
            return False
        bundles.add(bundle)
        log.info(f"Declared {entity_type}:{bundle} as a group")
        self._invalidate()
        return True

    def remove_group(self, entity_type: str, bundle: str) -> bool:
        bundles = self._groups.get(entity_type)
        if not bundles or bundle not in bundles:
            return False
        bundles.discard(bundle)
        if not bundles:
            del self._groups[entity_type]
        log.info(f"Removed {entity_type}:{bundle} from groups")
        self._invalidate()
        return True

    def is_group(self, entity_type: str, bundle: str) -> bool:
        return bundle in self._groups.get(entity_type, ())

    def get_all_group_bundles(self, entity_type: Optional[str] = None) -> Dict[str, List[str]]:
        groups = self._groups if entity_type is None else {entity_type: self._groups.get(entity_type, set())}
        return {et: sorted(bundles) for et, bundles in sorted(groups.items()) if bundles}

    # ------------------------------------------------------------------
    # Group content
    # ------------------------------------------------------------------

    def add_group_content_field(
        self,
        entity_type: str,
        bundle: str,
        target_type: str,
        field_name: Optional[str] = None,
        target_bundles: Iterable[str] = (),
    ) -> AudienceField:
        """
        Attach an audience field to a bundle, making it group content.

        Raises:
            ConfigurationError: If the field name is reserved, or the field
                already exists with a different target type
        """
        field_name = field_name or self.default_field
        if field_name == GROUP_FIELD:
            raise ConfigurationError(
                f"'{GROUP_FIELD}' is reserved for the group flag and can't be an audience field",
                {"entity_type": entity_type, "bundle": bundle},
            )

        fields = self._fields.setdefault((entity_type, bundle), {})
        existing = fields.get(field_name)
        if existing is not None and existing.target_type != target_type:
            raise ConfigurationError(
                f"Field {field_name} on {entity_type}:{bundle} already targets {existing.target_type}",
                {"field_name": field_name, "target_type": existing.target_type},
            )

        audience = AudienceField(
            entity_type=entity_type,
            bundle=bundle,
            field_name=field_name,
            target_type=target_type,
            target_bundles=tuple(sorted(target_bundles)),
        )
        if existing != audience:
            fields[field_name] = audience
            log.info(f"Added audience field {field_name} to {entity_type}:{bundle} -> {target_type}")
            self._invalidate()
        if self.catalog is not None:
            self.catalog.define_permissions(entity_type, bundle)
        return audience

    def remove_group_content_field(self, entity_type: str, bundle: str, field_name: Optional[str] = None) -> bool:
        field_name = field_name or self.default_field
        fields = self._fields.get((entity_type, bundle))
        if not fields or field_name not in fields:
            return False
        del fields[field_name]
        if not fields:
            del self._fields[(entity_type, bundle)]
            if self.catalog is not None:
                self.catalog.forget_permissions(entity_type, bundle)
        self._invalidate()
        return True

    def is_group_content(self, entity_type: str, bundle: str) -> bool:
        return bool(self._fields.get((entity_type, bundle)))

    def get_group_content_bundles(self, entity_type: str) -> Set[str]:
        return {bundle for (et, bundle), fields in self._fields.items() if et == entity_type and fields}

    def get_audience_fields(self, entity_type: str, bundle: str) -> List[AudienceField]:
        return list(self._fields.get((entity_type, bundle), {}).values())

    def get_fields_targeting(self, group_type: str, group_bundle: Optional[str] = None) -> List[AudienceField]:
        """Audience fields that may reference groups of this type and bundle."""
        return [
            field
            for fields in self._fields.values()
            for field in fields.values()
            if field.targets(group_type, group_bundle)
        ]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_group(self, entity: GroupableEntity) -> bool:
        """True if the entity's own bundle is a group."""
        return self.is_group(entity.entity_type, entity.bundle)

    def resolve_groups_by_field(self, entity: GroupableEntity) -> Dict[str, Set[GroupKey]]:
        """Groups referenced by a group content entity, per audience field."""
        resolved: Dict[str, Set[GroupKey]] = {}
        for field in self.get_audience_fields(entity.entity_type, entity.bundle):
            ids = entity.get_referenced_ids(field.field_name)
            if ids:
                resolved[field.field_name] = {(field.target_type, str(group_id)) for group_id in ids}
        return resolved

    def resolve_groups(self, entity: GroupableEntity) -> Set[GroupKey]:
        """
        Groups a group content entity belongs to, as (entity type, id) pairs.

        Empty if the entity has no audience field, or all references are unset.
        """
        groups: Set[GroupKey] = set()
        for keys in self.resolve_groups_by_field(entity).values():
            groups |= keys
        return groups

    def clear(self) -> None:
        if self.catalog is not None:
            for entity_type, bundle in list(self._fields):
                self.catalog.forget_permissions(entity_type, bundle)
        self._groups.clear()
        self._fields.clear()
        self._invalidate()

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.reset()
