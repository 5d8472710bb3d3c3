"""
Process-wide cache for access decisions.

Two maps are kept:
- effective permissions of a user in a group, keyed by
  (user id, group type, group bundle, group id, field name)
- verdicts, keyed by (user id, operation, entity type, entity id)

Entries are dropped, never refreshed. Every write to a role, membership,
entity or the group registry must call one of the invalidation hooks.

Each invalidation bumps a generation counter. Callers take `generation`
before computing a value and pass it back when storing it; a value computed
across an invalidation is discarded instead of outliving it.
"""
from typing import Dict, FrozenSet, Optional, Tuple

from organic_groups.features.access.verdict import AccessResult
from organic_groups.utils import get_logger


log = get_logger(__name__)

PermissionKey = Tuple[Optional[str], str, str, str, str]
VerdictKey = Tuple[Optional[str], str, str, str]


class AccessCache:
    """In-memory cache shared by everything holding the same OgContext."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._permissions: Dict[PermissionKey, FrozenSet[str]] = {}
        self._verdicts: Dict[VerdictKey, AccessResult] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def _is_current(self, generation: Optional[int]) -> bool:
        if not self.enabled:
            return False
        if generation is not None and generation != self._generation:
            log.debug(f"Discarding entry computed at generation {generation}, now {self._generation}")
            return False
        return True

    # Permissions

    def get_permissions(self, key: PermissionKey) -> Optional[FrozenSet[str]]:
        if not self.enabled:
            return None
        return self._permissions.get(key)

    def set_permissions(
        self,
        key: PermissionKey,
        permissions: FrozenSet[str],
        generation: Optional[int] = None,
    ) -> None:
        if self._is_current(generation):
            self._permissions[key] = permissions

    # Verdicts

    def get_verdict(self, key: VerdictKey) -> Optional[AccessResult]:
        if not self.enabled:
            return None
        return self._verdicts.get(key)

    def set_verdict(self, key: VerdictKey, result: AccessResult, generation: Optional[int] = None) -> None:
        if self._is_current(generation):
            self._verdicts[key] = result

    # Invalidation hooks

    def invalidate_group_bundle(self, group_type: str, group_bundle: str) -> None:
        """A role of the bundle changed."""
        self._generation += 1
        self._drop_permissions(lambda key: key[1] == group_type and key[2] == group_bundle)
        self._verdicts.clear()
        log.debug(f"Access cache invalidated for group bundle {group_type}:{group_bundle}")

    def invalidate_group(self, group_type: str, group_id: str) -> None:
        """A group entity, or a membership in it, changed."""
        self._generation += 1
        self._drop_permissions(lambda key: key[1] == group_type and key[3] == group_id)
        self._verdicts.clear()
        log.debug(f"Access cache invalidated for group {group_type}:{group_id}")

    def invalidate_user(self, user_id: Optional[str]) -> None:
        self._generation += 1
        self._drop_permissions(lambda key: key[0] == user_id)
        self._verdicts.clear()
        log.debug(f"Access cache invalidated for user {user_id}")

    def invalidate_entity(self, entity_type: str, entity_id: str) -> None:
        """An entity changed owner or audience; also covers it being a group."""
        self._generation += 1
        self._drop_permissions(lambda key: key[1] == entity_type and key[3] == entity_id)
        # Content verdicts depend on the owner of their groups too
        self._verdicts.clear()
        log.debug(f"Access cache invalidated for entity {entity_type}:{entity_id}")

    def reset(self) -> None:
        self._generation += 1
        self._permissions.clear()
        self._verdicts.clear()
        log.debug("Access cache reset")

    def stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "permissions": len(self._permissions),
            "verdicts": len(self._verdicts),
            "generation": self._generation,
        }

    def _drop_permissions(self, predicate) -> None:
        self._permissions = {
            key: value for key, value in self._permissions.items() if not predicate(key)
        }
