"""
OgRole model: a named, ordered set of permissions scoped to a group bundle.

Every group bundle has three built-in roles (non-member, member,
administrator). Which kind a role is lives in `role_type`; custom roles are
`RoleType.STANDARD`.
"""
from typing import List
from sqlalchemy import String, Boolean, Integer, JSON, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
import enum

from organic_groups.core.database.base import Base, TimestampMixin
from organic_groups.features.permissions.catalog import ANONYMOUS, AUTHENTICATED, ADMINISTRATOR


class RoleType(str, enum.Enum):
    """Kind of an OG role."""
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    ADMINISTRATOR = "administrator"
    STANDARD = "standard"


# Built-in role name -> (kind, label, weight)
DEFAULT_ROLES = {
    ANONYMOUS: (RoleType.ANONYMOUS, "Non-member", 0),
    AUTHENTICATED: (RoleType.AUTHENTICATED, "Member", 1),
    ADMINISTRATOR: (RoleType.ADMINISTRATOR, "Administrator", 2),
}


def make_role_id(group_type: str, group_bundle: str, name: str) -> str:
    """Role ids follow "<group type>-<group bundle>-<role name>"."""
    return f"{group_type}-{group_bundle}-{name}"


class OgRole(Base, TimestampMixin):
    """
    Role within a group bundle.

    Permission checks on a role are exact matches; resolving "any" versus
    "own" variants is the access engine's job.
    """
    __tablename__ = "og_roles"
    __table_args__ = (
        UniqueConstraint("group_type", "group_bundle", "name", name="uq_og_role_bundle_name"),
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    name: Mapped[str] = mapped_column(String(64), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)

    # Group bundle the role applies to
    group_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    group_bundle: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    role_type: Mapped[RoleType] = mapped_column(
        SQLEnum(RoleType),
        default=RoleType.STANDARD,
        nullable=False,
    )
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    weight: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Ordered, unique permission names
    permissions: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    @property
    def is_locked(self) -> bool:
        """Built-in roles can't be deleted on their own."""
        return self.role_type is not None and self.role_type != RoleType.STANDARD

    def get_permissions(self) -> List[str]:
        return list(self.permissions or [])

    def has_permission(self, permission: str) -> bool:
        return permission in (self.permissions or [])

    def grant_permission(self, permission: str) -> "OgRole":
        current = self.get_permissions()
        if permission not in current:
            # Reassign so the JSON column is flagged dirty
            self.permissions = current + [permission]
        return self

    def revoke_permission(self, permission: str) -> "OgRole":
        current = self.get_permissions()
        if permission in current:
            self.permissions = [p for p in current if p != permission]
        return self

    def change_permissions(self, changes: dict[str, bool]) -> "OgRole":
        """Grant (True) or revoke (False) several permissions at once."""
        for permission, grant in changes.items():
            if grant:
                self.grant_permission(permission)
            else:
                self.revoke_permission(permission)
        return self

    def __repr__(self) -> str:
        return f"<OgRole(id={self.id!r}, permissions={len(self.permissions or [])})>"
