"""
OgMembership model: the relation between one user and one group.

Group content is associated with groups through plain audience fields; users
need more than a reference (state, roles, creation time), so they get a
membership record. The record also names the audience field ("channel") it
was made through, which lets a user hold e.g. a default and a premium
membership in the same group.
"""
from datetime import datetime
from typing import Dict, Iterable, List
from sqlalchemy import String, ForeignKey, Table, Column, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from organic_groups.core import config
from organic_groups.core.database.base import Base, TimestampMixin, generate_ulid
from organic_groups.core.exceptions import InvalidMembership
from organic_groups.features.permissions.catalog import ANONYMOUS, AUTHENTICATED
from organic_groups.features.permissions.models import OgRole
from organic_groups.features.users.models import is_anonymous


TYPE_DEFAULT = "default"


class MembershipState(str, enum.Enum):
    """State of a membership."""
    ACTIVE = "active"
    PENDING = "pending"
    BLOCKED = "blocked"


# Membership-Role relationship
og_membership_roles = Table(
    "og_membership_roles",
    Base.metadata,
    Column("membership_id", String(26), ForeignKey("og_memberships.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(255), ForeignKey("og_roles.id", ondelete="CASCADE"), primary_key=True),
)


class OgMembership(Base, TimestampMixin):
    """
    Membership entity that connects a group and a user.

    Usage:
        membership = OgMembership(type=TYPE_DEFAULT)
        membership.set_user(user).set_group(group).set_field_name("og_group_ref")
        await save_membership(db, og, membership)
    """
    __tablename__ = "og_memberships"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Membership bundle
    type: Mapped[str] = mapped_column(String(64), default=TYPE_DEFAULT, nullable=False)

    uid: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    # Group the user is a member of
    group_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    group_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)

    state: Mapped[MembershipState] = mapped_column(
        SQLEnum(MembershipState),
        default=MembershipState.ACTIVE,
        nullable=False,
        index=True
    )

    # Audience field the membership was established through
    field_name: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    roles: Mapped[list[OgRole]] = relationship(
        OgRole,
        secondary=og_membership_roles,
        lazy="selectin",
        order_by=OgRole.weight,
    )

    # Getters and setters return self so calls can be chained

    def set_user(self, user) -> "OgMembership":
        if is_anonymous(user):
            raise InvalidMembership("OG membership can not be created for an empty or anonymous user.")
        self.uid = user.id
        return self

    def set_group(self, group) -> "OgMembership":
        self.group_type = group.entity_type
        self.group_id = group.id
        return self

    def set_field_name(self, field_name: str) -> "OgMembership":
        self.field_name = field_name
        return self

    def get_field_name(self) -> str | None:
        return self.field_name

    def set_state(self, state: MembershipState | str) -> "OgMembership":
        # No transition rules here; whoever triggers the change owns the policy
        self.state = MembershipState(state)
        return self

    def get_state(self) -> MembershipState:
        return self.state

    def is_active(self) -> bool:
        return self.state == MembershipState.ACTIVE

    def set_created_time(self, created: datetime) -> "OgMembership":
        self.created_at = created
        return self

    def get_created_time(self) -> datetime | None:
        return self.created_at

    def get_type(self) -> str:
        return self.type

    def set_roles(self, roles: Iterable[OgRole] = ()) -> "OgMembership":
        unique: List[OgRole] = []
        seen = set()
        for role in roles:
            if role.id in seen:
                continue
            seen.add(role.id)
            unique.append(role)
        self.roles = unique
        return self

    def add_role(self, role: OgRole) -> "OgMembership":
        if role.id not in self.get_roles_ids():
            self.roles.append(role)
        return self

    def revoke_role(self, role: OgRole) -> "OgMembership":
        for existing in list(self.roles):
            if existing.id == role.id:
                self.roles.remove(existing)
                break
        return self

    def get_roles(self) -> List[OgRole]:
        return list(self.roles)

    def get_roles_ids(self) -> List[str]:
        return [role.id for role in self.roles]

    def has_role(self, role_id: str) -> bool:
        return role_id in self.get_roles_ids()

    def get_effective_roles(self, default_roles: Dict[str, OgRole]) -> List[OgRole]:
        """
        Roles the membership acts with: the assigned roles with the implicit
        defaults of its state layered on top.

        - active: the member role plus every assigned role
        - pending: the non-member role only
        - blocked: nothing

        Args:
            default_roles: Built-in roles of the group bundle, by role name
        """
        if self.state == MembershipState.BLOCKED:
            return []
        if self.state == MembershipState.PENDING:
            return [default_roles[ANONYMOUS]]
        member_role = default_roles[AUTHENTICATED]
        return [member_role] + [role for role in self.roles if role.id != member_role.id]

    def has_permission(self, permission: str, default_roles: Dict[str, OgRole]) -> bool:
        """True if any effective role grants the permission (exact match)."""
        return any(role.has_permission(permission) for role in self.get_effective_roles(default_roles))

    def pre_save(self) -> None:
        """
        Validate before the membership is written.

        Raises:
            InvalidMembership: If there is no user, or the group is missing
        """
        if not self.field_name:
            self.field_name = config.OG_DEFAULT_AUDIENCE_FIELD

        # Check the value itself, empty strings and "0" included
        if not self.uid or self.uid == "0":
            raise InvalidMembership("OG membership can not be created for an empty or anonymous user.")

        if not self.group_type or not self.group_id:
            raise InvalidMembership(
                "OG membership must reference a group.",
                {"group_type": self.group_type, "group_id": self.group_id},
            )

    def __repr__(self) -> str:
        return (
            f"<OgMembership(id={self.id}, uid={self.uid}, group={self.group_type}:{self.group_id}, "
            f"state={self.state}, field={self.field_name})>"
        )
