"""
Persistent group registry: which bundles are groups and which audience
fields make a bundle group content.
"""
from typing import List
from sqlalchemy import String, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from organic_groups.core.database.base import Base, TimestampMixin, generate_ulid


class GroupBundle(Base, TimestampMixin):
    """An entity type + bundle declared as a group."""
    __tablename__ = "og_group_bundles"
    __table_args__ = (
        UniqueConstraint("entity_type", "bundle", name="uq_og_group_bundle"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    bundle: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<GroupBundle({self.entity_type}:{self.bundle})>"


class GroupContentField(Base, TimestampMixin):
    """An audience field attached to a bundle, referencing groups of `target_type`."""
    __tablename__ = "og_group_content_fields"
    __table_args__ = (
        UniqueConstraint("entity_type", "bundle", "field_name", name="uq_og_group_content_field"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    bundle: Mapped[str] = mapped_column(String(64), nullable=False)
    field_name: Mapped[str] = mapped_column(String(64), nullable=False)
    target_type: Mapped[str] = mapped_column(String(64), nullable=False)

    # Restrict the field to some group bundles; empty means all
    target_bundles: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    def __repr__(self) -> str:
        return f"<GroupContentField({self.entity_type}:{self.bundle}.{self.field_name} -> {self.target_type})>"
