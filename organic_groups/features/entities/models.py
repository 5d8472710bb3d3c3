"""
Generic entity records.

Groups and group content are both stored here: an entity is identified by
its type, bundle and id, has an optional owner, and keeps the values of its
audience fields as lists of referenced group ids.
"""
from typing import Any, Dict, List
from sqlalchemy import String, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from organic_groups.core.database.base import Base, TimestampMixin, generate_ulid


class Entity(Base, TimestampMixin):
    """
    Entity that can be declared a group, group content, or both.

    Examples:
    - entity_type="node", bundle="article", references={"og_group_ref": ["01H..."]}
    - entity_type="entity_test", bundle="club" (a group bundle)
    """
    __tablename__ = "og_entities"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    entity_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    bundle: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    owner_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Audience field name -> referenced entity ids
    references: Mapped[Dict[str, List[Any]]] = mapped_column(JSON, default=dict, nullable=False)

    def get_referenced_ids(self, field_name: str) -> List[str]:
        """Referenced ids in an audience field, unset values dropped."""
        values = (self.references or {}).get(field_name) or []
        return [str(value) for value in values if value not in (None, "", 0, "0")]

    def set_references(self, field_name: str, ids: List[str]) -> "Entity":
        references = dict(self.references or {})
        references[field_name] = list(ids)
        self.references = references
        return self

    def __repr__(self) -> str:
        return f"<Entity(id={self.id}, type={self.entity_type}, bundle={self.bundle}, owner={self.owner_id})>"
