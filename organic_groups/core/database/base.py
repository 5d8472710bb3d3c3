"""
Declarative base shared by the users, entities, registry, role and
membership tables.

Rows are keyed by ULID strings (26 characters) except roles, whose ids are
derived from the group bundle and role name (e.g. "node-club-member").
"""
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from ulid import ULID


def generate_ulid() -> str:
    """Primary key default for entities, memberships, users and registry rows."""
    return str(ULID())


class Base(DeclarativeBase):
    """
    Metadata root; `init_db` creates every table registered on it.

    Models must be imported by `import_models` before `create_all` runs.
    """
    pass


class TimestampMixin:
    """
    created_at / updated_at columns filled by the database.

    Membership creation time (`OgMembership.get_created_time`) and the
    oldest-membership-wins ordering of `get_membership` read `created_at`.
    """
    # Fetch server-generated timestamps on flush; async sessions can't lazy load them
    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
