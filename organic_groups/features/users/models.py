"""
User model with ULID primary keys, and the anonymous visitor sentinel.
"""
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from organic_groups.core.database.base import Base, TimestampMixin, generate_ulid


@runtime_checkable
class Account(Protocol):
    """What the access engine needs to know about the acting user."""

    @property
    def id(self) -> Optional[str]:
        ...

    @property
    def is_authenticated(self) -> bool:
        ...

    @property
    def is_admin(self) -> bool:
        ...


class User(Base, TimestampMixin):
    """
    User model representing authenticated users.

    Uses ULID instead of auto-incrementing integers for better distributed systems support.
    Users flagged `is_admin` hold the "bypass og access" capability.
    """
    __tablename__ = "users"

    # Primary key using ULID (Universally Unique Lexicographically Sortable Identifier)
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_authenticated(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"


class AnonymousUser:
    """The unauthenticated visitor. Never stored, never a member."""

    id: Optional[str] = None
    name = "Anonymous"
    is_authenticated = False
    is_admin = False
    is_active = True

    def __eq__(self, other) -> bool:
        return isinstance(other, AnonymousUser)

    def __hash__(self) -> int:
        return hash(AnonymousUser)

    def __repr__(self) -> str:
        return "<AnonymousUser>"


ANONYMOUS_USER = AnonymousUser()


def is_anonymous(user) -> bool:
    """True for the anonymous sentinel, None, or any account without an id."""
    if user is None:
        return True
    return not getattr(user, "is_authenticated", False) or not getattr(user, "id", None)
