"""Base model mixins and utilities.

This module provides reusable mixins for common model patterns:
- TimestampMixin: created_at and updated_at fields
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from newtube.core.database import Base


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps.

    Example:
        >>> class Post(Base, TimestampMixin):
        ...     __tablename__ = "posts"
        ...     title: Mapped[str]
    """

    @declared_attr
    @classmethod
    def created_at(cls) -> Mapped[datetime]:
        """Timestamp when record was created."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        )

    @declared_attr
    @classmethod
    def updated_at(cls) -> Mapped[datetime]:
        """Timestamp when record was last updated."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        )


__all__ = [
    "Base",
    "TimestampMixin",
]
