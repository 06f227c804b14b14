"""Shared type aliases.

Aliases used by more than one layer live here so services and the
container agree on callable shapes.
"""

from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

# Opens a new catalog session
SessionFactory = Callable[[], AsyncSession]

# Called with the id of a written entity, or None when everything is stale
InvalidationListener = Callable[[str | None], None]

__all__ = [
    "InvalidationListener",
    "SessionFactory",
]
