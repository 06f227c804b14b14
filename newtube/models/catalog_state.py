"""Catalog state ORM model.

A single row holding the catalog generation. Every catalog write bumps it
inside the write transaction so other processes can detect changes.
"""

from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import Mapped, mapped_column

from newtube.models.base import Base

CATALOG_STATE_ID = 1


class CatalogState(Base):
    """Persisted catalog generation.

    Attributes:
        id: Always CATALOG_STATE_ID
        generation: Monotonic write counter
    """

    __tablename__ = "catalog_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=CATALOG_STATE_ID)
    generation: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


__all__ = ["CATALOG_STATE_ID", "CatalogState"]
