"""Tests for newtube.core.database module."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from newtube.core.database import check_db_connection, create_engine
from newtube.models.channel import Channel

URL = "https://www.youtube.com/@example"


@pytest.mark.unit
def test_base_tablename():
    """Test that __tablename__ is defined."""
    assert Channel.__tablename__ == "channels"


@pytest.mark.unit
def test_model_repr():
    channel = Channel(url=URL, name="Repr Test")
    assert "Repr Test" in repr(channel)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_timestamp_mixin(session_factory):
    """Test TimestampMixin provides created_at and updated_at."""
    async with session_factory() as session:
        channel = Channel(url=URL, name="Timestamp Test")
        session.add(channel)
        await session.commit()
        await session.refresh(channel)

        assert channel.created_at is not None
        assert channel.updated_at is not None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_crud_operations(session_factory):
    """Test basic CRUD operations."""
    async with session_factory() as session:
        session.add(Channel(url=URL, name="CRUD Test"))
        await session.commit()

        fetched = (await session.execute(select(Channel).where(Channel.url == URL))).scalar_one()
        assert fetched.name == "CRUD Test"

        fetched.name = "Updated"
        await session.commit()
        await session.refresh(fetched)
        assert fetched.name == "Updated"

        await session.delete(fetched)
        await session.commit()

        result = await session.execute(select(Channel).where(Channel.url == URL))
        assert result.scalar_one_or_none() is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_duplicate_url_rejected(session_factory):
    async with session_factory() as session:
        session.add(Channel(url=URL))
        await session.commit()

    async with session_factory() as session:
        session.add(Channel(url=URL))
        with pytest.raises(IntegrityError):
            await session.commit()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_session_rollback(session_factory):
    """Test that session rollback works."""
    async with session_factory() as session:
        session.add(Channel(url=URL))
        await session.flush()
        assert len((await session.execute(select(Channel))).scalars().all()) == 1

        await session.rollback()
        assert (await session.execute(select(Channel))).scalars().all() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sqlite_uses_wal(engine):
    async with engine.connect() as conn:
        mode = (await conn.execute(text("PRAGMA journal_mode"))).scalar()
    assert mode == "wal"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health_check_ok(engine):
    assert await check_db_connection(engine) is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health_check_failure():
    engine = MagicMock()
    engine.begin.side_effect = OSError("unreachable")
    assert await check_db_connection(engine) is False

