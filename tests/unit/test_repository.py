"""
Unit tests for DropRepository against the in-memory mock connection.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from bitdrop.core.drops.models import Drop, Visibility, utcnow
from bitdrop.infrastructure.snowflake.client import (
    MockSnowflakeConnection,
    SharedConnectionPool,
    SnowflakeConnectionPool,
    create_connection_pool,
)
from bitdrop.infrastructure.snowflake.repositories.drops import DropRepository


def make_drop(user_id: str = "alice", **kwargs) -> Drop:
    return Drop(
        user_id=user_id,
        video_url=f"https://x/object/public/drops/{uuid4()}.mp4",
        thumbnail=f"https://x/object/public/drops/thumbnails/{uuid4()}.jpg",
        **kwargs,
    )


@pytest.fixture
def connection() -> MockSnowflakeConnection:
    return MockSnowflakeConnection()


@pytest.fixture
def repository(connection) -> DropRepository:
    return DropRepository(connection)


class TestDropRepository:

    def test_insert_and_get(self, repository):
        group = uuid4()
        drop = make_drop(caption="hi", group_id=group)
        repository.insert(drop)

        loaded = repository.get(drop.id)
        assert loaded is not None
        assert loaded.id == drop.id
        assert loaded.user_id == "alice"
        assert loaded.group_id == group
        assert loaded.caption == "hi"
        assert loaded.votes == 0

    def test_visibility_comes_from_the_database(self, repository):
        drop = make_drop()
        repository.insert(drop)
        assert repository.get(drop.id).visibility is Visibility.PRIVATE

    def test_get_unknown(self, repository):
        assert repository.get(uuid4()) is None

    def test_duplicate_insert_fails(self, repository):
        drop = make_drop()
        repository.insert(drop)
        with pytest.raises(RuntimeError):
            repository.insert(drop)

    def test_list_for_user_newest_first(self, repository):
        now = utcnow()
        older = make_drop(created_at=now - timedelta(minutes=5))
        newer = make_drop(created_at=now)
        someone_else = make_drop(user_id="bob")
        for drop in (older, newer, someone_else):
            repository.insert(drop)

        drops = repository.list_for_user("alice")
        assert [d.id for d in drops] == [newer.id, older.id]

    def test_get_details_includes_owner(self, repository, connection):
        connection._add_user("alice", "alice_drops", "https://x/avatar.png")
        drop = make_drop()
        repository.insert(drop)

        details = repository.get_details(drop.id)
        assert details.drop.id == drop.id
        assert details.owner.id == "alice"
        assert details.owner.username == "alice_drops"
        assert details.owner.avatar_url == "https://x/avatar.png"

    def test_get_details_without_profile(self, repository):
        drop = make_drop()
        repository.insert(drop)

        details = repository.get_details(drop.id)
        assert details.owner.username == ""
        assert details.owner.avatar_url == ""

    def test_get_details_unknown(self, repository):
        assert repository.get_details(uuid4()) is None

    def test_delete(self, repository, connection):
        drop = make_drop()
        repository.insert(drop)

        assert repository.delete(drop.id) is True
        assert connection._get_drop(drop.id) is None
        assert repository.delete(drop.id) is False

    def test_errors_propagate(self, repository, connection):
        connection.fail_next = RuntimeError("warehouse suspended")
        with pytest.raises(RuntimeError, match="warehouse suspended"):
            repository.insert(make_drop())

    def test_ping(self, repository):
        repository.ping()

    def test_create_schema(self, repository):
        repository.create_schema()


class TestConnectionPool:

    def test_reuses_returned_connections(self):
        opened = []

        def connect():
            conn = MockSnowflakeConnection()
            opened.append(conn)
            return conn

        pool = SnowflakeConnectionPool(pool_size=2, connect=connect)
        with pool.get_connection() as first:
            pass
        with pool.get_connection() as second:
            pass

        assert first is second
        assert len(opened) == 1

    def test_connection_returned_after_error(self):
        pool = SnowflakeConnectionPool(pool_size=1, connect=MockSnowflakeConnection)

        with pytest.raises(ValueError):
            with pool.get_connection() as conn:
                raise ValueError("handler failed")

        with pool.get_connection() as again:
            assert again is conn

    def test_concurrent_checkouts_get_distinct_connections(self):
        pool = SnowflakeConnectionPool(pool_size=2, connect=MockSnowflakeConnection)
        with pool.get_connection() as a, pool.get_connection() as b:
            assert a is not b

    def test_requires_config_or_connect(self):
        with pytest.raises(ValueError):
            SnowflakeConnectionPool()

    def test_mock_factory_shares_one_connection(self):
        pool = create_connection_pool(mock_mode=True)
        assert isinstance(pool, SharedConnectionPool)
        with pool.get_connection() as a, pool.get_connection() as b:
            assert a is b
