"""
Unit tests for the retraction orchestrator.
"""

from uuid import uuid4

import pytest

from bitdrop.core.drops.models import Drop
from bitdrop.core.drops.retraction import RetractionOrchestrator
from bitdrop.core.errors import Forbidden, NotFound, PersistenceFailed
from bitdrop.infrastructure.storage.client import public_url

from conftest import ENDPOINT


@pytest.fixture
def orchestrator(storage, drop_store) -> RetractionOrchestrator:
    return RetractionOrchestrator(storage=storage, repository=drop_store, bucket="drops")


@pytest.fixture
def stored_drop(storage, drop_store) -> Drop:
    video_key = f"{uuid4()}.mp4"
    thumb_key = f"thumbnails/{uuid4()}.jpg"
    storage.objects[("drops", video_key)] = b"video"
    storage.objects[("drops", thumb_key)] = b"thumb"

    drop = Drop(
        user_id="alice",
        video_url=public_url(ENDPOINT, video_key, "drops"),
        thumbnail=public_url(ENDPOINT, thumb_key, "drops"),
    )
    drop_store.insert(drop)
    return drop


class TestRetraction:

    @pytest.mark.asyncio
    async def test_owner_retracts(self, orchestrator, storage, drop_store, stored_drop):
        await orchestrator.retract("alice", stored_drop.id)

        assert stored_drop.id not in drop_store.drops
        assert len(storage.deletes) == 2
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_accepts_string_id(self, orchestrator, drop_store, stored_drop):
        await orchestrator.retract("alice", str(stored_drop.id))
        assert drop_store.drops == {}

    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden(self, orchestrator, storage, drop_store, stored_drop):
        with pytest.raises(Forbidden):
            await orchestrator.retract("bob", stored_drop.id)

        assert stored_drop.id in drop_store.drops
        assert storage.deletes == []
        assert len(storage.objects) == 2

    @pytest.mark.asyncio
    async def test_unknown_drop(self, orchestrator, storage):
        with pytest.raises(NotFound):
            await orchestrator.retract("alice", uuid4())
        assert storage.deletes == []

    @pytest.mark.asyncio
    async def test_unparseable_id(self, orchestrator, storage):
        with pytest.raises(NotFound):
            await orchestrator.retract("alice", "not-a-uuid")
        assert storage.deletes == []

    @pytest.mark.asyncio
    async def test_storage_failures_are_suppressed(self, orchestrator, storage, drop_store, stored_drop):
        """A storage hiccup never blocks deleting the record."""
        storage.fail_deletes = True

        await orchestrator.retract("alice", stored_drop.id)

        assert len(storage.deletes) == 2
        assert drop_store.drops == {}

    @pytest.mark.asyncio
    async def test_foreign_urls_are_skipped(self, orchestrator, storage, drop_store):
        drop = Drop(
            user_id="alice",
            video_url="https://cdn.example.com/legacy.mp4",
            thumbnail="https://cdn.example.com/legacy.jpg",
        )
        drop_store.insert(drop)

        await orchestrator.retract("alice", drop.id)

        assert storage.deletes == []
        assert drop_store.drops == {}

    @pytest.mark.asyncio
    async def test_record_delete_failure(self, orchestrator, drop_store, stored_drop):
        drop_store.fail_delete = True
        with pytest.raises(PersistenceFailed):
            await orchestrator.retract("alice", stored_drop.id)

    @pytest.mark.asyncio
    async def test_lookup_failure(self, orchestrator, storage, drop_store, stored_drop):
        drop_store.fail_get = True
        with pytest.raises(PersistenceFailed):
            await orchestrator.retract("alice", stored_drop.id)
        assert storage.deletes == []

    @pytest.mark.asyncio
    async def test_concurrent_retraction_already_removed_record(self, orchestrator, drop_store, stored_drop):
        """Losing the race to another retraction still counts as success."""
        original_delete = drop_store.delete

        def delete_after_someone_else(drop_id):
            drop_store.drops.pop(drop_id, None)
            return original_delete(drop_id)

        drop_store.delete = delete_after_someone_else

        await orchestrator.retract("alice", stored_drop.id)
        assert drop_store.drops == {}
