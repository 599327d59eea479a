"""
Drop retraction.

Removes a drop on behalf of its owner: ownership check, then artifact
deletion, then the record. Artifact deletion is best-effort. A storage
hiccup must not leave a user unable to delete their drop, so failed
deletes are logged and the record is removed anyway. Only a failure to
delete the record itself is reported.
"""

import asyncio
import logging
from typing import Union
from uuid import UUID

from ..errors import Forbidden, NotFound, PersistenceFailed
from .interfaces import DropStore, ObjectStore
from .models import Drop

logger = logging.getLogger(__name__)


class RetractionOrchestrator:
    """Deletes drops and their stored artifacts."""

    def __init__(
        self,
        storage: ObjectStore,
        repository: DropStore,
        bucket: str = "drops",
    ) -> None:
        self._storage = storage
        self._repository = repository
        self._bucket = bucket

    async def retract(self, user_id: str, drop_id: Union[UUID, str]) -> None:
        """
        Delete drop_id if user_id owns it.

        Raises NotFound for unknown (or unparseable) ids, Forbidden when
        someone else owns the drop, PersistenceFailed when the record
        could not be deleted.
        """
        drop = await self._load(drop_id)

        if not drop.is_owned_by(user_id):
            logger.warning(
                "Retraction refused: caller is not the owner",
                extra={"drop_id": str(drop.id), "user_id": user_id}
            )
            raise Forbidden("You do not have permission to delete this drop")

        for url in (drop.video_url, drop.thumbnail):
            await self._delete_artifact(drop, url)

        try:
            deleted = await asyncio.to_thread(self._repository.delete, drop.id)
        except Exception as e:
            raise PersistenceFailed(f"Failed to delete drop: {e}") from e

        if not deleted:
            # Lost a race with a concurrent retraction; the outcome is the same
            logger.info("Drop already deleted", extra={"drop_id": str(drop.id)})

        logger.info(
            "Drop retracted",
            extra={"drop_id": str(drop.id), "user_id": user_id}
        )

    async def _load(self, drop_id: Union[UUID, str]) -> Drop:
        if not isinstance(drop_id, UUID):
            try:
                drop_id = UUID(str(drop_id))
            except ValueError:
                raise NotFound("Drop not found")

        try:
            drop = await asyncio.to_thread(self._repository.get, drop_id)
        except Exception as e:
            raise PersistenceFailed(f"Failed to load drop: {e}") from e

        if drop is None:
            raise NotFound("Drop not found")
        return drop

    async def _delete_artifact(self, drop: Drop, url: str) -> None:
        key = self._storage.key_from_url(url, self._bucket)
        if key is None:
            logger.warning(
                "Artifact URL is outside the bucket, skipping delete",
                extra={"drop_id": str(drop.id), "url": url}
            )
            return

        try:
            await self._storage.delete(key, self._bucket)
        except Exception as e:
            logger.warning(
                "Failed to delete drop artifact",
                extra={"drop_id": str(drop.id), "key": key, "error": str(e)}
            )
