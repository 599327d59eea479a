"""
Drop ingestion.

Turns a raw video upload into a persisted drop:

1. Stream the upload to a temporary file (size-bounded)
2. Extract a preview frame one second in
3. Upload the video to object storage
4. Upload the preview to object storage
5. Insert the drop record

Both temporary files are registered for removal the moment they are
allocated and removed when ingest() returns, whatever happened. Removal
runs outside the request deadline, so a timed-out ingest still cleans
up after itself.

Object storage and the database can't share a transaction. If the
preview upload or the insert fails after something was uploaded, the
uploaded objects are deleted best-effort (when compensation is enabled).
A failed compensating delete is logged and the orphan is left behind.
Once the insert has been handed to a worker thread it can still commit
after the deadline fires, so a timeout from that point on leaves the
objects in place.
"""

import asyncio
import logging
import mimetypes
import os
import tempfile
import time
from contextlib import ExitStack
from pathlib import Path
from typing import Optional
from uuid import UUID, uuid4

from ..errors import (
    CleanupFailed,
    DropError,
    IngestTimeout,
    PayloadTooLarge,
    PersistenceFailed,
    PreviewGenerationFailed,
    StagingFailed,
    StorageUploadFailed,
)
from .interfaces import DropStore, FrameExtractor, ObjectStore, VideoSource
from .models import Drop

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
THUMBNAIL_DIR_NAME = "bitdrop_thumbs"
THUMBNAIL_KEY_PREFIX = "thumbnails/"
DEFAULT_VIDEO_SUFFIX = ".mp4"


def video_extension(filename: Optional[str]) -> str:
    """
    Extension of the uploaded filename, lowercased, including the dot.

    Anything that doesn't look like a plain extension is dropped so it
    can't leak odd characters into storage keys.
    """
    if not filename:
        return ""
    ext = os.path.splitext(filename)[1].lower()
    if len(ext) < 2 or len(ext) > 10 or not ext[1:].isalnum():
        return ""
    return ext


def _remove_temp_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(
            "Failed to remove temporary file",
            extra={"path": str(path), "error": str(e)}
        )


class _PendingArtifacts:
    """Objects uploaded by one ingest that no record points to yet."""

    def __init__(self) -> None:
        self.keys: list[str] = []
        # Set while the insert runs; a cancelled insert thread keeps going
        self.insert_in_flight = False


class IngestionOrchestrator:
    """
    Runs the ingestion pipeline for one upload at a time.

    Holds no per-request state, so a single instance can serve concurrent
    requests; each call gets its own temp files and storage keys.
    """

    def __init__(
        self,
        storage: ObjectStore,
        frame_extractor: FrameExtractor,
        repository: DropStore,
        bucket: str = "drops",
        max_upload_bytes: int = 100 * 1024 * 1024,
        timeout_seconds: Optional[float] = 120.0,
        preview_offset_seconds: float = 1.0,
        temp_dir: Optional[Path] = None,
        compensate_orphans: bool = True,
    ) -> None:
        self._storage = storage
        self._frames = frame_extractor
        self._repository = repository
        self._bucket = bucket
        self._max_upload_bytes = max_upload_bytes
        self._timeout = timeout_seconds
        self._preview_offset = preview_offset_seconds
        self._temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self._compensate_orphans = compensate_orphans

    async def ingest(
        self,
        user_id: str,
        video: VideoSource,
        caption: str = "",
        group_id: Optional[UUID] = None,
    ) -> Drop:
        """
        Ingest one video for user_id and return the persisted drop.

        Raises a DropError subclass naming the stage that failed.
        """
        drop_id = uuid4()
        pending = _PendingArtifacts()

        logger.info(
            "Drop ingestion started",
            extra={
                "drop_id": str(drop_id),
                "user_id": user_id,
                "video_filename": video.filename,
            }
        )

        with ExitStack() as temp_files:
            try:
                drop = await asyncio.wait_for(
                    self._run_pipeline(
                        temp_files, pending, drop_id,
                        user_id, video, caption, group_id,
                    ),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                logger.error(
                    "Drop ingestion timed out",
                    extra={"drop_id": str(drop_id), "timeout": self._timeout}
                )
                await self._compensate(drop_id, pending)
                raise IngestTimeout(f"Upload did not finish within {self._timeout}s")
            except DropError as e:
                logger.error(
                    "Drop ingestion failed",
                    extra={
                        "drop_id": str(drop_id),
                        "category": e.category,
                        "error": e.detail,
                    }
                )
                await self._compensate(drop_id, pending)
                raise
            except Exception as e:
                logger.error(
                    "Drop ingestion failed unexpectedly",
                    extra={"drop_id": str(drop_id), "error": str(e)},
                    exc_info=e,
                )
                await self._compensate(drop_id, pending)
                raise

        logger.info(
            "Drop ingestion completed",
            extra={"drop_id": str(drop_id), "user_id": user_id}
        )
        return drop

    async def _run_pipeline(
        self,
        temp_files: ExitStack,
        pending: _PendingArtifacts,
        drop_id: UUID,
        user_id: str,
        video: VideoSource,
        caption: str,
        group_id: Optional[UUID],
    ) -> Drop:
        ext = video_extension(video.filename)

        video_path = await self._materialize(temp_files, video, ext)
        thumb_path = self._allocate_thumbnail_path(temp_files)

        await self._extract_preview(video_path, thumb_path)

        video_url = await self._upload(
            video_path, f"{uuid4()}{ext}", pending,
            what="video",
        )
        thumbnail_url = await self._upload(
            thumb_path, f"{THUMBNAIL_KEY_PREFIX}{uuid4()}.jpg", pending,
            what="thumbnail",
        )

        drop = Drop(
            id=drop_id,
            user_id=user_id,
            group_id=group_id,
            video_url=video_url,
            thumbnail=thumbnail_url,
            caption=caption or "",
            votes=0,
        )

        pending.insert_in_flight = True
        try:
            await asyncio.to_thread(self._repository.insert, drop)
        except Exception as e:
            # The insert finished and reported failure, so nothing points at the objects
            pending.insert_in_flight = False
            raise PersistenceFailed(f"Failed to insert drop: {e}") from e

        # Once the record exists the objects belong to it
        pending.keys.clear()
        pending.insert_in_flight = False
        return drop

    # -----------------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------------

    async def _materialize(
        self,
        temp_files: ExitStack,
        video: VideoSource,
        ext: str,
    ) -> Path:
        """Stream the upload into a fresh temp file, enforcing the size limit."""
        try:
            fd, name = tempfile.mkstemp(
                prefix="upload-",
                suffix=ext or DEFAULT_VIDEO_SUFFIX,
                dir=self._temp_dir,
            )
        except OSError as e:
            raise StagingFailed(f"Failed to create temporary file: {e}") from e
        path = Path(name)
        temp_files.callback(_remove_temp_file, path)

        written = 0
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = await video.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self._max_upload_bytes:
                        raise PayloadTooLarge(
                            f"Video exceeds the {self._max_upload_bytes} byte limit"
                        )
                    out.write(chunk)
        except OSError as e:
            raise StagingFailed(f"Failed to write upload to disk: {e}") from e

        logger.debug(
            "Staged upload",
            extra={"path": str(path), "size_bytes": written}
        )
        return path

    def _allocate_thumbnail_path(self, temp_files: ExitStack) -> Path:
        """
        Pick a fresh destination for the preview frame.

        ffmpeg overwrites its output, so a stale file at the chosen path
        is removed first; if that fails we stop rather than risk serving
        an unrelated image.
        """
        thumb_dir = self._temp_dir / THUMBNAIL_DIR_NAME
        try:
            thumb_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PreviewGenerationFailed(f"Failed to create thumbnail directory: {e}") from e

        path = thumb_dir / f"thumb-{uuid4()}-{time.time_ns()}.jpg"
        temp_files.callback(_remove_temp_file, path)

        if path.exists():
            logger.warning("Thumbnail file already exists, removing", extra={"path": str(path)})
            try:
                path.unlink()
            except OSError as e:
                raise CleanupFailed(f"Failed to remove existing thumbnail file: {e}") from e

        return path

    async def _extract_preview(self, video_path: Path, thumb_path: Path) -> None:
        try:
            await self._frames.extract_frame(video_path, thumb_path, self._preview_offset)
        except Exception as e:
            raise PreviewGenerationFailed(f"Failed to generate thumbnail: {e}") from e

        if not thumb_path.exists() or thumb_path.stat().st_size == 0:
            raise PreviewGenerationFailed("Failed to generate thumbnail: no frame produced")

    async def _upload(
        self,
        path: Path,
        key: str,
        pending: _PendingArtifacts,
        what: str,
    ) -> str:
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageUploadFailed(f"Failed to read {what} for upload: {e}") from e
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"

        try:
            url = await self._storage.put(data, key, self._bucket, content_type=content_type)
        except Exception as e:
            raise StorageUploadFailed(f"Failed to upload {what}: {e}") from e

        pending.keys.append(key)
        logger.info(
            "Uploaded drop artifact",
            extra={"artifact": what, "key": key, "size_bytes": len(data)}
        )
        return url

    async def _compensate(self, drop_id: UUID, pending: _PendingArtifacts) -> None:
        """Best-effort removal of artifacts that no record will point to."""
        if not pending.keys:
            return

        if pending.insert_in_flight:
            logger.warning(
                "Insert may still commit, leaving artifacts in storage",
                extra={"drop_id": str(drop_id), "keys": list(pending.keys)}
            )
            return

        if not self._compensate_orphans:
            logger.warning(
                "Leaving orphaned artifacts in storage",
                extra={"drop_id": str(drop_id), "keys": list(pending.keys)}
            )
            return

        for key in list(pending.keys):
            try:
                await self._storage.delete(key, self._bucket)
            except Exception as e:
                logger.warning(
                    "Failed to delete orphaned artifact",
                    extra={"drop_id": str(drop_id), "key": key, "error": str(e)}
                )
        pending.keys.clear()
