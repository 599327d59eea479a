"""
Shared fakes for the drop pipeline tests.

The fakes record every call so tests can assert on side effects
(what was uploaded, what was deleted) without real services.
"""

import asyncio
import io
from pathlib import Path
from typing import Optional
from uuid import UUID

import pytest

from bitdrop.core.drops.models import Drop
from bitdrop.infrastructure.storage.client import key_from_public_url, public_url
from bitdrop.infrastructure.video.processor import PLACEHOLDER_JPEG

ENDPOINT = "https://project.supabase.co/storage/v1"


class FakeUpload:
    """Stands in for FastAPI's UploadFile."""

    def __init__(self, data: bytes, filename: Optional[str] = "clip.mp4") -> None:
        self.filename = filename
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


class FakeStorage:
    """In-memory object store that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.puts: list[tuple[str, str, str]] = []
        self.deletes: list[tuple[str, str]] = []
        self.fail_put_on: Optional[int] = None  # 1-based index of the put to fail
        self.put_delay_on: Optional[int] = None
        self.fail_deletes = False

    async def put(self, data: bytes, key: str, bucket: str, content_type: str = "application/octet-stream") -> str:
        self.puts.append((bucket, key, content_type))
        index = len(self.puts)
        if self.put_delay_on == index:
            await asyncio.sleep(10)
        if self.fail_put_on == index:
            raise RuntimeError("storage unavailable")
        self.objects[(bucket, key)] = data
        return public_url(ENDPOINT, key, bucket)

    async def delete(self, key: str, bucket: str) -> None:
        self.deletes.append((bucket, key))
        if self.fail_deletes:
            raise RuntimeError("delete refused")
        self.objects.pop((bucket, key), None)

    def key_from_url(self, url: str, bucket: str) -> Optional[str]:
        return key_from_public_url(url, bucket)


class FakeFrameExtractor:
    """Writes a placeholder frame, or fails / hangs on request."""

    def __init__(self, fail: bool = False, hang: bool = False) -> None:
        self.fail = fail
        self.hang = hang
        self.calls: list[tuple[Path, Path, float]] = []

    async def extract_frame(self, video_path: Path, output_path: Path, offset_seconds: float = 1.0) -> None:
        self.calls.append((video_path, output_path, offset_seconds))
        if self.hang:
            await asyncio.sleep(10)
        if self.fail:
            raise RuntimeError("video shorter than offset")
        output_path.write_bytes(PLACEHOLDER_JPEG)


class FakeDropStore:
    """Dict-backed drop store."""

    def __init__(self) -> None:
        self.drops: dict[UUID, Drop] = {}
        self.fail_insert = False
        self.fail_get = False
        self.fail_delete = False
        self.deleted: list[UUID] = []

    def insert(self, drop: Drop) -> None:
        if self.fail_insert:
            raise RuntimeError("connection reset")
        self.drops[drop.id] = drop

    def get(self, drop_id: UUID) -> Optional[Drop]:
        if self.fail_get:
            raise RuntimeError("connection reset")
        return self.drops.get(drop_id)

    def delete(self, drop_id: UUID) -> bool:
        if self.fail_delete:
            raise RuntimeError("connection reset")
        self.deleted.append(drop_id)
        return self.drops.pop(drop_id, None) is not None


def leftover_files(directory: Path) -> list[Path]:
    return [p for p in directory.rglob("*") if p.is_file()]


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def frames() -> FakeFrameExtractor:
    return FakeFrameExtractor()


@pytest.fixture
def drop_store() -> FakeDropStore:
    return FakeDropStore()
