"""
Interfaces the drop orchestrators depend on.

Using Protocols here means the orchestrators don't know or care whether
they talk to Supabase and Snowflake or to in-memory fakes. The
infrastructure package provides the real implementations.
"""

from pathlib import Path
from typing import Optional, Protocol
from uuid import UUID

from .models import Drop


class ObjectStore(Protocol):
    """Blob storage addressed by (bucket, key)."""

    async def put(
        self,
        data: bytes,
        key: str,
        bucket: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Upload bytes and return the object's public URL."""
        ...

    async def delete(self, key: str, bucket: str) -> None:
        ...

    def key_from_url(self, url: str, bucket: str) -> Optional[str]:
        """Reverse a public URL into its key, or None if it isn't ours."""
        ...


class FrameExtractor(Protocol):
    """Produces one still image from a video file."""

    async def extract_frame(
        self,
        video_path: Path,
        output_path: Path,
        offset_seconds: float = 1.0,
    ) -> None:
        ...


class DropStore(Protocol):
    """Relational persistence for drops. Synchronous; called off the event loop."""

    def insert(self, drop: Drop) -> None: ...

    def get(self, drop_id: UUID) -> Optional[Drop]: ...

    def delete(self, drop_id: UUID) -> bool: ...


class VideoSource(Protocol):
    """An incoming upload. FastAPI's UploadFile satisfies this."""

    filename: Optional[str]

    async def read(self, size: int = -1) -> bytes: ...
