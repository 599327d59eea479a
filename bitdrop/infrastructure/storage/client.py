"""
Object storage client for drop videos and thumbnails.

Talks to the Supabase storage REST API:
    PUT    {endpoint}/object/{bucket}/{key}
    DELETE {endpoint}/object/{bucket}/{key}
    GET    {endpoint}/object/public/{bucket}/{key}   (public read)

The client is deliberately dumb: it moves bytes and reports failures.
Public URLs are computed from bucket and key rather than taken from the
response, so callers can rebuild them (and reverse them back into keys)
without another round trip.

Mock mode stores objects in memory, enabling API testing without
provisioning a storage project.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

PUBLIC_SEGMENT = "/object/public/"


class StorageError(Exception):
    """Raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: str = "",
    ) -> None:
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


@dataclass
class StorageConfig:
    """Configuration for the storage REST API."""
    endpoint_url: str  # e.g. https://xyz.supabase.co/storage/v1
    service_key: str
    timeout: float = 60.0


def public_url(endpoint_url: str, key: str, bucket: str) -> str:
    """Public-read URL for an object."""
    return f"{endpoint_url.rstrip('/')}{PUBLIC_SEGMENT}{bucket}/{key}"


def key_from_public_url(url: str, bucket: str) -> Optional[str]:
    """
    Recover the object key from a public URL.

    Returns None when the URL doesn't point into the bucket. Callers
    treat that as "nothing to delete" instead of guessing a key.
    """
    marker = f"{PUBLIC_SEGMENT}{bucket}/"
    index = url.find(marker)
    if index == -1:
        return None
    key = url[index + len(marker):]
    return key or None


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    Using a protocol means tests can provide mocks and we can
    swap storage backends without changing dependent code.
    """

    async def put(self, data: bytes, key: str, bucket: str, content_type: str = ...) -> str:
        """Upload an object and return its public URL."""
        ...

    async def delete(self, key: str, bucket: str) -> None:
        """Delete an object."""
        ...

    def public_url(self, key: str, bucket: str) -> str:
        ...

    def key_from_url(self, url: str, bucket: str) -> Optional[str]:
        ...

    async def close(self) -> None:
        ...


class SupabaseStorageClient:
    """
    Supabase storage client over httpx.

    One AsyncClient (and its connection pool) is shared by every request
    for the lifetime of the process; httpx clients are safe for
    concurrent use.
    """

    def __init__(
        self,
        config: StorageConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._endpoint = config.endpoint_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=config.timeout,
            limits=httpx.Limits(
                max_connections=20,
                max_keepalive_connections=10,
                keepalive_expiry=30.0,
            ),
            headers={"Authorization": f"Bearer {config.service_key}"},
            transport=transport,
        )

        logger.info(
            "Initialized Supabase storage client",
            extra={"endpoint": self._endpoint}
        )

    def public_url(self, key: str, bucket: str) -> str:
        return public_url(self._endpoint, key, bucket)

    def key_from_url(self, url: str, bucket: str) -> Optional[str]:
        return key_from_public_url(url, bucket)

    def _object_url(self, key: str, bucket: str) -> str:
        return f"{self._endpoint}/object/{bucket}/{key}"

    async def put(
        self,
        data: bytes,
        key: str,
        bucket: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Upload an object. Returns its public URL."""
        try:
            response = await self._client.put(
                self._object_url(key, bucket),
                content=data,
                headers={"Content-Type": content_type},
            )
        except httpx.HTTPError as e:
            logger.error(
                "Upload request failed",
                extra={"bucket": bucket, "key": key, "error": str(e)}
            )
            raise StorageError(f"upload request failed: {e}")

        if response.status_code not in (200, 201):
            logger.error(
                "Upload rejected",
                extra={
                    "bucket": bucket,
                    "key": key,
                    "status_code": response.status_code,
                }
            )
            raise StorageError(
                f"upload failed: {response.text}",
                status_code=response.status_code,
                payload=response.text,
            )

        logger.debug(
            "Uploaded object",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)}
        )
        return self.public_url(key, bucket)

    async def delete(self, key: str, bucket: str) -> None:
        """Delete an object. 200 and 204 both count as success."""
        try:
            response = await self._client.delete(self._object_url(key, bucket))
        except httpx.HTTPError as e:
            raise StorageError(f"delete request failed: {e}")

        if response.status_code not in (200, 204):
            raise StorageError(
                f"delete failed: {response.text}",
                status_code=response.status_code,
                payload=response.text,
            )

        logger.debug("Deleted object", extra={"bucket": bucket, "key": key})

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    In-memory storage for local development.

    Objects live in a dict keyed by (bucket, key) and URLs follow the same
    public scheme as the real client, so URL-to-key mapping behaves
    identically.
    """

    def __init__(self, endpoint_url: str = "http://localhost/storage/v1") -> None:
        self._endpoint = endpoint_url.rstrip("/")
        self.objects: dict[tuple[str, str], bytes] = {}
        logger.info("Initialized mock storage client (in-memory)")

    def public_url(self, key: str, bucket: str) -> str:
        return public_url(self._endpoint, key, bucket)

    def key_from_url(self, url: str, bucket: str) -> Optional[str]:
        return key_from_public_url(url, bucket)

    async def put(
        self,
        data: bytes,
        key: str,
        bucket: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        self.objects[(bucket, key)] = data
        logger.debug(
            "Stored object in mock storage",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)}
        )
        return self.public_url(key, bucket)

    async def delete(self, key: str, bucket: str) -> None:
        # Supabase answers 200 for missing objects too
        self.objects.pop((bucket, key), None)

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return mock client for testing

    Returns:
        StorageClient implementation (Supabase or Mock)
    """
    if mock_mode:
        return MockStorageClient()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return SupabaseStorageClient(config)
