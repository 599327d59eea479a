"""
Object storage integration for drop videos and thumbnails.

Speaks the Supabase storage REST API over httpx.
Includes mock mode for local development without credentials.
"""

from .client import (
    MockStorageClient,
    StorageClient,
    StorageConfig,
    StorageError,
    SupabaseStorageClient,
    create_storage_client,
    key_from_public_url,
    public_url,
)

__all__ = [
    "MockStorageClient",
    "StorageClient",
    "StorageConfig",
    "StorageError",
    "SupabaseStorageClient",
    "create_storage_client",
    "key_from_public_url",
    "public_url",
]
