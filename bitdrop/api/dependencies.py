"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests with fakes
- Configuration is centralized

Long-lived clients (storage, frame extractor, connection pool) are created
once in the application lifespan and kept on app.state; the functions
here only hand them out.
"""

import logging
from typing import Annotated, Generator, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.auth.tokens import TokenVerifier
from ..core.drops.ingestion import IngestionOrchestrator
from ..core.drops.retraction import RetractionOrchestrator
from ..core.errors import Unauthenticated
from ..infrastructure.snowflake.repositories.drops import DropRepository
from ..infrastructure.storage.client import StorageClient
from ..infrastructure.video.processor import FrameExtractor

logger = logging.getLogger(__name__)

# Read the raw header so the verifier can tell missing from malformed
authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def get_token_verifier(
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenVerifier:
    return TokenVerifier(settings.jwt_secrets)


async def get_current_user(
    request: Request,
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
    authorization: Optional[str] = Security(authorization_header),
) -> str:
    """
    Resolve the caller identity from the bearer token.

    Every authentication failure gets the same 401 so responses don't
    reveal which check failed; the specific reason is logged.
    On success the identity is also stored on request.state.user_id.
    """
    try:
        user_id = verifier.verify(authorization)
    except Unauthenticated as e:
        logger.warning(
            "Rejected credential",
            extra={"reason": type(e).__name__, "path": request.url.path}
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user_id = user_id
    return user_id


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

def get_storage_client(request: Request) -> StorageClient:
    return request.app.state.storage_client


def get_frame_extractor(request: Request) -> FrameExtractor:
    return request.app.state.frame_extractor


def get_drop_repository(request: Request) -> Generator[DropRepository, None, None]:
    """
    Provide DropRepository over a pooled connection.

    This is a generator so the connection goes back to the pool after
    the request, even when the handler raised.
    """
    with request.app.state.connection_pool.get_connection() as conn:
        yield DropRepository(conn)


# ---------------------------------------------------------------------------
# Orchestrators
# ---------------------------------------------------------------------------

def get_ingestion_orchestrator(
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
    frame_extractor: Annotated[FrameExtractor, Depends(get_frame_extractor)],
    repository: Annotated[DropRepository, Depends(get_drop_repository)],
) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        storage=storage,
        frame_extractor=frame_extractor,
        repository=repository,
        bucket=settings.storage_bucket,
        max_upload_bytes=settings.max_upload_size_bytes,
        timeout_seconds=settings.ingest_timeout_seconds,
        preview_offset_seconds=settings.preview_offset_seconds,
        compensate_orphans=settings.compensate_orphaned_artifacts,
    )


def get_retraction_orchestrator(
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
    repository: Annotated[DropRepository, Depends(get_drop_repository)],
) -> RetractionOrchestrator:
    return RetractionOrchestrator(
        storage=storage,
        repository=repository,
        bucket=settings.storage_bucket,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
CurrentUser = Annotated[str, Depends(get_current_user)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
DropRepositoryDep = Annotated[DropRepository, Depends(get_drop_repository)]
IngestionOrchestratorDep = Annotated[IngestionOrchestrator, Depends(get_ingestion_orchestrator)]
RetractionOrchestratorDep = Annotated[RetractionOrchestrator, Depends(get_retraction_orchestrator)]
