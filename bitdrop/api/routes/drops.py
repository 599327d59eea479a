"""
Drop API endpoints.

- POST   /upload          ingest a video, returns the new drop
- GET    /user            the caller's drops, newest first
- GET    /{id}/details    one drop plus its owner's profile
- DELETE /{id}            retract a drop (owner only)

Handlers stay thin: ingestion and retraction live in the orchestrators,
and classified failures (DropError) are rendered by the application's
exception handler.
"""

import asyncio
import logging
from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, Request, Response, UploadFile, status
from pydantic import BaseModel, Field

from ...core.drops.models import Drop, parse_group_id
from ...core.errors import MalformedRequest, NotFound, PayloadTooLarge, PersistenceFailed
from ..dependencies import (
    CurrentUser,
    DropRepositoryDep,
    IngestionOrchestratorDep,
    RetractionOrchestratorDep,
    SettingsDep,
)

logger = logging.getLogger(__name__)

# Room for multipart boundaries and form fields on top of the video itself
MULTIPART_OVERHEAD_BYTES = 64 * 1024

router = APIRouter()


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class DropResponse(BaseModel):
    """A drop as returned to clients."""
    id: UUID
    user_id: str
    group_id: Optional[UUID] = None
    video_url: str = Field(description="Public URL of the video")
    thumbnail: str = Field(description="Public URL of the preview image")
    caption: str = ""
    created_at: datetime
    updated_at: datetime
    votes: int = 0
    visibility: Optional[str] = Field(
        None,
        description="private, public or shared. Omitted on freshly created drops; the database assigns it."
    )

    @classmethod
    def from_drop(cls, drop: Drop) -> "DropResponse":
        return cls(
            id=drop.id,
            user_id=drop.user_id,
            group_id=drop.group_id,
            video_url=drop.video_url,
            thumbnail=drop.thumbnail,
            caption=drop.caption,
            created_at=drop.created_at,
            updated_at=drop.updated_at,
            votes=drop.votes,
            visibility=drop.visibility.value if drop.visibility else None,
        )


class DropOwnerResponse(BaseModel):
    id: str
    username: str
    avatar_url: str


class DropDetailsResponse(BaseModel):
    drop: DropResponse
    user: DropOwnerResponse


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DropResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a drop",
    description="Upload a video; a preview frame is generated and both are stored",
)
async def upload_drop(
    request: Request,
    user_id: CurrentUser,
    settings: SettingsDep,
    orchestrator: IngestionOrchestratorDep,
    video: Annotated[Optional[UploadFile], File(description="Video file")] = None,
    caption: Annotated[str, Form()] = "",
    group_id: Annotated[Optional[str], Form()] = None,
) -> DropResponse:
    """
    Create a drop from an uploaded video.

    Multipart fields:
    - video (required)
    - caption (optional)
    - group_id (optional UUID; ignored if not a valid UUID)
    """
    # Rejects clearly oversized requests only. The exact limit applies to the
    # video bytes while they are streamed to disk.
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        if int(content_length) > settings.max_upload_size_bytes + MULTIPART_OVERHEAD_BYTES:
            raise PayloadTooLarge(
                f"Upload exceeds the {settings.max_upload_size_mb}MB limit"
            )

    if video is None:
        raise MalformedRequest("Video file is required")

    drop = await orchestrator.ingest(
        user_id=user_id,
        video=video,
        caption=caption,
        group_id=parse_group_id(group_id),
    )
    return DropResponse.from_drop(drop)


@router.get(
    "/user",
    response_model=list[DropResponse],
    summary="List my drops",
)
async def list_my_drops(
    user_id: CurrentUser,
    repository: DropRepositoryDep,
) -> list[DropResponse]:
    try:
        drops = await asyncio.to_thread(repository.list_for_user, user_id)
    except Exception as e:
        logger.error(
            "Failed to fetch drops",
            extra={"user_id": user_id, "error": str(e)}
        )
        raise PersistenceFailed(f"Failed to fetch drops: {e}") from e

    return [DropResponse.from_drop(d) for d in drops]


@router.get(
    "/{drop_id}/details",
    response_model=DropDetailsResponse,
    summary="Get drop details",
)
async def get_drop_details(
    drop_id: str,
    user_id: CurrentUser,
    repository: DropRepositoryDep,
) -> DropDetailsResponse:
    try:
        parsed_id = UUID(drop_id)
    except ValueError:
        raise NotFound("Drop not found")

    try:
        details = await asyncio.to_thread(repository.get_details, parsed_id)
    except Exception as e:
        raise PersistenceFailed(f"Failed to fetch drop: {e}") from e

    if details is None:
        raise NotFound("Drop not found")

    return DropDetailsResponse(
        drop=DropResponse.from_drop(details.drop),
        user=DropOwnerResponse(
            id=details.owner.id,
            username=details.owner.username,
            avatar_url=details.owner.avatar_url,
        ),
    )


@router.delete(
    "/{drop_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a drop",
    description="Delete a drop and its stored video and thumbnail. Owner only.",
)
async def delete_drop(
    drop_id: str,
    user_id: CurrentUser,
    orchestrator: RetractionOrchestratorDep,
) -> Response:
    await orchestrator.retract(user_id=user_id, drop_id=drop_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
