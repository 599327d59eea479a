"""
Domain models for drops.

These models represent the core business concepts. They have no dependencies
on external frameworks, databases, or APIs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Visibility(Enum):
    """Who can see a drop. The database assigns the default."""
    PRIVATE = "private"
    PUBLIC = "public"
    SHARED = "shared"


@dataclass
class Drop:
    """
    One ingested video with its derived preview.

    A drop only exists once both artifacts are in object storage, so
    video_url and thumbnail are always set together. user_id never
    changes after creation and is the only identity allowed to retract.
    """
    user_id: str
    video_url: str
    thumbnail: str
    id: UUID = field(default_factory=uuid4)
    group_id: Optional[UUID] = None
    caption: str = ""
    votes: int = 0
    visibility: Optional[Visibility] = None  # None until read back from the store
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("Drop must have an owner")
        if not self.video_url or not self.thumbnail:
            raise ValueError("Drop requires both a video and a thumbnail locator")

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id


@dataclass(frozen=True)
class DropOwner:
    """Public profile fields shown next to a drop."""
    id: str
    username: str = ""
    avatar_url: str = ""


@dataclass(frozen=True)
class DropDetails:
    """A drop joined with its owner's public profile."""
    drop: Drop
    owner: DropOwner


def parse_group_id(raw: Optional[str]) -> Optional[UUID]:
    """
    Parse an optional group identifier from form input.

    Blank or unparseable values mean "no group" rather than an error.
    """
    if not raw:
        return None
    try:
        return UUID(raw.strip())
    except ValueError:
        return None
