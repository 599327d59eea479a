"""
Video processing infrastructure.

Extracts the single preview frame shown for each drop.
"""

from .processor import (
    FFmpegFrameExtractor,
    FrameExtractionError,
    FrameExtractor,
    MockFrameExtractor,
    create_frame_extractor,
)

__all__ = [
    "FFmpegFrameExtractor",
    "FrameExtractionError",
    "FrameExtractor",
    "MockFrameExtractor",
    "create_frame_extractor",
]
