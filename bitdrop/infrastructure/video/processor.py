"""
Preview frame extraction using FFmpeg.

Grabs one still image from a video at a fixed offset. The ingestion
pipeline owns both paths (the staged video and the destination image);
the extractor only runs the tool and checks that an image came out.

FFmpeg runs as an asyncio subprocess so a request deadline can cancel
it. On cancellation the process is killed and reaped before the
cancellation propagates, so no orphaned ffmpeg outlives its request.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_OFFSET_SECONDS = 1.0

# Kept short in logs and error messages; ffmpeg stderr can be long.
STDERR_TAIL_CHARS = 2000


class FrameExtractionError(Exception):
    """Raised when no preview frame could be produced."""
    pass


class FrameExtractor(Protocol):
    """Protocol for single-frame extraction."""

    async def extract_frame(
        self,
        video_path: Path,
        output_path: Path,
        offset_seconds: float = DEFAULT_OFFSET_SECONDS,
    ) -> None:
        """Write one still image taken at offset_seconds to output_path."""
        ...


def format_offset(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm for ffmpeg's -ss option."""
    total_ms = int(round(seconds * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"


class FFmpegFrameExtractor:
    """Frame extractor backed by the ffmpeg binary."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: Optional[float] = None):
        """
        Args:
            ffmpeg_path: Path to ffmpeg binary (default assumes it's in PATH)
            timeout: Optional hard limit for a single ffmpeg run, in seconds
        """
        self._ffmpeg = ffmpeg_path
        self._timeout = timeout

        if shutil.which(ffmpeg_path) is None:
            raise RuntimeError(
                "FFmpeg not found. Install with: apt-get install ffmpeg"
            )
        logger.info("FFmpeg frame extractor initialized")

    def build_command(
        self,
        video_path: Path,
        output_path: Path,
        offset_seconds: float,
    ) -> list[str]:
        # -ss after -i decodes up to the offset, so a video shorter than
        # the offset yields no frame instead of a frame from elsewhere
        return [
            self._ffmpeg,
            "-y",
            "-i", str(video_path),
            "-ss", format_offset(offset_seconds),
            "-frames:v", "1",
            "-q:v", "2",
            str(output_path),
        ]

    async def extract_frame(
        self,
        video_path: Path,
        output_path: Path,
        offset_seconds: float = DEFAULT_OFFSET_SECONDS,
    ) -> None:
        cmd = self.build_command(video_path, output_path, offset_seconds)

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            await _kill(process)
            raise FrameExtractionError(f"ffmpeg timed out after {self._timeout}s")
        except asyncio.CancelledError:
            await _kill(process)
            raise

        output = stderr.decode("utf-8", errors="ignore")[-STDERR_TAIL_CHARS:]

        if process.returncode != 0:
            logger.warning(
                "ffmpeg failed",
                extra={"returncode": process.returncode, "stderr": output}
            )
            raise FrameExtractionError(
                f"ffmpeg exited with code {process.returncode}: {output}"
            )

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise FrameExtractionError(
                f"ffmpeg produced no frame at {format_offset(offset_seconds)}"
            )

        logger.info(
            "Extracted preview frame",
            extra={
                "output_path": str(output_path),
                "size_bytes": output_path.stat().st_size,
            }
        )


async def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill and reap a subprocess that may already have exited."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


# SOI + JFIF header + EOI. Not decodable, but sniffs as image/jpeg.
PLACEHOLDER_JPEG = (
    b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    b"\xff\xd9"
)


class MockFrameExtractor:
    """
    Placeholder extractor for local development without FFmpeg.

    Writes a tiny JPEG for any non-empty input and fails on empty files,
    which is enough to drive the pipeline end to end.
    """

    def __init__(self) -> None:
        logger.info("Initialized mock frame extractor")

    async def extract_frame(
        self,
        video_path: Path,
        output_path: Path,
        offset_seconds: float = DEFAULT_OFFSET_SECONDS,
    ) -> None:
        if not video_path.exists() or video_path.stat().st_size == 0:
            raise FrameExtractionError("video is empty")
        output_path.write_bytes(PLACEHOLDER_JPEG)


def create_frame_extractor(
    mock_mode: bool = False,
    ffmpeg_path: str = "ffmpeg",
    timeout: Optional[float] = None,
) -> FrameExtractor:
    """
    Factory function for the frame extractor.

    Args:
        mock_mode: If True, return mock extractor (no FFmpeg required)
        ffmpeg_path: Path to the ffmpeg binary for the real extractor
        timeout: Seconds before a single ffmpeg run is killed (None = no limit)
    """
    if mock_mode:
        return MockFrameExtractor()

    return FFmpegFrameExtractor(ffmpeg_path=ffmpeg_path, timeout=timeout)
