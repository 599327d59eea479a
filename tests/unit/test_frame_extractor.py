"""
Unit tests for preview frame extraction.

FFmpeg itself is never run: the subprocess is replaced with a fake so
the exit-code, timeout and kill handling can be checked directly.
"""

import asyncio
from pathlib import Path

import pytest

from bitdrop.infrastructure.video import processor
from bitdrop.infrastructure.video.processor import (
    PLACEHOLDER_JPEG,
    FFmpegFrameExtractor,
    FrameExtractionError,
    MockFrameExtractor,
    create_frame_extractor,
    format_offset,
)


class FakeProcess:
    """Mimics asyncio.subprocess.Process."""

    def __init__(self, returncode=0, stderr=b"", hang=False, on_run=None):
        self._final_returncode = returncode
        self._stderr = stderr
        self._hang = hang
        self._on_run = on_run
        self.returncode = None
        self.killed = False

    async def communicate(self):
        if self._hang:
            await asyncio.sleep(10)
        if self._on_run:
            self._on_run()
        self.returncode = self._final_returncode
        return b"", self._stderr

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        return self.returncode


@pytest.fixture
def ffmpeg_on_path(monkeypatch):
    monkeypatch.setattr(processor.shutil, "which", lambda name: "/usr/bin/ffmpeg")


def install_process(monkeypatch, process: FakeProcess) -> list:
    calls = []

    async def fake_exec(*cmd, **kwargs):
        calls.append(list(cmd))
        return process

    monkeypatch.setattr(processor.asyncio, "create_subprocess_exec", fake_exec)
    return calls


class TestFormatOffset:

    @pytest.mark.parametrize("seconds,expected", [
        (0, "00:00:00.000"),
        (1.0, "00:00:01.000"),
        (2.5, "00:00:02.500"),
        (3725.042, "01:02:05.042"),
    ])
    def test_format(self, seconds, expected):
        assert format_offset(seconds) == expected


class TestFFmpegFrameExtractor:

    def test_missing_binary(self, monkeypatch):
        monkeypatch.setattr(processor.shutil, "which", lambda name: None)
        with pytest.raises(RuntimeError, match="FFmpeg not found"):
            FFmpegFrameExtractor()

    def test_command_takes_one_frame_at_offset(self, ffmpeg_on_path):
        extractor = FFmpegFrameExtractor()
        cmd = extractor.build_command(Path("/tmp/in.mp4"), Path("/tmp/out.jpg"), 1.0)

        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-i") + 1] == "/tmp/in.mp4"
        assert cmd[cmd.index("-ss") + 1] == "00:00:01.000"
        assert cmd[cmd.index("-frames:v") + 1] == "1"
        assert cmd[-1] == "/tmp/out.jpg"
        # Seek after the input so short videos produce nothing
        assert cmd.index("-ss") > cmd.index("-i")

    @pytest.mark.asyncio
    async def test_successful_extraction(self, ffmpeg_on_path, monkeypatch, tmp_path):
        output = tmp_path / "thumb.jpg"
        process = FakeProcess(on_run=lambda: output.write_bytes(PLACEHOLDER_JPEG))
        calls = install_process(monkeypatch, process)

        await FFmpegFrameExtractor().extract_frame(tmp_path / "in.mp4", output)

        assert len(calls) == 1
        assert output.read_bytes() == PLACEHOLDER_JPEG

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, ffmpeg_on_path, monkeypatch, tmp_path):
        install_process(monkeypatch, FakeProcess(returncode=1, stderr=b"Invalid data found"))

        with pytest.raises(FrameExtractionError, match="Invalid data found"):
            await FFmpegFrameExtractor().extract_frame(tmp_path / "in.mp4", tmp_path / "out.jpg")

    @pytest.mark.asyncio
    async def test_no_frame_produced(self, ffmpeg_on_path, monkeypatch, tmp_path):
        """A clip shorter than the offset exits cleanly but writes nothing."""
        install_process(monkeypatch, FakeProcess(returncode=0))

        with pytest.raises(FrameExtractionError, match="no frame"):
            await FFmpegFrameExtractor().extract_frame(tmp_path / "in.mp4", tmp_path / "out.jpg")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, ffmpeg_on_path, monkeypatch, tmp_path):
        process = FakeProcess(hang=True)
        install_process(monkeypatch, process)

        extractor = FFmpegFrameExtractor(timeout=0.05)
        with pytest.raises(FrameExtractionError, match="timed out"):
            await extractor.extract_frame(tmp_path / "in.mp4", tmp_path / "out.jpg")

        assert process.killed

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, ffmpeg_on_path, monkeypatch, tmp_path):
        process = FakeProcess(hang=True)
        install_process(monkeypatch, process)

        extractor = FFmpegFrameExtractor()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                extractor.extract_frame(tmp_path / "in.mp4", tmp_path / "out.jpg"),
                timeout=0.05,
            )

        assert process.killed


class TestMockFrameExtractor:

    @pytest.mark.asyncio
    async def test_writes_placeholder(self, tmp_path):
        video = tmp_path / "in.mp4"
        video.write_bytes(b"not really a video")
        output = tmp_path / "out.jpg"

        await MockFrameExtractor().extract_frame(video, output)

        assert output.read_bytes() == PLACEHOLDER_JPEG

    @pytest.mark.asyncio
    async def test_empty_video_fails(self, tmp_path):
        video = tmp_path / "in.mp4"
        video.write_bytes(b"")

        with pytest.raises(FrameExtractionError):
            await MockFrameExtractor().extract_frame(video, tmp_path / "out.jpg")

    def test_factory_mock_mode(self):
        assert isinstance(create_frame_extractor(mock_mode=True), MockFrameExtractor)

    def test_factory_passes_timeout(self, ffmpeg_on_path):
        extractor = create_frame_extractor(timeout=30.0)

        assert isinstance(extractor, FFmpegFrameExtractor)
        assert extractor._timeout == 30.0

    def test_factory_defaults_to_no_timeout(self, ffmpeg_on_path):
        assert create_frame_extractor()._timeout is None
