"""Tests for ffmpeg frame extraction, with the ffmpeg process mocked out."""

import io
import os
import threading
import zipfile
from unittest.mock import patch

import ffmpeg
import pytest

from spriteflow.pipeline.errors import NoOutputProduced, TransportError
from spriteflow.pipeline.frames import FrameExtractor, archive_frames
from spriteflow.pipeline.models import CutFrame


class FakeProcess:
    """Stands in for the Popen returned by ffmpeg.run_async."""

    def __init__(self, returncode=0, stderr=b"", hang=False):
        self.returncode = None
        self._exit_code = returncode
        self._stderr = stderr
        self._hang = hang
        self._killed = threading.Event()
        self.killed = False

    def communicate(self):
        if self._hang:
            self._killed.wait(5)
        self.returncode = -9 if self.killed else self._exit_code
        return b"", self._stderr

    def kill(self):
        self.killed = True
        self._killed.set()

    def wait(self):
        self._killed.wait(5)
        return self.returncode


def fake_ffmpeg(frame_names, seen=None, process=None):
    """Build an ffmpeg.run_async replacement that writes the given files next to the output pattern."""

    def run_async(stream, **kwargs):
        args = ffmpeg.get_args(stream)
        out_dir = os.path.dirname(args[-1])
        if seen is not None:
            seen.update(args=args, dir=out_dir, kwargs=kwargs, listing=sorted(os.listdir(out_dir)))
        for name in frame_names:
            with open(os.path.join(out_dir, name), "wb") as f:
                f.write(name.encode())
        return process or FakeProcess()

    return run_async


class TestExtractFrames:
    @pytest.mark.asyncio
    async def test_frames_sorted_and_reindexed(self):
        seen = {}
        names = ["frame_003.png", "frame_001.png", "frame_002.png", "notes.txt", "frame_004.jpg"]
        with patch("spriteflow.pipeline.frames.ffmpeg.run_async", side_effect=fake_ffmpeg(names, seen)):
            frames = await FrameExtractor().extract_frames(b"video", 8)

        assert [f.filename for f in frames] == ["frame_001.png", "frame_002.png", "frame_003.png"]
        assert [f.index for f in frames] == [0, 1, 2]
        assert frames[0].data == b"frame_001.png"

        assert seen["listing"] == ["input.mp4"]
        assert "fps=8" in seen["args"]
        assert seen["args"][-1].endswith("frame_%03d.png")
        assert os.path.basename(seen["dir"]).startswith("cut-frames-")

    @pytest.mark.asyncio
    async def test_temp_dir_removed_on_success(self):
        seen = {}
        with patch("spriteflow.pipeline.frames.ffmpeg.run_async", side_effect=fake_ffmpeg(["frame_001.png"], seen)):
            await FrameExtractor().extract_frames(b"video")
        assert not os.path.exists(seen["dir"])

    @pytest.mark.asyncio
    async def test_default_rate_and_binary_path(self):
        seen = {}
        with patch("spriteflow.pipeline.frames.ffmpeg.run_async", side_effect=fake_ffmpeg(["frame_001.png"], seen)):
            await FrameExtractor(ffmpeg_path="/opt/ffmpeg").extract_frames(b"video")
        assert "fps=8" in seen["args"]
        assert seen["kwargs"]["cmd"] == "/opt/ffmpeg"
        assert seen["kwargs"]["overwrite_output"] is True

    @pytest.mark.asyncio
    async def test_fractional_rate(self):
        seen = {}
        with patch("spriteflow.pipeline.frames.ffmpeg.run_async", side_effect=fake_ffmpeg(["frame_001.png"], seen)):
            await FrameExtractor().extract_frames(b"video", 12.5)
        assert "fps=12.5" in seen["args"]

    @pytest.mark.asyncio
    async def test_no_frames(self):
        with patch("spriteflow.pipeline.frames.ffmpeg.run_async", side_effect=fake_ffmpeg([])):
            with pytest.raises(NoOutputProduced):
                await FrameExtractor().extract_frames(b"video")

    @pytest.mark.asyncio
    async def test_ffmpeg_error_cleans_up(self):
        seen = {}
        process = FakeProcess(returncode=1, stderr=b"moov atom not found")

        with patch("spriteflow.pipeline.frames.ffmpeg.run_async", side_effect=fake_ffmpeg([], seen, process)):
            with pytest.raises(TransportError, match="moov atom not found"):
                await FrameExtractor().extract_frames(b"not a video")

        assert not os.path.exists(seen["dir"])

    @pytest.mark.asyncio
    async def test_timeout_kills_process_before_cleanup(self):
        seen = {}
        process = FakeProcess(hang=True)

        with patch("spriteflow.pipeline.frames.ffmpeg.run_async", side_effect=fake_ffmpeg(["frame_001.png"], seen, process)):
            with pytest.raises(TransportError, match="timed out"):
                await FrameExtractor(timeout=0.05).extract_frames(b"video")

        assert process.killed
        assert not os.path.exists(seen["dir"])

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        with patch("spriteflow.pipeline.frames.ffmpeg.run_async", side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(TransportError, match="not found"):
                await FrameExtractor().extract_frames(b"video")

    @pytest.mark.asyncio
    async def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            await FrameExtractor().extract_frames(b"video", -1)


def test_archive_frames():
    frames = [
        CutFrame(index=0, filename="frame_001.png", data=b"one"),
        CutFrame(index=1, filename="frame_002.png", data=b"two"),
    ]
    with zipfile.ZipFile(io.BytesIO(archive_frames(frames))) as zf:
        assert zf.namelist() == ["frame_001.png", "frame_002.png"]
        assert zf.read("frame_002.png") == b"two"
