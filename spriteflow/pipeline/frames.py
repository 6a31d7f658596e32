"""
Frame extraction via ffmpeg.

The video is written into a scratch directory, sampled at a fixed rate into
numbered PNGs, and read back in filename order. The directory is removed on
both success and failure.
"""

import asyncio
import io
import logging
import os
import tempfile
import zipfile
from typing import Optional

import ffmpeg

from .errors import NoOutputProduced, TransportError
from .models import CutFrame

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

DEFAULT_SAMPLING_RATE = 8.0
FFMPEG_TIMEOUT = 120.0
TEMP_DIR_PREFIX = "cut-frames-"
INPUT_FILENAME = "input.mp4"
FRAME_PATTERN = "frame_%03d.png"


def _format_rate(rate: float) -> str:
    return str(int(rate)) if float(rate).is_integer() else str(rate)


class FrameExtractor:
    """Cuts a video into PNG frames with the ffmpeg binary."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = FFMPEG_TIMEOUT):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    async def extract_frames(
        self,
        video: bytes,
        sampling_rate: Optional[float] = None,
    ) -> list[CutFrame]:
        rate = sampling_rate or DEFAULT_SAMPLING_RATE
        if rate <= 0:
            raise ValueError(f"Sampling rate must be positive, got {rate}")

        with tempfile.TemporaryDirectory(prefix=TEMP_DIR_PREFIX) as work_dir:
            input_path = os.path.join(work_dir, INPUT_FILENAME)
            with open(input_path, "wb") as f:
                f.write(video)

            stream = ffmpeg.input(input_path).output(
                os.path.join(work_dir, FRAME_PATTERN),
                vf=f"fps={_format_rate(rate)}",
            )

            try:
                process = ffmpeg.run_async(
                    stream,
                    cmd=self.ffmpeg_path,
                    overwrite_output=True,
                    pipe_stdout=True,
                    pipe_stderr=True,
                )
            except FileNotFoundError as e:
                raise TransportError(f"ffmpeg binary not found: {self.ffmpeg_path}") from e

            try:
                _, stderr = await asyncio.wait_for(
                    asyncio.to_thread(process.communicate), timeout=self.timeout
                )
            except asyncio.TimeoutError as e:
                # The process must be gone before the scratch directory is removed.
                process.kill()
                await asyncio.to_thread(process.wait)
                raise TransportError(f"ffmpeg timed out after {self.timeout}s") from e

            if process.returncode != 0:
                message = (stderr or b"").decode("utf-8", errors="replace")
                logger.error(f"ffmpeg failed: {message[-500:]}")
                detail = message[-300:].strip() or f"exit code {process.returncode}"
                raise TransportError(f"ffmpeg failed: {detail}")

            frames = _read_frames(work_dir)

        if not frames:
            raise NoOutputProduced("ffmpeg produced no frames")
        logger.info(f"Extracted {len(frames)} frames at {rate} fps")
        return frames


def _read_frames(work_dir: str) -> list[CutFrame]:
    names = sorted(
        name for name in os.listdir(work_dir)
        if name.startswith("frame_") and name.endswith(".png")
    )
    frames = []
    for index, name in enumerate(names):
        with open(os.path.join(work_dir, name), "rb") as f:
            frames.append(CutFrame(index=index, filename=name, data=f.read()))
    return frames


def archive_frames(frames: list[CutFrame]) -> bytes:
    """Zip the frames by filename."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for frame in frames:
            zf.writestr(frame.filename, frame.data)
    return buf.getvalue()
