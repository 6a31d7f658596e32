"""
ProviderGateway: runs one GenerationTask against the external providers.

  image  → one call to the image model, first image part wins
  video  → fallback chain of video models, each submit → poll until done
  frames → ffmpeg frame extraction + zip archive

Rate limits on a video model move on to the next model. A poll loop that
runs out of polls fails the whole task.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from .. import metrics
from ..prompts import build_animation_prompt, build_image_prompt
from .errors import (
    GenerationError,
    GenerationTimeout,
    NoOutputProduced,
    RateLimited,
    UnsupportedOutputReference,
)
from .frames import DEFAULT_SAMPLING_RATE, FrameExtractor, archive_frames
from .models import (
    AnimationKind,
    AttemptState,
    CutFrame,
    GenerationOutput,
    GenerationTask,
    ImageRef,
    ProviderAttempt,
    TaskKind,
)

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

DEFAULT_VIDEO_MODELS = [
    "veo-3.1-fast-generate-preview",
    "veo-3.1-generate-preview",
    "veo-3.0-generate-preview",
    "veo-2-generate-preview",
]

POLL_INTERVAL = 5.0  # seconds
MAX_POLLS = 60  # 5 minutes max
VIDEO_DURATION_SECONDS = 4
VIDEO_ASPECT_RATIO = "16:9"

RATE_LIMIT_CODES = {"429", "RESOURCE_EXHAUSTED"}


# ── Provider contracts ───────────────────────────────────────────────────────

class ResponsePart(BaseModel):
    mime_type: Optional[str] = None
    data: Optional[bytes] = None
    text: Optional[str] = None


class ImageResponse(BaseModel):
    parts: list[ResponsePart] = Field(default_factory=list)


class VideoRequest(BaseModel):
    prompt: str
    seed: int
    image: bytes
    mime_type: str = "image/png"
    duration_seconds: int = VIDEO_DURATION_SECONDS
    aspect_ratio: str = VIDEO_ASPECT_RATIO


class VideoEntry(BaseModel):
    data: Optional[bytes] = None
    uri: Optional[str] = None
    mime_type: str = "video/mp4"


class Operation(BaseModel):
    name: str
    done: bool = False
    videos: list[VideoEntry] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None


class ImageProvider(Protocol):
    async def generate_image(self, prompt: str, references: Sequence[ImageRef]) -> ImageResponse: ...


class VideoProvider(Protocol):
    async def submit(self, model: str, request: VideoRequest) -> Operation: ...

    async def poll(self, model: str, handle: str) -> Operation: ...

    async def fetch(self, uri: str) -> bytes: ...

    def is_hosted(self, uri: str) -> bool: ...

    async def list_models(self) -> list[str]: ...


# ── Gateway ──────────────────────────────────────────────────────────────────

class ProviderGateway:
    def __init__(
        self,
        image_provider: ImageProvider,
        video_provider: VideoProvider,
        frame_extractor: Optional[FrameExtractor] = None,
        video_models: Optional[Sequence[str]] = None,
        preferred_model: Optional[str] = None,
        discover_models: bool = True,
        poll_interval: float = POLL_INTERVAL,
        max_polls: int = MAX_POLLS,
        duration_seconds: int = VIDEO_DURATION_SECONDS,
        aspect_ratio: str = VIDEO_ASPECT_RATIO,
        sampling_rate: float = DEFAULT_SAMPLING_RATE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.image_provider = image_provider
        self.video_provider = video_provider
        self.frame_extractor = frame_extractor or FrameExtractor()
        self.video_models = list(video_models or DEFAULT_VIDEO_MODELS)
        self.preferred_model = preferred_model
        self.discover_models = discover_models
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.duration_seconds = duration_seconds
        self.aspect_ratio = aspect_ratio
        self.sampling_rate = sampling_rate
        self._sleep = sleep

    async def run(self, task: GenerationTask) -> GenerationOutput:
        if task.task_kind == TaskKind.IMAGE:
            return await self.generate_image(task)
        if task.task_kind == TaskKind.VIDEO:
            return await self.generate_video(task)
        if task.task_kind == TaskKind.FRAMES:
            return await self.extract_frames(task)
        raise ValueError(f"Unknown task kind: {task.task_kind}")

    # ── Image ────────────────────────────────────────────────────────────

    async def generate_image(self, task: GenerationTask) -> GenerationOutput:
        prompt = build_image_prompt(task.inputs.prompt)
        references = task.inputs.references
        logger.info(
            f"[{task.target_node_id}] Image request: {len(prompt)} chars, "
            f"{len(references)} references"
        )

        response = await self.image_provider.generate_image(prompt, references)

        for part in response.parts:
            if part.mime_type and part.mime_type.startswith("image/") and part.data:
                return GenerationOutput(data=part.data, mime_type=part.mime_type, variants_tried=1)

        text = next((p.text for p in response.parts if p.text), None)
        if text:
            raise NoOutputProduced(f"No image data found. Model returned text: {text[:100]}")
        raise NoOutputProduced("No image data found in response")

    # ── Video ────────────────────────────────────────────────────────────

    async def video_chain(self) -> list[str]:
        """Configured models, preferred one first, narrowed to the models the provider lists."""
        chain = list(self.video_models)

        if self.discover_models:
            try:
                available = await self.video_provider.list_models()
            except GenerationError as e:
                logger.warning(f"Video model discovery failed, using full chain: {e}")
                available = []
            if available:
                logger.info(f"Available video models: {', '.join(available)}")
                chain = [m for m in chain if m in available]

        if self.preferred_model:
            if self.preferred_model in chain:
                chain = [self.preferred_model] + [m for m in chain if m != self.preferred_model]
            else:
                logger.warning(f"Preferred video model {self.preferred_model} is not in the chain")

        if not chain:
            raise NoOutputProduced("No available video models found. Check the API key and project access.")
        return chain

    def _video_request(self, task: GenerationTask) -> VideoRequest:
        inputs = task.inputs
        return VideoRequest(
            prompt=build_animation_prompt(inputs.animation_kind or AnimationKind.IDLE, inputs.extra_prompt),
            seed=task.seed,
            image=inputs.source_image.data,
            mime_type=inputs.source_image.mime_type,
            duration_seconds=self.duration_seconds,
            aspect_ratio=self.aspect_ratio,
        )

    async def generate_video(self, task: GenerationTask) -> GenerationOutput:
        if task.inputs.source_image is None:
            raise ValueError("Video task has no source image")

        chain = await self.video_chain()
        request = self._video_request(task)
        logger.info(f"[{task.target_node_id}] Will try models in order: {' -> '.join(chain)}")

        last_error: Optional[GenerationError] = None
        for i, model in enumerate(chain):
            attempt = ProviderAttempt(provider_id=model)
            is_last = i == len(chain) - 1
            try:
                data, mime_type = await self._attempt(task.target_node_id, model, request, attempt)
            except RateLimited as e:
                attempt.state = AttemptState.FAILED
                last_error = e
                metrics.inc_counter("fallback.advance")
                logger.warning(f"[{task.target_node_id}] Rate limit with {model}, trying next model")
                continue
            except GenerationTimeout as e:
                e.provider_id, e.variants_tried, e.variants_total = model, i + 1, len(chain)
                raise
            except GenerationError as e:
                attempt.state = AttemptState.FAILED
                if is_last:
                    e.provider_id, e.variants_tried, e.variants_total = model, i + 1, len(chain)
                    raise
                last_error = e
                metrics.inc_counter("fallback.advance")
                logger.warning(f"[{task.target_node_id}] {model} failed ({e.kind.value}): {e}; trying next model")
                continue

            logger.info(
                f"[{task.target_node_id}] Video generated with {model} "
                f"after {attempt.poll_count} polls ({len(data)} bytes)"
            )
            return GenerationOutput(
                data=data,
                mime_type=mime_type,
                provider_id=model,
                variants_tried=i + 1,
            )

        raise RateLimited(
            last_error.message if last_error else "Rate limited",
            status_code=429,
            provider_id=chain[-1],
            variants_tried=len(chain),
            variants_total=len(chain),
        )

    async def _attempt(
        self,
        node_id: str,
        model: str,
        request: VideoRequest,
        attempt: ProviderAttempt,
    ) -> tuple[bytes, str]:
        """One variant: Submitted → Polling → Completed | TimedOut | Failed."""
        operation = await self.video_provider.submit(model, request)
        attempt.operation_handle = operation.name
        attempt.state = AttemptState.POLLING
        logger.info(f"[{node_id}] Operation started with {model}: {operation.name}")

        while not operation.done and attempt.poll_count < self.max_polls:
            await self._sleep(self.poll_interval)
            operation = await self.video_provider.poll(model, operation.name)
            attempt.poll_count += 1
            logger.debug(f"[{node_id}] Polling {model}... {attempt.poll_count}/{self.max_polls}, done={operation.done}")

        if not operation.done:
            attempt.state = AttemptState.TIMED_OUT
            raise GenerationTimeout(
                f"Video generation timed out after {attempt.poll_count} polls"
            )

        if operation.error:
            error_cls = RateLimited if operation.error_code in RATE_LIMIT_CODES else NoOutputProduced
            raise error_cls(f"Operation failed: {operation.error}")

        data, mime_type = await self._video_bytes(operation)
        attempt.state = AttemptState.COMPLETED
        return data, mime_type

    async def _video_bytes(self, operation: Operation) -> tuple[bytes, str]:
        if not operation.videos:
            raise NoOutputProduced("Video response did not contain any videos")

        video = operation.videos[0]
        if video.data:
            return video.data, video.mime_type
        if video.uri:
            if self.video_provider.is_hosted(video.uri):
                return await self.video_provider.fetch(video.uri), video.mime_type
            raise UnsupportedOutputReference(f"Unsupported video URI: {video.uri}")
        raise NoOutputProduced("Video entry has neither bytes nor a URI")

    # ── Frames ───────────────────────────────────────────────────────────

    async def extract_frames(self, task: GenerationTask) -> GenerationOutput:
        if task.inputs.source_video is None:
            raise ValueError("Frame task has no source video")

        rate = task.inputs.fps or self.sampling_rate
        frames: list[CutFrame] = await self.frame_extractor.extract_frames(task.inputs.source_video, rate)
        archive = await asyncio.to_thread(archive_frames, frames)
        return GenerationOutput(
            frames=frames,
            archive=archive,
            mime_type="application/zip",
            provider_id="ffmpeg",
            variants_tried=1,
        )
