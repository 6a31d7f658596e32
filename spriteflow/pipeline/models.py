"""
Pydantic models and enums for the sprite generation graph.
"""

import base64
import time
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    PlainSerializer,
    model_validator,
)


# ── Binary fields ────────────────────────────────────────────────────────────

def _decode_blob(value):
    """Accept raw bytes from Python callers and base64 strings from JSON."""
    if isinstance(value, str):
        return base64.b64decode(value)
    return value


Blob = Annotated[
    bytes,
    BeforeValidator(_decode_blob),
    PlainSerializer(lambda b: base64.b64encode(b).decode("ascii"), return_type=str, when_used="json"),
]


# ── Enums ────────────────────────────────────────────────────────────────────

class NodeKind(str, Enum):
    REFERENCE = "reference"
    PROMPT = "prompt"
    PREVIEW = "preview"
    ANIMATION = "animation"
    ANIMATION_PREVIEW = "animationPreview"
    CUT = "cut"
    FRAMES_PREVIEW = "spriteFramesPreview"


class NodeStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    CUTTING = "cutting"
    READY = "ready"
    ERROR = "error"


BUSY_STATUSES = {NodeStatus.GENERATING, NodeStatus.CUTTING}


class AnimationKind(str, Enum):
    IDLE = "idle"
    WALK = "walk"
    RUN = "run"
    JUMP = "jump"


class TaskKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    FRAMES = "frames"


class AttemptState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


# ── Payloads (tagged on `kind`) ──────────────────────────────────────────────

class CutFrame(BaseModel):
    index: int
    filename: str
    data: Blob


class ReferencePayload(BaseModel):
    kind: Literal["reference"] = "reference"
    image: Optional[Blob] = None
    mime_type: Optional[str] = None


class PromptPayload(BaseModel):
    kind: Literal["prompt"] = "prompt"
    text: str = ""


class PreviewPayload(BaseModel):
    kind: Literal["preview"] = "preview"
    image: Optional[Blob] = None
    mime_type: str = "image/png"


class AnimationPayload(BaseModel):
    kind: Literal["animation"] = "animation"
    animation_kind: AnimationKind = AnimationKind.IDLE
    extra_prompt: Optional[str] = None
    video: Optional[Blob] = None
    mime_type: str = "video/mp4"


class AnimationPreviewPayload(BaseModel):
    kind: Literal["animationPreview"] = "animationPreview"
    animation_kind: Optional[AnimationKind] = None
    video: Optional[Blob] = None
    mime_type: str = "video/mp4"


class CutPayload(BaseModel):
    kind: Literal["cut"] = "cut"
    frames: list[CutFrame] = Field(default_factory=list)
    archive: Optional[Blob] = None
    fps: Optional[float] = Field(default=None, gt=0)


class FramesPreviewPayload(BaseModel):
    kind: Literal["spriteFramesPreview"] = "spriteFramesPreview"
    frames: list[CutFrame] = Field(default_factory=list)


Payload = Annotated[
    Union[
        ReferencePayload,
        PromptPayload,
        PreviewPayload,
        AnimationPayload,
        AnimationPreviewPayload,
        CutPayload,
        FramesPreviewPayload,
    ],
    Field(discriminator="kind"),
]

PAYLOAD_TYPES = {
    NodeKind.REFERENCE: ReferencePayload,
    NodeKind.PROMPT: PromptPayload,
    NodeKind.PREVIEW: PreviewPayload,
    NodeKind.ANIMATION: AnimationPayload,
    NodeKind.ANIMATION_PREVIEW: AnimationPreviewPayload,
    NodeKind.CUT: CutPayload,
    NodeKind.FRAMES_PREVIEW: FramesPreviewPayload,
}

# Node kinds the orchestrator can run, and the preview kind each one mirrors into.
TASK_KINDS = {
    NodeKind.PREVIEW: TaskKind.IMAGE,
    NodeKind.ANIMATION: TaskKind.VIDEO,
    NodeKind.CUT: TaskKind.FRAMES,
}

MIRROR_KINDS = {
    NodeKind.ANIMATION: NodeKind.ANIMATION_PREVIEW,
    NodeKind.CUT: NodeKind.FRAMES_PREVIEW,
}


# ── Graph ────────────────────────────────────────────────────────────────────

class Node(BaseModel):
    id: str
    kind: NodeKind
    status: NodeStatus = NodeStatus.IDLE
    payload: Payload
    error_message: Optional[str] = None
    label: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _default_payload(cls, data):
        if isinstance(data, dict) and data.get("payload") is None and "kind" in data:
            data = {**data, "payload": {"kind": NodeKind(data["kind"]).value}}
        return data

    @model_validator(mode="after")
    def _payload_matches_kind(self):
        if self.payload.kind != self.kind:
            raise ValueError(f"payload kind {self.payload.kind} does not match node kind {self.kind.value}")
        return self


class Edge(BaseModel):
    id: str
    source: str
    target: str


class GraphSnapshot(BaseModel):
    nodes: list[Node]
    edges: list[Edge]


# ── Generation ───────────────────────────────────────────────────────────────

class ImageRef(BaseModel):
    mime_type: str
    data: Blob
    source_node_id: Optional[str] = None


class ResolvedInputs(BaseModel):
    """Upstream data gathered for one task. Fields not used by a task kind stay empty."""
    prompt: Optional[str] = None
    references: list[ImageRef] = Field(default_factory=list)
    source_image: Optional[ImageRef] = None
    source_video: Optional[Blob] = None
    source_node_id: Optional[str] = None
    animation_kind: Optional[AnimationKind] = None
    extra_prompt: Optional[str] = None
    fps: Optional[float] = None

    def is_empty(self) -> bool:
        return (
            not self.prompt
            and not self.references
            and self.source_image is None
            and self.source_video is None
        )


class GenerationTask(BaseModel):
    target_node_id: str
    task_kind: TaskKind
    inputs: ResolvedInputs
    seed: int


class ProviderAttempt(BaseModel):
    provider_id: str
    operation_handle: Optional[str] = None
    poll_count: int = 0
    started_at: float = Field(default_factory=time.monotonic)
    state: AttemptState = AttemptState.SUBMITTED


class GenerationOutput(BaseModel):
    data: Optional[Blob] = None
    mime_type: Optional[str] = None
    frames: list[CutFrame] = Field(default_factory=list)
    archive: Optional[Blob] = None
    provider_id: Optional[str] = None
    variants_tried: int = 0


# ── API Request Models ───────────────────────────────────────────────────────

class NodeCreateRequest(BaseModel):
    kind: NodeKind
    id: Optional[str] = None
    label: Optional[str] = None
    animation_kind: Optional[AnimationKind] = None
    text: Optional[str] = None


class NodeUpdateRequest(BaseModel):
    """User edits to raw node fields. Generated outputs are never editable."""
    text: Optional[str] = None
    image_base64: Optional[str] = None
    mime_type: Optional[str] = None
    animation_kind: Optional[AnimationKind] = None
    extra_prompt: Optional[str] = None
    fps: Optional[float] = Field(default=None, gt=0)
    label: Optional[str] = None


class EdgeCreateRequest(BaseModel):
    source: str
    target: str
    id: Optional[str] = None
