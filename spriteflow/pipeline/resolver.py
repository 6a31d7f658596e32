"""
Dependency resolution: gather the upstream data a node needs for one task.

Upstream sources are read in edge order. When several candidates qualify
for a single slot the choice goes through one policy function, first_match.
"""

import logging
from typing import Callable, Optional, Sequence

from .errors import MissingDependency
from .graph import GraphStore
from .models import (
    AnimationPayload,
    CutPayload,
    ImageRef,
    Node,
    NodeKind,
    NodeStatus,
    ResolvedInputs,
    TaskKind,
)

logger = logging.getLogger(__name__)

SelectPolicy = Callable[[Sequence[Node]], Optional[Node]]


def first_match(candidates: Sequence[Node]) -> Optional[Node]:
    """Pick the first candidate in edge order."""
    return candidates[0] if candidates else None


def upstream_nodes(store: GraphStore, target_id: str) -> list[Node]:
    """Distinct source nodes of target_id in edge order. Dangling ids are skipped."""
    seen: set[str] = set()
    sources = []
    for edge in store.incoming(target_id):
        if edge.source in seen:
            continue
        seen.add(edge.source)
        node = store.find(edge.source)
        if node is None:
            logger.warning(f"Edge {edge.id} points from unknown node {edge.source}")
            continue
        sources.append(node)
    return sources


def _has_ready_preview(node: Node) -> bool:
    return (
        node.kind == NodeKind.PREVIEW
        and node.status == NodeStatus.READY
        and node.payload.image is not None
    )


def _has_ready_video(node: Node, kind: NodeKind) -> bool:
    return (
        node.kind == kind
        and node.status == NodeStatus.READY
        and node.payload.video is not None
    )


def _pick(target_id: str, label: str, candidates: list[Node], select: SelectPolicy) -> Optional[Node]:
    if len(candidates) > 1:
        logger.info(
            f"[{target_id}] {len(candidates)} upstream {label} candidates: "
            f"{[n.id for n in candidates]}"
        )
    return select(candidates)


# ── Per-task collectors ──────────────────────────────────────────────────────

def _collect_image(target_id: str, sources: list[Node], select: SelectPolicy) -> ResolvedInputs:
    prompts = [n for n in sources if n.kind == NodeKind.PROMPT and n.payload.text]
    prompt_node = _pick(target_id, "prompt", prompts, select)

    references = [
        ImageRef(
            mime_type=n.payload.mime_type or "image/png",
            data=n.payload.image,
            source_node_id=n.id,
        )
        for n in sources
        if n.kind == NodeKind.REFERENCE and n.payload.image is not None
    ]
    references += [
        ImageRef(mime_type=n.payload.mime_type, data=n.payload.image, source_node_id=n.id)
        for n in sources
        if _has_ready_preview(n)
    ]

    return ResolvedInputs(
        prompt=prompt_node.payload.text if prompt_node else None,
        references=references,
    )


def _collect_video(target: Node, sources: list[Node], select: SelectPolicy) -> ResolvedInputs:
    previews = [n for n in sources if _has_ready_preview(n)]
    chosen = _pick(target.id, "preview", previews, select)
    if chosen is None:
        raise MissingDependency("Connect a ready Preview node with an image first")

    payload: AnimationPayload = target.payload
    return ResolvedInputs(
        source_image=ImageRef(
            mime_type=chosen.payload.mime_type,
            data=chosen.payload.image,
            source_node_id=chosen.id,
        ),
        source_node_id=chosen.id,
        animation_kind=payload.animation_kind,
        extra_prompt=payload.extra_prompt,
    )


def _collect_frames(target: Node, sources: list[Node], select: SelectPolicy) -> ResolvedInputs:
    chosen = _pick(
        target.id,
        "animation",
        [n for n in sources if _has_ready_video(n, NodeKind.ANIMATION)],
        select,
    )
    if chosen is None:
        chosen = _pick(
            target.id,
            "animation preview",
            [n for n in sources if _has_ready_video(n, NodeKind.ANIMATION_PREVIEW)],
            select,
        )
    if chosen is None:
        raise MissingDependency("Connect an Animation or Animation Preview node with a video first")

    payload: CutPayload = target.payload
    return ResolvedInputs(
        source_video=chosen.payload.video,
        source_node_id=chosen.id,
        fps=payload.fps,
    )


def collect_inputs(
    store: GraphStore,
    target_id: str,
    task_kind: TaskKind,
    select: SelectPolicy = first_match,
) -> ResolvedInputs:
    """
    Resolve the inputs for running task_kind on target_id.

    Image tasks never fail (an empty input set is allowed). Video and frame
    tasks raise MissingDependency when no qualifying upstream node exists.
    """
    target = store.get(target_id)
    sources = upstream_nodes(store, target_id)

    if task_kind == TaskKind.IMAGE:
        return _collect_image(target_id, sources, select)
    if task_kind == TaskKind.VIDEO:
        return _collect_video(target, sources, select)
    if task_kind == TaskKind.FRAMES:
        return _collect_frames(target, sources, select)
    raise ValueError(f"Unknown task kind: {task_kind}")
