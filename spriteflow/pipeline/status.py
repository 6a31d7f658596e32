"""
Node status machine.

  idle | ready | error → generating (cutting for Cut nodes) → ready | error

Animation and Cut nodes mirror their status and output into every
AnimationPreview / FramesPreview node they feed. The node and its mirrors
are written under one store transaction.
"""

import logging
from typing import Optional

from .graph import GraphStore
from .models import (
    AnimationPayload,
    AnimationPreviewPayload,
    BUSY_STATUSES,
    CutPayload,
    FramesPreviewPayload,
    GenerationOutput,
    MIRROR_KINDS,
    Node,
    NodeKind,
    NodeStatus,
    PreviewPayload,
)

logger = logging.getLogger(__name__)


def mirror_targets(store: GraphStore, node: Node) -> list[Node]:
    """Downstream preview nodes that display this node's output."""
    mirror_kind = MIRROR_KINDS.get(node.kind)
    if mirror_kind is None:
        return []
    seen: set[str] = set()
    targets = []
    for edge in store.outgoing(node.id):
        target = store.find(edge.target)
        if target is None or target.kind != mirror_kind or target.id in seen:
            continue
        seen.add(target.id)
        targets.append(target)
    return targets


def _busy_status(node: Node) -> NodeStatus:
    return NodeStatus.CUTTING if node.kind == NodeKind.CUT else NodeStatus.GENERATING


def _completed_payload(node: Node, output: GenerationOutput):
    payload = node.payload
    if node.kind == NodeKind.PREVIEW:
        return PreviewPayload(image=output.data, mime_type=output.mime_type or payload.mime_type)
    if node.kind == NodeKind.ANIMATION:
        return payload.model_copy(update={
            "video": output.data,
            "mime_type": output.mime_type or payload.mime_type,
        })
    if node.kind == NodeKind.CUT:
        return payload.model_copy(update={"frames": output.frames, "archive": output.archive})
    raise ValueError(f"{node.kind.value} nodes do not produce output")


def _mirrored_payload(source_payload, target: Node):
    if isinstance(source_payload, AnimationPayload):
        return AnimationPreviewPayload(
            animation_kind=source_payload.animation_kind,
            video=source_payload.video,
            mime_type=source_payload.mime_type,
        )
    if isinstance(source_payload, CutPayload):
        return FramesPreviewPayload(frames=source_payload.frames)
    raise ValueError(f"Cannot mirror {source_payload.kind} into {target.kind.value}")


class StatusMachine:
    def __init__(self, store: GraphStore):
        self.store = store
        # Mirror ids flagged busy by begin(), kept until complete or fail.
        self._mirror_ids: dict[str, list[str]] = {}

    async def begin(self, node_id: str) -> Node:
        """Flag the node (and its mirrors) busy and clear any previous error."""
        async with self.store.transaction():
            node = self.store.get(node_id)
            if node.status in BUSY_STATUSES:
                logger.warning(f"[{node_id}] Generation started while already {node.status.value}")
            busy = _busy_status(node)
            updated = node.model_copy(update={"status": busy, "error_message": None})
            self.store.put(updated)
            mirrors = mirror_targets(self.store, node)
            for mirror in mirrors:
                self.store.put(mirror.model_copy(update={"status": busy, "error_message": None}))
            self._mirror_ids[node_id] = [m.id for m in mirrors]
        logger.info(f"[{node_id}] {busy.value}")
        return updated

    async def complete(self, node_id: str, output: GenerationOutput) -> Node:
        """Write the output, mark ready, and mirror it downstream."""
        async with self.store.transaction():
            node = self.store.get(node_id)
            payload = _completed_payload(node, output)
            updated = node.model_copy(update={
                "payload": payload,
                "status": NodeStatus.READY,
                "error_message": None,
            })
            self.store.put(updated)
            self._mirror_ids.pop(node_id, None)
            mirrors = mirror_targets(self.store, node)
            for mirror in mirrors:
                self.store.put(mirror.model_copy(update={
                    "payload": _mirrored_payload(payload, mirror),
                    "status": NodeStatus.READY,
                    "error_message": None,
                }))
        logger.info(f"[{node_id}] ready (mirrored to {len(mirrors)} nodes)")
        return updated

    async def fail(self, node_id: str, message: str) -> Optional[Node]:
        """Mark the node and its mirrors as errored. Payloads are left as they were."""
        async with self.store.transaction():
            node = self.store.find(node_id)
            flagged = self._mirror_ids.pop(node_id, [])
            if node is None:
                logger.warning(f"[{node_id}] Failed after the node was removed: {message}")
                self._release(flagged, message)
                return None
            updated = node.model_copy(update={"status": NodeStatus.ERROR, "error_message": message})
            self.store.put(updated)
            for mirror in mirror_targets(self.store, node):
                self.store.put(mirror.model_copy(update={
                    "status": NodeStatus.ERROR,
                    "error_message": message,
                }))
        logger.error(f"[{node_id}] error: {message}")
        return updated

    def _release(self, mirror_ids: list[str], message: str):
        """Error out mirrors left busy by a source node that no longer exists."""
        for mirror_id in mirror_ids:
            mirror = self.store.find(mirror_id)
            if mirror is None or mirror.status not in BUSY_STATUSES:
                continue
            self.store.put(mirror.model_copy(update={
                "status": NodeStatus.ERROR,
                "error_message": message,
            }))
