"""
GraphStore: in-memory node graph with ordered edges.

Every mutation goes through one asyncio.Lock. The status machine takes the
same lock via transaction() so a node and its mirrored previews change in
one step.
"""

import asyncio
import base64
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from .models import (
    Edge,
    GraphSnapshot,
    Node,
    NodeKind,
    NodeUpdateRequest,
    PAYLOAD_TYPES,
)

logger = logging.getLogger(__name__)


class NodeNotFound(KeyError):
    """Raised when a node or edge id is unknown to the store."""


class GraphStore:
    def __init__(self):
        self._nodes: dict[str, Node] = {}
        self._edges: list[Edge] = []
        self._lock = asyncio.Lock()

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id) from None

    def find(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def edges(self) -> list[Edge]:
        return list(self._edges)

    def incoming(self, node_id: str) -> list[Edge]:
        """Edges whose target is node_id, in insertion order."""
        return [e for e in self._edges if e.target == node_id]

    def outgoing(self, node_id: str) -> list[Edge]:
        """Edges whose source is node_id, in insertion order."""
        return [e for e in self._edges if e.source == node_id]

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(nodes=self.nodes(), edges=self.edges())

    # ── Writes ───────────────────────────────────────────────────────────

    @asynccontextmanager
    async def transaction(self):
        """Hold the store lock; use put() inside to replace nodes."""
        async with self._lock:
            yield self

    def put(self, node: Node):
        """Replace a node. Callers must hold transaction()."""
        self._nodes[node.id] = node

    async def add_node(
        self,
        kind: NodeKind,
        node_id: Optional[str] = None,
        label: Optional[str] = None,
        payload=None,
    ) -> Node:
        node_id = node_id or f"{kind.value}-{uuid.uuid4().hex[:8]}"
        if payload is None:
            payload = PAYLOAD_TYPES[kind]()
        node = Node(id=node_id, kind=kind, payload=payload, label=label)
        async with self._lock:
            if node_id in self._nodes:
                raise ValueError(f"Node {node_id} already exists")
            self._nodes[node_id] = node
        logger.info(f"Node added: {node_id} ({kind.value})")
        return node

    async def update_node(self, node_id: str, update: NodeUpdateRequest) -> Node:
        """Apply user edits to raw fields. Fields that do not apply to the kind raise ValueError."""
        async with self._lock:
            node = self.get(node_id)
            changes = update.model_dump(exclude_unset=True, exclude_none=True)
            label = changes.pop("label", None)
            payload_changes = _payload_changes(node, changes)

            updated = node.model_copy(update={
                "payload": node.payload.model_copy(update=payload_changes),
                "label": label if label is not None else node.label,
            })
            self._nodes[node_id] = updated
        logger.info(f"Node updated: {node_id} fields={sorted(payload_changes)}")
        return updated

    async def remove_node(self, node_id: str) -> Node:
        """Remove a node and every edge touching it."""
        async with self._lock:
            node = self.get(node_id)
            del self._nodes[node_id]
            before = len(self._edges)
            self._edges = [
                e for e in self._edges
                if e.source != node_id and e.target != node_id
            ]
        logger.info(f"Node removed: {node_id} (+{before - len(self._edges)} edges)")
        return node

    async def add_edge(self, source: str, target: str, edge_id: Optional[str] = None) -> Edge:
        """Append an edge. Endpoints and duplicates are not checked."""
        edge = Edge(
            id=edge_id or f"edge-{uuid.uuid4().hex[:8]}",
            source=source,
            target=target,
        )
        async with self._lock:
            self._edges.append(edge)
        logger.info(f"Edge added: {edge.id} {source} → {target}")
        return edge

    async def remove_edge(self, edge_id: str) -> Edge:
        async with self._lock:
            for i, edge in enumerate(self._edges):
                if edge.id == edge_id:
                    del self._edges[i]
                    logger.info(f"Edge removed: {edge_id}")
                    return edge
        raise NodeNotFound(edge_id)


# ── User edit mapping ────────────────────────────────────────────────────────

_EDITABLE_FIELDS = {
    NodeKind.PROMPT: {"text"},
    NodeKind.REFERENCE: {"image_base64", "mime_type"},
    NodeKind.ANIMATION: {"animation_kind", "extra_prompt"},
    NodeKind.CUT: {"fps"},
}


def _payload_changes(node: Node, changes: dict) -> dict:
    allowed = _EDITABLE_FIELDS.get(node.kind, set())
    rejected = set(changes) - allowed
    if rejected:
        raise ValueError(
            f"Fields {sorted(rejected)} are not editable on {node.kind.value} nodes"
        )

    if "image_base64" in changes:
        try:
            changes["image"] = base64.b64decode(changes.pop("image_base64"), validate=True)
        except ValueError as e:
            raise ValueError(f"image_base64 is not valid base64: {e}") from e
        changes.setdefault("mime_type", "image/png")
    return changes
