"""
GenerationService: runs one node's generation end to end.

  begin (node + mirrors busy)
    → collect_inputs (walk upstream edges)
    → derive_seed
    → gateway.run (image | video fallback chain | frames)
    → complete (write output + mirror) or fail (error message + mirror)

Each call is independent; nothing is retried automatically.
"""

import asyncio
import logging
import time
from typing import Optional

from .. import metrics
from .errors import GenerationError
from .gateway import ProviderGateway
from .graph import GraphStore, NodeNotFound
from .models import (
    BUSY_STATUSES,
    GenerationTask,
    Node,
    NodeKind,
    TASK_KINDS,
    TaskKind,
)
from .resolver import SelectPolicy, collect_inputs, first_match, upstream_nodes
from .seed import derive_seed
from .status import StatusMachine

logger = logging.getLogger(__name__)


class GenerationService:
    """
    Pipeline orchestrator for a single graph.

    Usage:
        service = GenerationService(store, gateway)

        # Wait for the result
        node = await service.generate("preview-1")

        # Or fire and forget
        service.generate_background("animation-1")
    """

    def __init__(
        self,
        store: GraphStore,
        gateway: ProviderGateway,
        select: SelectPolicy = first_match,
    ):
        self.store = store
        self.gateway = gateway
        self.status = StatusMachine(store)
        self.select = select
        self._tasks: set[asyncio.Task] = set()
        self._active = 0

    def resolve_target(self, node_id: str) -> tuple[Node, TaskKind]:
        """
        Map a node to the node that actually runs and its task kind.

        An AnimationPreview regenerates the first Animation feeding it.
        """
        node = self.store.get(node_id)
        if node.kind == NodeKind.ANIMATION_PREVIEW:
            animations = [n for n in upstream_nodes(self.store, node_id) if n.kind == NodeKind.ANIMATION]
            source = self.select(animations)
            if source is None:
                raise ValueError(f"Animation preview {node_id} has no upstream Animation node")
            node = source
        task_kind = TASK_KINDS.get(node.kind)
        if task_kind is None:
            raise ValueError(f"{node.kind.value} nodes cannot be generated")
        return node, task_kind

    def is_busy(self, node_id: str) -> bool:
        try:
            node, _ = self.resolve_target(node_id)
        except (NodeNotFound, ValueError):
            return False
        return node.status in BUSY_STATUSES

    @staticmethod
    def _discriminator(node: Node, task_kind: TaskKind) -> str:
        if task_kind == TaskKind.VIDEO:
            return node.payload.animation_kind.value
        return task_kind.value

    async def generate(self, node_id: str) -> Optional[Node]:
        """
        Run generation for node_id and return the node's final state.

        Generation failures are recorded on the node, not raised. Unknown ids
        raise NodeNotFound; non-generatable kinds raise ValueError.
        """
        node, task_kind = self.resolve_target(node_id)
        target_id = node.id
        started = time.monotonic()

        metrics.inc_counter(f"generate.{task_kind.value}")
        self._active += 1
        metrics.set_gauge("active_generations", self._active)

        try:
            await self.status.begin(target_id)
            inputs = collect_inputs(self.store, target_id, task_kind, self.select)
            task = GenerationTask(
                target_node_id=target_id,
                task_kind=task_kind,
                inputs=inputs,
                seed=derive_seed(target_id, self._discriminator(node, task_kind)),
            )
            logger.info(f"[{target_id}] {task_kind.value} task, seed={task.seed}")

            output = await self.gateway.run(task)
            result = await self.status.complete(target_id, output)

        except NodeNotFound:
            logger.warning(f"[{target_id}] Node removed during generation, result dropped")
            await self.status.fail(target_id, "Source node was removed during generation")
            raise
        except GenerationError as e:
            message = e.describe()
            metrics.record_error(task_kind.value, e.kind.value, message, target_id)
            result = await self.status.fail(target_id, message)
        except Exception as e:
            logger.error(f"[{target_id}] Generation failed unexpectedly: {e}", exc_info=True)
            metrics.record_error(task_kind.value, "unexpected", str(e), target_id)
            result = await self.status.fail(target_id, str(e) or type(e).__name__)
        finally:
            self._active -= 1
            metrics.set_gauge("active_generations", self._active)
            metrics.record_latency(task_kind.value, (time.monotonic() - started) * 1000)

        return result

    def generate_background(self, node_id: str) -> asyncio.Task:
        """Fire-and-forget wrapper for generate. Validates the target first."""
        self.resolve_target(node_id)
        task = asyncio.create_task(self._generate_logged(node_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _generate_logged(self, node_id: str):
        try:
            await self.generate(node_id)
        except NodeNotFound:
            pass

    @property
    def active(self) -> int:
        """Generations currently running, background or awaited."""
        return self._active

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait for all background generations (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
