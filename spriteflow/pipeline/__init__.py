"""
Sprite Generation Pipeline

Orchestration for the node graph:
  Resolve  : walk upstream edges for prompt, references, source image or video
  Generate : Gemini image, Veo video (fallback chain + polling), ffmpeg frames
  Propagate: status transitions and mirroring into preview nodes
"""

from .orchestrator import GenerationService
from .gateway import ProviderGateway
from .graph import GraphStore
from .routes import graph_router, generation_router
from .models import NodeKind, NodeStatus

__all__ = [
    "GenerationService",
    "ProviderGateway",
    "GraphStore",
    "graph_router",
    "generation_router",
    "NodeKind",
    "NodeStatus",
]
