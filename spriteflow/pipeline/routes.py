"""
FastAPI routes for the sprite graph.

Graph Endpoints:
  GET    /graph               Full snapshot (nodes + edges)
  POST   /graph/nodes         Add a node
  GET    /graph/nodes/{id}    Get one node
  PATCH  /graph/nodes/{id}    Edit raw fields (prompt text, reference image, ...)
  DELETE /graph/nodes/{id}    Delete a node and every edge touching it
  POST   /graph/edges         Connect two nodes
  DELETE /graph/edges/{id}    Disconnect

Generation Endpoints:
  POST /generate/{id}         Run a Preview / Animation / Cut (or AnimationPreview → its Animation)
  POST /export                Download a zip of all ready outputs
"""

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from .export import build_export
from .graph import NodeNotFound
from .models import (
    AnimationPayload,
    EdgeCreateRequest,
    Edge,
    GraphSnapshot,
    Node,
    NodeCreateRequest,
    NodeKind,
    NodeUpdateRequest,
    PAYLOAD_TYPES,
    PromptPayload,
)
from .orchestrator import GenerationService

logger = logging.getLogger(__name__)


def _service(request: Request) -> GenerationService:
    return request.app.state.service


# ═════════════════════════════════════════════════════════════════════════════
# Graph Router
# ═════════════════════════════════════════════════════════════════════════════

graph_router = APIRouter(prefix="/graph", tags=["graph"])


@graph_router.get("", response_model=GraphSnapshot)
async def get_graph(request: Request):
    return _service(request).store.snapshot()


@graph_router.post("/nodes", response_model=Node, status_code=201)
async def add_node(body: NodeCreateRequest, request: Request):
    """Add a node. The id is generated as '<kind>-<8 hex>' when omitted."""
    store = _service(request).store
    payload = PAYLOAD_TYPES[body.kind]()
    if body.kind == NodeKind.PROMPT and body.text is not None:
        payload = PromptPayload(text=body.text)
    elif body.kind == NodeKind.ANIMATION and body.animation_kind is not None:
        payload = AnimationPayload(animation_kind=body.animation_kind)

    try:
        return await store.add_node(body.kind, node_id=body.id, label=body.label, payload=payload)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@graph_router.get("/nodes/{node_id}", response_model=Node)
async def get_node(node_id: str, request: Request):
    try:
        return _service(request).store.get(node_id)
    except NodeNotFound:
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")


@graph_router.patch("/nodes/{node_id}", response_model=Node)
async def update_node(node_id: str, body: NodeUpdateRequest, request: Request):
    service = _service(request)
    if service.is_busy(node_id):
        raise HTTPException(status_code=409, detail=f"Node {node_id} is generating")
    try:
        return await service.store.update_node(node_id, body)
    except NodeNotFound:
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@graph_router.delete("/nodes/{node_id}", status_code=204)
async def delete_node(node_id: str, request: Request):
    try:
        await _service(request).store.remove_node(node_id)
    except NodeNotFound:
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")
    return Response(status_code=204)


@graph_router.post("/edges", response_model=Edge, status_code=201)
async def add_edge(body: EdgeCreateRequest, request: Request):
    return await _service(request).store.add_edge(body.source, body.target, edge_id=body.id)


@graph_router.delete("/edges/{edge_id}", status_code=204)
async def delete_edge(edge_id: str, request: Request):
    try:
        await _service(request).store.remove_edge(edge_id)
    except NodeNotFound:
        raise HTTPException(status_code=404, detail=f"Edge {edge_id} not found")
    return Response(status_code=204)


# ═════════════════════════════════════════════════════════════════════════════
# Generation Router
# ═════════════════════════════════════════════════════════════════════════════

generation_router = APIRouter(tags=["generation"])


@generation_router.post("/generate/{node_id}")
async def generate(
    node_id: str,
    request: Request,
    wait: bool = Query(False, description="Block until the node is ready or errored"),
):
    """Run generation for one node. Returns 202 immediately unless wait=true."""
    service = _service(request)
    try:
        target, task_kind = service.resolve_target(node_id)
    except NodeNotFound:
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if service.is_busy(node_id):
        raise HTTPException(status_code=409, detail=f"Node {target.id} is already generating")

    if wait:
        try:
            node = await service.generate(node_id)
        except NodeNotFound:
            raise HTTPException(status_code=404, detail=f"Node {target.id} was removed during generation")
        return node

    service.generate_background(node_id)
    return JSONResponse(
        status_code=202,
        content={"node_id": target.id, "task_kind": task_kind.value, "status": "scheduled"},
    )


@generation_router.post("/export")
async def export_graph(
    request: Request,
    remove_background: bool = Query(False, description="Strip frame backgrounds via remove.bg"),
):
    """Zip every ready preview, animation and frame set."""
    service = _service(request)
    remover = None
    if remove_background:
        client = getattr(request.app.state, "removebg", None)
        if client is None or not client.api_key:
            raise HTTPException(status_code=400, detail="REMOVEBG_API_KEY not configured")
        remover = client.remove_background

    snapshot = service.store.snapshot()
    try:
        archive = await asyncio.to_thread(build_export, snapshot, remover)
    except Exception as e:
        logger.error(f"Export failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": 'attachment; filename="spriteflow-export.zip"'},
    )
