"""HTTP tests for the graph and generation routers."""

import base64
import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from spriteflow.config import Settings
from spriteflow.main import create_app
from spriteflow.pipeline.errors import RateLimited
from spriteflow.pipeline.gateway import ProviderGateway
from spriteflow.pipeline.graph import GraphStore
from spriteflow.pipeline.models import NodeStatus
from spriteflow.pipeline.orchestrator import GenerationService

from fakes import PNG_BYTES, FakeFrameExtractor, FakeImageProvider, FakeVideoProvider, SleepRecorder


@pytest.fixture
def image_provider():
    return FakeImageProvider()


@pytest.fixture
def service(image_provider):
    gateway = ProviderGateway(
        image_provider=image_provider,
        video_provider=FakeVideoProvider({}),
        frame_extractor=FakeFrameExtractor(),
        discover_models=False,
        sleep=SleepRecorder(),
    )
    return GenerationService(GraphStore(), gateway)


@pytest.fixture
def client(service):
    app = create_app(service=service, settings=Settings(gemini_api_key="test-key"))
    with TestClient(app) as c:
        yield c


def add_node(client, kind, node_id, **fields):
    response = client.post("/graph/nodes", json={"kind": kind, "id": node_id, **fields})
    assert response.status_code == 201, response.text
    return response.json()


def connect(client, source, target):
    response = client.post("/graph/edges", json={"source": source, "target": target})
    assert response.status_code == 201, response.text
    return response.json()


class TestGraphRoutes:
    def test_create_and_fetch(self, client):
        node = add_node(client, "prompt", "p1", text="pixel knight")
        assert node["payload"] == {"kind": "prompt", "text": "pixel knight"}
        assert node["status"] == "idle"

        assert client.get("/graph/nodes/p1").json()["payload"]["text"] == "pixel knight"

    def test_generated_id(self, client):
        response = client.post("/graph/nodes", json={"kind": "animation", "animation_kind": "jump"})
        node = response.json()
        assert node["id"].startswith("animation-")
        assert node["payload"]["animation_kind"] == "jump"

    def test_duplicate_id_conflicts(self, client):
        add_node(client, "preview", "pv")
        response = client.post("/graph/nodes", json={"kind": "preview", "id": "pv"})
        assert response.status_code == 409

    def test_unknown_node(self, client):
        assert client.get("/graph/nodes/missing").status_code == 404
        assert client.patch("/graph/nodes/missing", json={"label": "x"}).status_code == 404
        assert client.delete("/graph/nodes/missing").status_code == 404
        assert client.delete("/graph/edges/missing").status_code == 404

    def test_update_reference_image(self, client):
        add_node(client, "reference", "r1")
        response = client.patch("/graph/nodes/r1", json={
            "image_base64": base64.b64encode(PNG_BYTES).decode(),
            "mime_type": "image/png",
        })
        assert response.status_code == 200
        assert base64.b64decode(response.json()["payload"]["image"]) == PNG_BYTES

    def test_update_rejects_field_for_kind(self, client):
        add_node(client, "preview", "pv")
        response = client.patch("/graph/nodes/pv", json={"text": "nope"})
        assert response.status_code == 400

    def test_delete_node_removes_edges(self, client):
        add_node(client, "prompt", "p1")
        add_node(client, "preview", "pv")
        connect(client, "p1", "pv")

        assert client.delete("/graph/nodes/p1").status_code == 204

        graph = client.get("/graph").json()
        assert [n["id"] for n in graph["nodes"]] == ["pv"]
        assert graph["edges"] == []

    def test_delete_edge(self, client):
        add_node(client, "prompt", "p1")
        add_node(client, "preview", "pv")
        edge = connect(client, "p1", "pv")

        assert client.delete(f"/graph/edges/{edge['id']}").status_code == 204
        assert client.get("/graph").json()["edges"] == []


class TestGenerateRoutes:
    def test_generate_and_wait(self, client, image_provider):
        add_node(client, "prompt", "p1", text="pixel knight")
        add_node(client, "preview", "pv")
        connect(client, "p1", "pv")

        response = client.post("/generate/pv", params={"wait": "true"})

        assert response.status_code == 200
        node = response.json()
        assert node["status"] == "ready"
        assert base64.b64decode(node["payload"]["image"]) == PNG_BYTES
        assert image_provider.calls[0][0].startswith("pixel knight")

    def test_generate_in_background(self, client):
        add_node(client, "preview", "pv")

        response = client.post("/generate/pv")

        assert response.status_code == 202
        assert response.json() == {"node_id": "pv", "task_kind": "image", "status": "scheduled"}

    def test_error_is_recorded_on_node(self, client, image_provider):
        image_provider.error = RateLimited("quota exceeded", status_code=429)
        add_node(client, "preview", "pv")

        node = client.post("/generate/pv", params={"wait": "true"}).json()

        assert node["status"] == "error"
        assert node["error_message"] == "quota exceeded"

    def test_generate_rejects_non_generatable(self, client):
        add_node(client, "prompt", "p1")
        assert client.post("/generate/p1").status_code == 400
        assert client.post("/generate/missing").status_code == 404

    def test_busy_node_conflicts(self, client, service):
        add_node(client, "preview", "pv")
        node = service.store.get("pv")
        service.store.put(node.model_copy(update={"status": NodeStatus.GENERATING}))

        assert client.post("/generate/pv").status_code == 409
        assert client.patch("/graph/nodes/pv", json={"label": "hero"}).status_code == 409


class TestExportRoute:
    def test_export_zip(self, client):
        add_node(client, "preview", "pv")
        client.post("/generate/pv", params={"wait": "true"})

        response = client.post("/export")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        zf = zipfile.ZipFile(io.BytesIO(response.content))
        assert zf.read("previews/pv.png") == PNG_BYTES

    def test_remove_background_requires_key(self, client):
        assert client.post("/export", params={"remove_background": "true"}).status_code == 400


def test_health_and_metrics(client):
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["gemini_api_key_set"] is True
    assert health["removebg_api_key_set"] is False

    client.post("/graph/nodes", json={"kind": "preview", "id": "pv"})
    client.post("/generate/pv", params={"wait": "true"})
    assert client.get("/metrics").json()["counters"]["generate.image"] == 1
