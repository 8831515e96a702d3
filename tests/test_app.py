"""Tests for the Quart JSON API."""
import httpx
import pytest

from docsbot import config
from docsbot.llm_client import OllamaClient
from docsbot.main import create_app

from tests.conftest import GUIDE


@pytest.fixture
def client(service):
    return create_app(service).test_client()


async def ingest_guide(client):
    return await client.post("/api/admin/documents", json={"path": "guide.md", "content": GUIDE})


@pytest.mark.anyio
async def test_chat_round_trip(client, generator):
    await ingest_guide(client)

    response = await client.post("/api/chat", json={"message": "how do I install"})
    data = await response.get_json()

    assert response.status_code == 200
    assert data["response"] == generator.reply
    assert data["sources"][0]["path"] == "guide.md"

    history = await client.get(f"/api/chat/{data['session_id']}")
    messages = (await history.get_json())["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant"]


@pytest.mark.anyio
@pytest.mark.parametrize("payload", [{}, {"message": ""}, {"message": "   "}, {"message": 42}])
async def test_chat_rejects_bad_payloads(client, payload):
    response = await client.post("/api/chat", json=payload)

    assert response.status_code == 400


@pytest.mark.anyio
async def test_ingest_document_extracts_images(client, service):
    response = await client.post(
        "/api/admin/documents",
        json={"path": "pics.md", "content": "![Logo](img/logo.png) about the widget"},
    )

    assert response.status_code == 201
    assert (await response.get_json())["files_processed"] == 1
    file = service.corpus.get_file_by_path("pics.md")
    assert [i.url for i in service.corpus.get_images_for_file(file.id)] == ["img/logo.png"]


@pytest.mark.anyio
async def test_list_and_purge_documentation(client):
    await ingest_guide(client)

    listing = await (await client.get("/api/admin/documentation")).get_json()
    assert [f["path"] for f in listing["files"]] == ["guide.md"]

    purge = await client.delete("/api/admin/documentation")
    assert (await purge.get_json())["deleted"]["documentation_files"] == 1

    stats = await (await client.get("/api/admin/stats")).get_json()
    assert stats["chunk_count"] == 0
    assert stats["index"]["cached"] is False


@pytest.mark.anyio
async def test_refresh_from_directory(client, tmp_path):
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "a.md").write_text("pip install widget", encoding="utf-8")

    response = await client.post("/api/admin/refresh", json={"docs_dir": str(docs)})
    data = await response.get_json()

    assert response.status_code == 200
    assert data["success"] is True
    assert data["files_processed"] == 1

    missing = await client.post("/api/admin/refresh", json={"docs_dir": str(tmp_path / "nope")})
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_health_endpoints(client, service):
    assert (await client.get("/health/live")).status_code == 200

    unknown = await client.get("/health/ready")
    assert (await unknown.get_json())["status"] == "unknown"

    def handler(request):
        return httpx.Response(
            200, json={"models": [{"name": config.CHAT_MODEL}, {"name": config.EMBEDDING_MODEL}]}
        )

    service.ollama_client = OllamaClient(base_url="http://ollama.test", transport=httpx.MockTransport(handler))
    ready = await client.get("/health/ready")
    assert ready.status_code == 200
    assert (await ready.get_json())["models"] is True


@pytest.mark.anyio
async def test_health_ready_reports_missing_models(client, service):
    def handler(request):
        return httpx.Response(200, json={"models": []})

    service.ollama_client = OllamaClient(base_url="http://ollama.test", transport=httpx.MockTransport(handler))

    response = await client.get("/health/ready")

    assert response.status_code == 503
    assert "Missing models" in (await response.get_json())["error"]


@pytest.mark.anyio
async def test_unknown_route_is_json_404(client):
    response = await client.get("/nowhere")

    assert response.status_code == 404
    assert (await response.get_json()) == {"error": "Not found"}
