"""HTTP API tests against the Quart test client with stubbed LLM collaborators."""
import io

import pytest
from quart.datastructures import FileStorage

from docchat import config
from docchat.db import InMemoryStorage
from docchat.main import build_services, create_app

from tests.conftest import StubEmbedder, StubGenerator


@pytest.fixture
def generator():
    return StubGenerator(reply="Refunds take 14 days.")


@pytest.fixture
def app(tmp_path, generator):
    services = build_services(
        storage=InMemoryStorage(),
        embedder=StubEmbedder(fail_on=("unembeddable",)),
        generator=generator,
    )
    return create_app(services, upload_dir=tmp_path / "uploads")


def _upload(filename, data, content_type="application/octet-stream"):
    return {"file": FileStorage(io.BytesIO(data), filename=filename, content_type=content_type)}


async def _drain(app):
    return await app.extensions["docchat"].embedding_queue.drain()


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_upload_list_and_delete(app, tmp_path):
    client = app.test_client()

    response = await client.post(
        "/api/documents", files=_upload("policy.txt", b"Refunds take 14 days.", "text/plain")
    )
    assert response.status_code == 201
    document = await response.get_json()
    assert document["name"] == "policy.txt"
    assert document["type"] == "TXT"
    assert document["chunk_count"] == 1
    await _drain(app)

    listing = await (await client.get("/api/documents")).get_json()
    assert [d["id"] for d in listing["documents"]] == [document["id"]]

    response = await client.delete(f"/api/documents/{document['id']}")
    assert response.status_code == 204

    response = await client.delete(f"/api/documents/{document['id']}")
    assert response.status_code == 404

    listing = await (await client.get("/api/documents")).get_json()
    assert listing["documents"] == []


@pytest.mark.asyncio
async def test_staged_upload_removed(app, tmp_path):
    client = app.test_client()
    await client.post("/api/documents", files=_upload("a.md", b"# notes"))
    await _drain(app)

    assert list((tmp_path / "uploads").iterdir()) == []


@pytest.mark.asyncio
async def test_upload_without_file(app):
    response = await app.test_client().post("/api/documents", form={"other": "x"})
    assert response.status_code == 400
    assert (await response.get_json())["error"] == "No file uploaded"


@pytest.mark.asyncio
async def test_upload_unsupported_type(app):
    client = app.test_client()
    response = await client.post("/api/documents", files=_upload("tool.exe", b"MZ"))

    assert response.status_code == 400
    assert "Only PDF, DOCX, TXT, and MD" in (await response.get_json())["error"]
    listing = await (await client.get("/api/documents")).get_json()
    assert listing["documents"] == []


@pytest.mark.asyncio
async def test_upload_unreadable_pdf(app):
    response = await app.test_client().post(
        "/api/documents", files=_upload("scan.pdf", b"garbage", "application/pdf")
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_upload_too_large(app):
    client = app.test_client()
    data = b"x" * (config.MAX_UPLOAD_BYTES + 1)

    response = await client.post("/api/documents", files=_upload("big.txt", data))

    assert response.status_code == 413
    listing = await (await client.get("/api/documents")).get_json()
    assert listing["documents"] == []


# ------------------------------------------------------------------
# Chat
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_chat_grounded_in_upload(app, generator):
    client = app.test_client()
    await client.post("/api/documents", files=_upload("policy.txt", b"Refunds take 14 days."))
    await _drain(app)

    response = await client.post("/api/chat", json={"content": "How long do refunds take?"})

    assert response.status_code == 200
    data = await response.get_json()
    assert data["message"]["role"] == "assistant"
    assert data["message"]["content"] == "Refunds take 14 days."
    assert data["conversation_id"] == config.DEFAULT_CONVERSATION_ID
    assert data["context"] == {"chunk_count": 1}
    assert data["sources"][0]["content_preview"] == "Refunds take 14 days."
    assert "Document excerpt 1:\nRefunds take 14 days." in generator.last_system_prompt


@pytest.mark.asyncio
async def test_chat_without_documents(app, generator):
    response = await app.test_client().post("/api/chat", json={"content": "What is 2+2?"})

    data = await response.get_json()
    assert response.status_code == 200
    assert data["context"] == {"chunk_count": 0}
    assert "Document excerpt" not in generator.last_system_prompt


@pytest.mark.asyncio
async def test_chunk_with_failed_embedding_not_retrieved(app):
    client = app.test_client()
    response = await client.post(
        "/api/documents", files=_upload("bad.txt", b"unembeddable content")
    )
    assert response.status_code == 201
    await _drain(app)

    data = await (await client.post("/api/chat", json={"content": "anything"})).get_json()
    assert data["context"] == {"chunk_count": 0}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"content": ""}, {"content": "   "}, {"content": 5}])
async def test_chat_rejects_missing_content(app, body):
    response = await app.test_client().post("/api/chat", json=body)
    assert response.status_code == 400
    assert (await response.get_json())["error"] == "Message content is required"


@pytest.mark.asyncio
async def test_chat_generation_failure(app, generator):
    generator.fail = True
    client = app.test_client()

    response = await client.post("/api/chat", json={"content": "hello"})

    assert response.status_code == 502
    messages = await (await client.get("/api/messages")).get_json()
    assert [m["role"] for m in messages["messages"]] == ["user"]


# ------------------------------------------------------------------
# Conversations and history
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_messages_and_reset_default_conversation(app):
    client = app.test_client()
    await client.post("/api/chat", json={"content": "first"})
    await client.post("/api/chat", json={"content": "second"})

    data = await (await client.get("/api/messages")).get_json()
    assert data["conversation_id"] == config.DEFAULT_CONVERSATION_ID
    assert [(m["role"], m["content"]) for m in data["messages"]] == [
        ("user", "first"),
        ("assistant", "Refunds take 14 days."),
        ("user", "second"),
        ("assistant", "Refunds take 14 days."),
    ]

    reset = await (await client.post("/api/messages/reset")).get_json()
    assert reset["removed"] == 4
    assert reset["message"] == "Chat history cleared"

    data = await (await client.get("/api/messages")).get_json()
    assert data["messages"] == []


@pytest.mark.asyncio
async def test_separate_conversations(app, generator):
    client = app.test_client()
    created = await client.post("/api/conversations")
    assert created.status_code == 201
    conversation_id = (await created.get_json())["conversation_id"]

    await client.post("/api/chat", json={"content": "shared"})
    response = await client.post(
        "/api/chat", json={"content": "private", "conversation_id": conversation_id}
    )

    assert (await response.get_json())["conversation_id"] == conversation_id
    assert generator.last_history == [{"role": "user", "content": "private"}]

    data = await (
        await client.get("/api/messages", query_string={"conversation_id": conversation_id})
    ).get_json()
    assert [m["content"] for m in data["messages"]] == ["private", "Refunds take 14 days."]

    await client.post("/api/messages/reset", json={"conversation_id": conversation_id})
    default = await (await client.get("/api/messages")).get_json()
    assert len(default["messages"]) == 2


# ------------------------------------------------------------------
# Health and errors
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_endpoints(app):
    client = app.test_client()

    live = await client.get("/health/live")
    assert live.status_code == 200
    assert (await live.get_json()) == {"status": "alive"}

    ready = await client.get("/health/ready")
    assert ready.status_code == 200
    assert (await ready.get_json())["status"] == "healthy"


@pytest.mark.asyncio
async def test_unknown_route_is_json_404(app):
    response = await app.test_client().get("/api/nope")
    assert response.status_code == 404
    assert (await response.get_json()) == {"error": "Not found"}
