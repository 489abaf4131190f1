"""Quart application for document question answering."""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog
from hypercorn.asyncio import serve as hypercorn_serve
from hypercorn.config import Config as HypercornConfig
from pydantic import BaseModel, Field, ValidationError, field_validator
from quart import Blueprint, Quart, current_app, jsonify, request

from docchat import config
from docchat.chat import ChatOrchestrator, SupportsGenerate
from docchat.db import SQLiteStorage, Storage
from docchat.errors import (
    EmbeddingError,
    ExtractionError,
    GenerationError,
    UnsupportedTypeError,
    UploadTooLargeError,
)
from docchat.llm_client import LLMClient, TextGenerator
from docchat.memory import ConversationManager
from docchat.rag.embedder import Embedder
from docchat.rag.embedding_queue import EmbeddingQueue, SupportsEmbed
from docchat.rag.ingest import IngestPipeline
from docchat.rag.retriever import SimilarityRanker

logger = structlog.get_logger()

# Multipart framing on top of the file itself
_MULTIPART_SLACK_BYTES = 64 * 1024


def configure_logging(level: str = None) -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(format="%(message)s", level=(level or config.LOG_LEVEL).upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""

    content: str = Field(min_length=1)
    conversation_id: Optional[str] = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message content is required")
        return value


class ConversationRequest(BaseModel):
    """Body of POST /api/messages/reset."""

    conversation_id: Optional[str] = None


@dataclass
class Services:
    """Collaborators shared by the request handlers."""

    storage: Storage
    embedding_queue: EmbeddingQueue
    pipeline: IngestPipeline
    conversations: ConversationManager
    orchestrator: ChatOrchestrator
    llm_client: Optional[LLMClient] = None


def build_services(
    storage: Storage = None,
    embedder: SupportsEmbed = None,
    generator: SupportsGenerate = None,
    llm_client: LLMClient = None,
) -> Services:
    """Wire the ingest and chat pipelines, defaulting to SQLite and the hosted LLM."""
    storage = storage or SQLiteStorage()

    if embedder is None or generator is None:
        llm_client = llm_client or LLMClient()
    embedder = embedder or Embedder(llm_client)
    generator = generator or TextGenerator(llm_client)

    embedding_queue = EmbeddingQueue(storage, embedder)
    conversations = ConversationManager(storage)

    return Services(
        storage=storage,
        embedding_queue=embedding_queue,
        pipeline=IngestPipeline(storage, embedding_queue),
        conversations=conversations,
        orchestrator=ChatOrchestrator(
            conversations=conversations,
            embedder=embedder,
            ranker=SimilarityRanker(storage),
            generator=generator,
        ),
        llm_client=llm_client,
    )


api = Blueprint("api", __name__)


def _services() -> Services:
    return current_app.extensions["docchat"]


@api.route("/api/documents", methods=["POST"])
async def upload_document():
    """Upload a document (multipart field ``file``) and index it.

    Returns the stored document with its chunk count. Embeddings are computed
    in the background after the response is sent.
    """
    files = await request.files
    upload = files.get("file")

    if upload is None or not upload.filename:
        return jsonify({"error": "No file uploaded"}), 400

    upload_dir = Path(current_app.config["UPLOAD_DIR"])
    upload_dir.mkdir(parents=True, exist_ok=True)
    staged = upload_dir / f"{int(time.time() * 1000)}-{uuid.uuid4().hex}"
    staged.write_bytes(upload.read())

    try:
        result = await _services().pipeline.ingest_file(
            staged, original_name=upload.filename, remove_after=True
        )

    except UploadTooLargeError as e:
        logger.warning("upload_rejected_too_large", name=upload.filename, size=e.size)
        return jsonify({"error": str(e)}), 413

    except UnsupportedTypeError as e:
        logger.warning("upload_rejected_type", name=upload.filename, type=e.declared_type)
        return jsonify({"error": str(e)}), 400

    except ExtractionError as e:
        logger.warning("upload_rejected_unreadable", name=upload.filename, error=str(e))
        return jsonify({"error": "Could not read the uploaded file"}), 400

    except Exception as e:
        logger.error("document_upload_error", error=str(e), error_type=type(e).__name__)
        return jsonify({"error": "Failed to upload document"}), 500

    return jsonify(result.to_dict()), 201


@api.route("/api/documents", methods=["GET"])
async def list_documents():
    """List all documents, newest first."""
    try:
        documents = _services().pipeline.list_documents()
        return jsonify({"documents": [d.to_dict() for d in documents]})

    except Exception as e:
        logger.error("documents_list_error", error=str(e))
        return jsonify({"error": "Failed to fetch documents"}), 500


@api.route("/api/documents/<document_id>", methods=["DELETE"])
async def delete_document(document_id: str):
    """Delete a document and all of its chunks.

    Returns:
        204 No Content if successful
        404 Not Found if the document doesn't exist
    """
    try:
        deleted = _services().pipeline.delete_document(document_id)

        if deleted:
            return "", 204
        else:
            return jsonify({"error": "Document not found"}), 404

    except Exception as e:
        logger.error("document_delete_error", error=str(e), document_id=document_id)
        return jsonify({"error": "Failed to delete document"}), 500


@api.route("/api/conversations", methods=["POST"])
async def create_conversation():
    """Start a new conversation and return its id."""
    conversation_id = _services().conversations.create_conversation()
    return jsonify({"conversation_id": conversation_id}), 201


@api.route("/api/chat", methods=["POST"])
async def chat():
    """Answer a message from the uploaded documents.

    Expects JSON body:
    {
        "content": "user message text",
        "conversation_id": "optional, defaults to the shared conversation"
    }

    Returns JSON:
    {
        "message": {...assistant message...},
        "conversation_id": "...",
        "context": {"chunk_count": 3},
        "sources": [...]
    }
    """
    data = await request.get_json(silent=True)

    try:
        body = ChatRequest.model_validate(data or {})
    except ValidationError as e:
        logger.warning("invalid_chat_request", errors=e.error_count())
        return jsonify({"error": "Message content is required"}), 400

    conversation_id = body.conversation_id or config.DEFAULT_CONVERSATION_ID

    logger.info(
        "chat_request_received",
        conversation_id=conversation_id,
        message_length=len(body.content),
    )

    try:
        turn = await _services().orchestrator.respond(conversation_id, body.content)

    except (EmbeddingError, GenerationError) as e:
        logger.error(
            "chat_turn_failed",
            conversation_id=conversation_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return jsonify({"error": "Failed to process chat message"}), 502

    except Exception as e:
        logger.error("chat_endpoint_error", error=str(e), error_type=type(e).__name__)
        return jsonify({"error": "Failed to process chat message"}), 500

    return jsonify(turn.to_dict())


@api.route("/api/messages", methods=["GET"])
async def get_messages():
    """Get the messages of a conversation in order."""
    conversation_id = request.args.get("conversation_id") or config.DEFAULT_CONVERSATION_ID

    try:
        messages = _services().conversations.get_all_messages(conversation_id)
        return jsonify({
            "conversation_id": conversation_id,
            "messages": [m.to_dict() for m in messages],
        })

    except Exception as e:
        logger.error("messages_get_error", error=str(e), conversation_id=conversation_id)
        return jsonify({"error": "Failed to fetch messages"}), 500


@api.route("/api/messages/reset", methods=["POST"])
async def reset_messages():
    """Clear the history of a conversation."""
    data = await request.get_json(silent=True)

    try:
        body = ConversationRequest.model_validate(data or {})
    except ValidationError:
        return jsonify({"error": "Invalid request body"}), 400

    conversation_id = body.conversation_id or config.DEFAULT_CONVERSATION_ID

    try:
        removed = _services().conversations.reset(conversation_id)
        return jsonify({
            "message": "Chat history cleared",
            "conversation_id": conversation_id,
            "removed": removed,
        })

    except Exception as e:
        logger.error("messages_reset_error", error=str(e), conversation_id=conversation_id)
        return jsonify({"error": "Failed to reset chat history"}), 500


@api.route("/health/ready")
async def health_ready():
    """Readiness probe - check that the LLM provider is reachable."""
    checks = {"status": "healthy", "llm": None}
    llm_client = _services().llm_client

    if llm_client is None:
        return jsonify(checks), 200

    try:
        models = await llm_client.list_models()
        checks["llm"] = True
        if config.CHAT_MODEL not in models:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing chat model: {config.CHAT_MODEL}"

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        checks["status"] = "unhealthy"
        checks["llm"] = False
        checks["error"] = str(e)
        return jsonify(checks), 503


@api.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


def create_app(services: Services = None, upload_dir: Path = None) -> Quart:
    """Create the Quart application.

    Args:
        services: Pre-wired collaborators (default: SQLite store + hosted LLM)
        upload_dir: Where uploads are staged before ingestion (default from config)
    """
    configure_logging()

    validate_llm = services is None
    services = services or build_services()

    app = Quart(__name__)
    app.config["UPLOAD_DIR"] = str(upload_dir or config.UPLOAD_DIR)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES + _MULTIPART_SLACK_BYTES
    app.extensions["docchat"] = services
    app.register_blueprint(api)

    @app.before_serving
    async def check_settings():
        if validate_llm and services.llm_client is not None:
            services.llm_client.validate()

    @app.after_serving
    async def finish_embeddings():
        # Let in-flight embeddings land before the process exits
        await services.embedding_queue.drain()

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    async def too_large(error):
        limit_mb = config.MAX_UPLOAD_BYTES // (1024 * 1024)
        return jsonify({"error": f"File too large (max {limit_mb} MB)"}), 413

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


def serve() -> None:
    """Run the application under Hypercorn."""
    hypercorn_config = HypercornConfig()
    hypercorn_config.bind = [f"{config.HOST}:{config.PORT}"]
    asyncio.run(hypercorn_serve(create_app(), hypercorn_config))


if __name__ == "__main__":
    # For development - use `docchat-serve` (Hypercorn) in production
    create_app().run(host=config.HOST, port=config.PORT, debug=True)
