"""Quart application exposing the documentation assistant as a JSON API."""
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError
from quart import Quart, current_app, jsonify, request

from docsbot import config
from docsbot.logging_config import configure_logging
from docsbot.rag.models import ImageReference, SourceDocument
from docsbot.service import DocsService

logger = structlog.get_logger()


class AskQuestionRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    session_id: Optional[str] = None


class ImagePayload(BaseModel):
    url: str = Field(min_length=1)
    alt: str = ""


class IngestDocumentRequest(BaseModel):
    path: str = Field(min_length=1)
    content: str
    images: Optional[List[ImagePayload]] = None
    source_url: Optional[str] = None


class RefreshRequest(BaseModel):
    docs_dir: Optional[str] = None
    rebuild: bool = False


def _service() -> DocsService:
    return current_app.extensions["docsbot"]


def _validation_error(e: ValidationError):
    logger.warning("request_validation_failed", error=str(e))
    return jsonify({"error": "Invalid request", "details": str(e)}), 400


def create_app(service: Optional[DocsService] = None) -> Quart:
    """Create the Quart app.

    Args:
        service: Prebuilt service; built from config at startup when omitted
    """
    app = Quart(__name__)
    app.extensions["docsbot"] = service

    @app.before_serving
    async def startup():
        if app.extensions.get("docsbot") is None:
            configure_logging()
            app.extensions["docsbot"] = DocsService.from_config()

    @app.route("/api/chat", methods=["POST"])
    async def chat():
        """Answer a question.

        Expects JSON body:
        {
            "message": "user message text",
            "session_id": "optional-session-id"  // creates new if not provided
        }

        Returns JSON:
        {
            "response": "assistant response text",
            "session_id": "session-id",
            "sources": [...]
        }
        """
        try:
            payload = AskQuestionRequest.model_validate(await request.get_json(silent=True) or {})
        except ValidationError as e:
            return _validation_error(e)

        message = payload.message.strip()
        if not message:
            return jsonify({"error": "Message cannot be empty"}), 400

        try:
            answer = await _service().assistant.answer(message, session_id=payload.session_id)
        except Exception as e:
            logger.error("chat_endpoint_error", error=str(e), error_type=type(e).__name__)
            return jsonify({
                "error": "An error occurred processing your request. Please try again."
            }), 500

        return jsonify({
            "response": answer.answer,
            "session_id": answer.session_id,
            "sources": answer.sources,
        })

    @app.route("/api/chat/<session_id>", methods=["GET"])
    async def chat_history(session_id: str):
        """Get all messages for a session."""
        try:
            messages = _service().conversations.get_all_messages(session_id)
            return jsonify({"messages": messages})
        except Exception as e:
            logger.error("messages_get_error", error=str(e), session_id=session_id)
            return jsonify({"error": "Failed to fetch chat history"}), 500

    @app.route("/api/admin/documentation", methods=["GET"])
    async def list_documentation():
        files = _service().corpus.list_files()
        return jsonify({
            "files": [
                {
                    "id": f.id,
                    "path": f.path,
                    "has_images": f.has_images,
                    "source_url": f.source_url,
                    "last_updated": f.last_updated.isoformat(),
                }
                for f in files
            ]
        })

    @app.route("/api/admin/documents", methods=["POST"])
    async def ingest_document():
        """Ingest one document supplied in the request body.

        Images default to the references found in the content.
        """
        try:
            payload = IngestDocumentRequest.model_validate(await request.get_json(silent=True) or {})
        except ValidationError as e:
            return _validation_error(e)

        pipeline = _service().pipeline
        if payload.images is None:
            images = pipeline.parser.extract_images(payload.content)
        else:
            images = [ImageReference(url=i.url, alt=i.alt) for i in payload.images]

        stats = await pipeline.ingest_batch([
            SourceDocument(
                path=payload.path,
                content=payload.content,
                images=images,
                source_url=payload.source_url,
            )
        ])
        status = 201 if stats["files_failed"] == 0 else 500
        return jsonify(stats), status

    @app.route("/api/admin/refresh", methods=["POST"])
    async def refresh_documentation():
        """Re-ingest every Markdown file of the documentation directory."""
        try:
            payload = RefreshRequest.model_validate(await request.get_json(silent=True) or {})
        except ValidationError as e:
            return _validation_error(e)

        docs_dir = Path(payload.docs_dir) if payload.docs_dir else config.DOCS_DIR
        try:
            stats = await _service().pipeline.ingest_directory(docs_dir, rebuild=payload.rebuild)
        except FileNotFoundError as e:
            return jsonify({"error": str(e)}), 404
        except Exception as e:
            logger.error("refresh_failed", error=str(e), error_type=type(e).__name__)
            return jsonify({"error": "Failed to refresh documentation"}), 500

        return jsonify({"success": stats["files_failed"] == 0, **stats})

    @app.route("/api/admin/documentation", methods=["DELETE"])
    async def purge_documentation():
        counts = _service().pipeline.purge()
        return jsonify({"success": True, "deleted": counts})

    @app.route("/api/admin/stats", methods=["GET"])
    async def documentation_stats():
        return jsonify(_service().get_stats())

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check that Ollama serves the configured models."""
        checks = {"status": "healthy", "ollama": False, "models": False}

        client = _service().ollama_client
        if client is None:
            checks["status"] = "unknown"
            return jsonify(checks), 200

        try:
            models = await client.list_models()
            checks["ollama"] = True

            missing = [m for m in (config.CHAT_MODEL, config.EMBEDDING_MODEL) if m not in models]
            if missing:
                checks["status"] = "unhealthy"
                checks["error"] = f"Missing models: {', '.join(missing)}"
            else:
                checks["models"] = True

            status_code = 200 if checks["status"] == "healthy" else 503
            return jsonify(checks), status_code

        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)
            return jsonify(checks), 503

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    # For development - use hypercorn in production: hypercorn docsbot.main:app
    app.run(host="0.0.0.0", port=5000, debug=True)
