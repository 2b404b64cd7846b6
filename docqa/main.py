"""Quart application exposing the documentation Q&A pipeline."""
from typing import Optional

from pydantic import ValidationError
from quart import Quart, request, jsonify
import structlog

from docqa import config
from docqa.errors import (
    EmbeddingError,
    GenerationError,
    IndexMismatchError,
    NotFoundError,
    QueryTimeoutError,
)
from docqa.llm_client import OllamaClient
from docqa.log import configure_logging
from docqa.memory import ConversationManager
from docqa.rag.embedder import Embedder
from docqa.rag.generator import AnswerGenerator
from docqa.rag.retriever import Retriever
from docqa.rag.retry import RetryPolicy
from docqa.rag.service import QAService
from docqa.rag.store_faiss import list_indexed_frameworks
from docqa.schemas import ErrorResponse, HistoryResponse, SearchRequest, SearchResponse

logger = structlog.get_logger()


def build_service(client: OllamaClient, retry_policy: Optional[RetryPolicy] = None) -> QAService:
    """Wire the query pipeline from config around one Ollama client."""
    retry_policy = retry_policy or RetryPolicy()
    embedder = Embedder(client, retry_policy=retry_policy)
    return QAService(
        retriever=Retriever(embedder),
        generator=AnswerGenerator(client, retry_policy=retry_policy),
    )


def _error(message: str, code: str, status: int):
    return jsonify(ErrorResponse(error=message, code=code).model_dump()), status


def create_app(
    qa_service: Optional[QAService] = None,
    conversation_manager: Optional[ConversationManager] = None,
    ollama_client: Optional[OllamaClient] = None,
) -> Quart:
    """Create the Quart app.

    Args:
        qa_service: Query pipeline (built from config if not provided)
        conversation_manager: History store (default database if not provided)
        ollama_client: Client used for readiness checks and the default pipeline
    """
    configure_logging()

    ollama_client = ollama_client or OllamaClient()
    qa_service = qa_service or build_service(ollama_client)
    conversation_manager = conversation_manager or ConversationManager()

    app = Quart(__name__)

    @app.route("/search", methods=["POST"])
    async def search():
        """Answer a question from one framework's documentation.

        Expects JSON body:
        {
            "query": "question text",
            "framework": "react",
            "history": [{"role": "user", "content": "..."}]  // optional
        }

        Returns JSON:
        {
            "answer": "answer text or 'Not in docs.'",
            "framework": "react"
        }
        """
        data = await request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("Request body must be a JSON object", "invalid_request", 400)

        payload = SearchRequest.model_validate(data)

        if payload.history is None:
            history = conversation_manager.get_recent_turns(payload.framework)
        else:
            history = payload.history

        logger.info(
            "search_request_received",
            framework=payload.framework,
            query_length=len(payload.query),
            history_turns=len(history),
        )

        answer = await qa_service.search(payload.query, payload.framework, history)
        conversation_manager.record_exchange(payload.framework, payload.query, answer)

        return jsonify(SearchResponse(answer=answer, framework=payload.framework).model_dump())

    @app.route("/history/<framework>", methods=["GET"])
    async def get_history(framework: str):
        """Return the persisted conversation for a framework."""
        history = conversation_manager.get_history(framework)
        return jsonify(HistoryResponse.model_validate(history).model_dump())

    @app.route("/history/<framework>", methods=["DELETE"])
    async def clear_history(framework: str):
        conversation_manager.clear_history(framework)
        return "", 204

    @app.route("/frameworks", methods=["GET"])
    async def frameworks():
        """List frameworks that have an index."""
        return jsonify({"frameworks": list_indexed_frameworks(qa_service.retriever.index_dir)})

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check if app can serve requests.

        Checks:
        - Ollama service is reachable
        - Chat and embedding models are available
        """
        checks = {
            "status": "healthy",
            "ollama": False,
            "models": False,
        }

        try:
            models = await ollama_client.list_models()
        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)
            return jsonify(checks), 503

        checks["ollama"] = True
        missing = [
            model
            for model in (qa_service.generator.model, qa_service.retriever.embedder.model)
            if model not in models
        ]
        if missing:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing models: {', '.join(missing)}"
            return jsonify(checks), 503

        checks["models"] = True
        return jsonify(checks), 200

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(ValidationError)
    async def invalid_request(error: ValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in error.errors()
        )
        logger.warning("invalid_request", details=details)
        return _error(f"Invalid request: {details}", "invalid_request", 400)

    @app.errorhandler(NotFoundError)
    async def unknown_framework(error: NotFoundError):
        logger.info("unknown_framework", framework=error.framework)
        return _error(str(error), "unknown_framework", 404)

    @app.errorhandler(GenerationError)
    async def generation_failed(error: GenerationError):
        logger.error("generation_error_response", error=str(error))
        return _error("The language model failed to answer. Please try again.", "generation_failed", 502)

    @app.errorhandler(EmbeddingError)
    async def embedding_failed(error: EmbeddingError):
        logger.error("embedding_error_response", error=str(error))
        return _error("The embedding model failed. Please try again.", "embedding_failed", 502)

    @app.errorhandler(QueryTimeoutError)
    async def query_timed_out(error: QueryTimeoutError):
        return _error(str(error), "timeout", 504)

    @app.errorhandler(IndexMismatchError)
    async def index_mismatch(error: IndexMismatchError):
        logger.error("index_mismatch", error=str(error))
        return _error(str(error), "index_mismatch", 500)

    @app.errorhandler(404)
    async def not_found(error):
        """Handle 404 errors."""
        return _error("Not found", "not_found", 404)

    @app.errorhandler(500)
    async def internal_error(error):
        """Handle 500 errors."""
        logger.error("internal_server_error", error=str(error))
        return _error("Internal server error", "internal_error", 500)

    return app


if __name__ == "__main__":
    # For development - use `hypercorn "docqa.main:create_app()"` in production
    create_app().run(host="0.0.0.0", port=3000, debug=True)
