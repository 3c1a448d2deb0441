"""faq-assist: FAQ chatbot JSON API.

A Flask app exposing the retrieval pipeline in src/faq:
  - /api/chat           answer from the knowledge base, or queue for the team
  - /api/pending/...    admin resolution of queued questions
  - /api/kb/...         knowledge-base upkeep and answer feedback
  - /health             database connectivity and row counts

Run locally:
    python -m web.app
Production (gunicorn):
    gunicorn "web.app:create_app()"
"""

import atexit
import logging
import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from src.config import Settings
from src.db import Database
from src.faq.embeddings import OpenAIEmbedder
from src.faq.errors import FaqError
from src.faq.generation import AnthropicGenerator
from src.faq.resolution import ResolutionWorkflow
from src.faq.retrieval import RetrievalOrchestrator
from src.faq.store import FingerprintStore
from web.helpers import EXTENSION_KEY, Services, get_services
from web.routes_admin import bp as admin_bp
from web.routes_chat import bp as chat_bp

# Configure logging so gunicorn captures warnings from the core
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, *, database: Database | None = None,
               embedder=None, generator=None) -> Flask:
    """Build the app and its components.

    The database is opened here, once, and closed at interpreter exit.
    Providers default to OpenAI (embeddings) and Anthropic (generation);
    tests pass their own.
    """
    settings = settings or Settings.from_env()

    app = Flask(__name__)
    app.secret_key = settings.secret_key

    database = (database or Database.from_settings(settings)).open()
    atexit.register(database.close)

    store = FingerprintStore(database)
    store.ensure_schema()

    embedder = embedder or OpenAIEmbedder.from_settings(settings)
    generator = generator or AnthropicGenerator.from_settings(settings)

    app.extensions[EXTENSION_KEY] = Services(
        database=database,
        store=store,
        orchestrator=RetrievalOrchestrator.from_settings(settings, store, embedder, generator),
        workflow=ResolutionWorkflow(store, embedder),
    )

    app.register_blueprint(chat_bp)
    app.register_blueprint(admin_bp)
    app.add_url_rule("/health", view_func=health)
    _register_error_handlers(app)

    logger.info(
        "faq-assist ready (backend=%s, threshold=%.2f, top_n=%d)",
        database.backend, settings.similarity_threshold, settings.top_n,
    )
    return app


def health():
    """Health check endpoint: database connectivity and row counts."""
    services = get_services()
    info = {"status": "ok", **services.database.get_pool_stats()}
    try:
        info.update(services.store.get_stats())
        info["db_connected"] = True
    except FaqError as e:
        info["db_connected"] = False
        info["db_error"] = str(e)
        info["status"] = "degraded"
    return jsonify(info)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(FaqError)
    def handle_faq_error(e):
        if e.status_code >= 500:
            logger.error("%s: %s", type(e).__name__, e)
        body = {"error": str(e)}
        if e.retryable:
            body["retryable"] = True
        return jsonify(body), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 4000))
    create_app().run(debug=True, host="0.0.0.0", port=port)
