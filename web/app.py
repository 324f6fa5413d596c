"""Flask app for the auto-parts storefront API.

Serves catalog listings, search suggestions, vehicle metadata, admin
import/export and affiliate balances as JSON over the catalog toolkit.
"""

import logging
from typing import Optional, Tuple

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from catalog.errors import StoreError
from catalog.storage import KeyValueStore, open_kv_store
from catalog.store import DocumentStore, open_document_store

from .api import api
from .config import (
    FALLBACK_ACTIONS,
    FALLBACK_MESSAGE,
    FLASK_DEBUG,
    FLASK_HOST,
    FLASK_PORT,
    MAX_UPLOAD_MB,
)
from .service import EXTENSION_KEY, CatalogService
from .state import AppState

__all__ = ["create_app"]

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[DocumentStore] = None,
    kv_store: Optional[KeyValueStore] = None,
) -> Flask:
    """Build the app.

    Args:
        store: Document store (default: Appwrite if configured, else SQLite).
        kv_store: Key-value store (default: probed SQLite with memory fallback).
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_MB * 1024 * 1024
    app.json.ensure_ascii = False

    state = AppState()
    if kv_store is None:
        kv_store = open_kv_store(on_fallback=state.enter_safe_mode)
    if store is None:
        store = open_document_store()

    service = CatalogService(store, kv_store, state)
    app.extensions[EXTENSION_KEY] = service
    service.refresh()

    app.register_blueprint(api)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception) -> Tuple[Response, int]:
        """Last-resort handler: log and answer with a generic fallback."""
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code or 500

        logger.exception(f"Unhandled error: {error}")
        if isinstance(error, StoreError):
            state.enter_safe_mode(f"Storage error: {error}")
        return jsonify({
            "error": FALLBACK_MESSAGE,
            "actions": FALLBACK_ACTIONS,
        }), 500

    return app


if __name__ == "__main__":
    from catalog.logging_config import setup_logging

    setup_logging()
    create_app().run(host=FLASK_HOST, port=FLASK_PORT, debug=FLASK_DEBUG)
