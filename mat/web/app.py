from __future__ import annotations

import argparse
from pathlib import Path

from flask import Flask, jsonify
from loguru import logger

from mat.core.config import config_from_env
from mat.core.logging_config import configure_logging
from mat.db.manager import DatabaseManager
from mat.db.services.hierarchy_store import HierarchyStore
from mat.sync.protocol import SyncEndpoint
from .routes import taxonomy_bp

DEFAULT_DB = Path.home() / "MediaAlbumTaxonomy" / "taxonomy.db"


def create_app(store: HierarchyStore) -> Flask:
    """ Build the Flask app around an already-configured store. """
    app = Flask(__name__)
    app.extensions["mat.sync"] = SyncEndpoint(store)
    app.register_blueprint(taxonomy_bp)

    @app.errorhandler(404)
    def _not_found(_):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def _bad_method(_):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the taxonomy tree API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument("--db", help="SQLite database path (default: $MAT_DB_PATH or ~/MediaAlbumTaxonomy)")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(verbose=args.verbose)
    cfg = config_from_env()

    db = DatabaseManager()
    db_path = Path(args.db or cfg.last_db_path or DEFAULT_DB)
    db.open(db_path, create_if_missing=True)
    store = HierarchyStore(db, orphan_policy=cfg.orphan_policy)
    store.ensure_vocabularies(cfg.vocabularies)

    logger.info("Serving {} on http://{}:{}", db_path, args.host, args.port)
    create_app(store).run(host=args.host, port=args.port)
