# JSON endpoints the tree editor talks to
from flask import Blueprint, current_app, jsonify, request

from mat.sync.protocol import SyncEndpoint

taxonomy_bp = Blueprint("taxonomy", __name__)


def _endpoint() -> SyncEndpoint:
    return current_app.extensions["mat.sync"]


def _reply(result):
    body, status = result
    return jsonify(body), status


@taxonomy_bp.route("/taxonomy/<vocabulary_id>/api", methods=["GET"])
def tree(vocabulary_id):
    """Nested tree JSON for one vocabulary."""
    return _reply(_endpoint().list_tree(vocabulary_id))


@taxonomy_bp.route("/taxonomy/<vocabulary_id>/apply-hierarchy", methods=["POST"])
def apply_hierarchy(vocabulary_id):
    """Apply a submitted hidden-field snapshot to the vocabulary."""
    return _reply(_endpoint().apply_hierarchy(vocabulary_id, request.get_json(silent=True)))


@taxonomy_bp.route("/directory/create-term", methods=["POST"])
def create_term():
    return _reply(_endpoint().create_term(request.get_json(silent=True)))


@taxonomy_bp.route("/directory/update-term", methods=["POST"])
def update_term():
    return _reply(_endpoint().update_term(request.get_json(silent=True)))


@taxonomy_bp.route("/directory/delete-term", methods=["POST"])
def delete_term():
    return _reply(_endpoint().delete_term(request.get_json(silent=True)))


@taxonomy_bp.route("/directory/move-term", methods=["POST"])
def move_term():
    return _reply(_endpoint().move_term(request.get_json(silent=True)))


@taxonomy_bp.route("/directory/get-term/<term_id>", methods=["GET"])
def get_term(term_id):
    return _reply(_endpoint().get_term(term_id))
