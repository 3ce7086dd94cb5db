from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Protocol
from urllib.parse import quote

import requests
from loguru import logger

from mat.core import tree_serializer
from mat.core.errors import (
    ERRORS_BY_CODE, TaxonomyError, ValidationError, NotFound, ConflictError, TransportError
)
from mat.core.tree_serializer import TreeNode
from mat.db.models import ROOT
from .protocol import SyncEndpoint

DEFAULT_TIMEOUT_S = 30.0

ERRORS_BY_STATUS: dict[int, type[TaxonomyError]] = {
    400: ValidationError,
    404: NotFound,
    409: ConflictError,
}


class Transport(Protocol):
    """Carries one protocol operation and returns (body, status)."""

    def call(self, op: str, payload: Optional[dict] = None, **params) -> tuple[Any, int]: ...


class EndpointTransport:
    """ In-process transport straight onto a SyncEndpoint.
    Payloads and responses go through a JSON round trip so the client sees exactly what it would over HTTP.
    """

    def __init__(self, endpoint: SyncEndpoint):
        self.endpoint = endpoint

    def call(self, op: str, payload: Optional[dict] = None, **params) -> tuple[Any, int]:
        body = json.loads(json.dumps(payload)) if payload is not None else None
        match op:
            case "list":
                res, status = self.endpoint.list_tree(params["vocabulary_id"])
            case "create":
                res, status = self.endpoint.create_term(body)
            case "update":
                res, status = self.endpoint.update_term(body)
            case "delete":
                res, status = self.endpoint.delete_term(body)
            case "move":
                res, status = self.endpoint.move_term(body)
            case "get":
                res, status = self.endpoint.get_term(params["term_id"])
            case "apply":
                res, status = self.endpoint.apply_hierarchy(params["vocabulary_id"], body)
            case _:
                raise ValueError(f"Unknown operation {op}")
        return json.loads(json.dumps(res)), status


class HttpTransport:
    """ HTTP transport onto the Flask endpoints. Any network failure or timeout becomes a TransportError. """

    ROUTES = {
        "list": ("GET", "/taxonomy/{vocabulary_id}/api"),
        "create": ("POST", "/directory/create-term"),
        "update": ("POST", "/directory/update-term"),
        "delete": ("POST", "/directory/delete-term"),
        "move": ("POST", "/directory/move-term"),
        "get": ("GET", "/directory/get-term/{term_id}"),
        "apply": ("POST", "/taxonomy/{vocabulary_id}/apply-hierarchy"),
    }

    def __init__(self, base_url: str, *, timeout: float = DEFAULT_TIMEOUT_S,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def call(self, op: str, payload: Optional[dict] = None, **params) -> tuple[Any, int]:
        try:
            method, template = self.ROUTES[op]
        except KeyError:
            raise ValueError(f"Unknown operation {op}") from None
        url = self.base_url + template.format(**{k: quote(str(v), safe="") for k, v in params.items()})
        logger.debug("{} {}", method, url)
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise TransportError(f"Request timed out after {self.timeout:g}s") from e
        except requests.RequestException as e:
            raise TransportError(f"Request failed: {e}") from e
        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(f"Server returned HTTP {resp.status_code} without a JSON body") from e
        return body, resp.status_code


class SyncClient:
    """ Client side of the sync protocol. Failed responses are raised as the matching domain exception. """

    def __init__(self, transport: Transport):
        self.transport = transport

    def _call(self, op: str, payload: Optional[dict] = None, **params) -> Any:
        body, status = self.transport.call(op, payload, **params)
        failed = status >= 400 or (isinstance(body, dict) and body.get("success") is False)
        if not failed:
            return body
        message = body.get("error") if isinstance(body, dict) else None
        code = body.get("code") if isinstance(body, dict) else None
        exc_type = ERRORS_BY_CODE.get(code) or ERRORS_BY_STATUS.get(status, TransportError)
        raise exc_type(message or f"{op} failed with HTTP {status}")

    # ---------- operations ----------
    def list_tree(self, vocabulary_id: str) -> list[TreeNode]:
        body = self._call("list", vocabulary_id=vocabulary_id)
        if not isinstance(body, list):
            raise TransportError("Tree response is not a list")
        return tree_serializer.from_json(body)

    def create_term(self, vocabulary_id: str, name: str, *, description: str = "", parent_id: int = ROOT,
                    weight: Optional[int] = None) -> int:
        body = self._call("create", {
            "name": name,
            "description": description,
            "parent": parent_id,
            "weight": weight,
            "vocabulary_id": vocabulary_id,
            "parent_id": parent_id,
        })
        return int(body["term_id"])

    def update_term(self, term_id: int, *, name: Optional[str] = None, description: Optional[str] = None,
                    version: Optional[int] = None) -> None:
        payload: dict[str, Any] = {"term_id": term_id}
        if name is not None:
            payload["name"] = name
        if description is not None:
            payload["description"] = description
        if version is not None:
            payload["version"] = version
        self._call("update", payload)

    def delete_term(self, term_id: int) -> None:
        self._call("delete", {"term_id": term_id})

    def move_term(self, term_id: int, parent_id: int, weights: Mapping[int, int]) -> None:
        self._call("move", {
            "term_id": term_id,
            "parent_id": parent_id,
            "weights": {str(k): int(v) for k, v in weights.items()},
        })

    def get_term(self, term_id: int) -> dict[str, Any]:
        return self._call("get", term_id=term_id)["data"]

    def apply_hierarchy(self, vocabulary_id: str, field_value: str) -> int:
        body = self._call("apply", {"value": field_value}, vocabulary_id=vocabulary_id)
        return int(body.get("changed", 0))
