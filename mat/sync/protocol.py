from __future__ import annotations

from typing import Annotated, Any, Callable, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from mat.core import tree_serializer
from mat.core.errors import TaxonomyError, ValidationError, NotFound, CycleError, ConflictError
from mat.core.snapshot import HierarchySnapshot, TermId, Weight
from mat.db.models import ROOT, MAX_ID
from mat.db.services.hierarchy_store import HierarchyStore

Response = tuple[Any, int]

STATUS_BY_ERROR: dict[type[TaxonomyError], int] = {
    ValidationError: 400,
    NotFound: 404,
    CycleError: 409,
    ConflictError: 409,
}

Version = Annotated[int, Field(ge=0, le=MAX_ID)]


# ---------- Requests ----------
class CreateTermRequest(BaseModel):
    vocabulary_id: str
    name: str = ""
    description: Optional[str] = None
    parent: Optional[TermId] = None
    parent_id: Optional[TermId] = None
    weight: Optional[Weight] = None

    @property
    def resolved_parent(self) -> int:
        # 'parent' wins over 'parent_id' when both are sent
        if self.parent is not None:
            return self.parent
        return self.parent_id or ROOT


class UpdateTermRequest(BaseModel):
    term_id: TermId
    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[Version] = None


class DeleteTermRequest(BaseModel):
    term_id: TermId


class MoveTermRequest(BaseModel):
    term_id: TermId
    parent_id: TermId
    weights: dict[TermId, Weight] = Field(default_factory=dict)


class ApplyHierarchyRequest(BaseModel):
    value: Any = None


# ---------- Responses ----------
def ok(**fields) -> dict[str, Any]:
    return {"success": True, **fields}


def failure(exc: TaxonomyError) -> Response:
    status = STATUS_BY_ERROR.get(type(exc), 400)
    return {"success": False, "error": str(exc), "code": exc.code}, status


def _parse(model: type[BaseModel], payload: Any) -> BaseModel:
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(f"Missing or invalid field(s): {', '.join(fields)}") from e


class SyncEndpoint:
    """ Server side of the sync protocol.
    Validates request payloads, applies them through the store and shapes the JSON responses. Every method returns a
    (body, status) pair and never raises for a domain failure.
    """

    def __init__(self, store: HierarchyStore):
        self.store = store

    def _handle(self, op: str, fn: Callable[[], Response]) -> Response:
        try:
            return fn()
        except TaxonomyError as e:
            logger.warning("{} rejected: {}", op, e)
            return failure(e)

    # ---------- operations ----------
    def list_tree(self, vocabulary_id: str) -> Response:
        def run():
            terms = self.store.list_terms(vocabulary_id)
            return tree_serializer.to_json(tree_serializer.to_tree(terms)), 200
        return self._handle("list", run)

    def create_term(self, payload: Any) -> Response:
        def run():
            req = _parse(CreateTermRequest, payload)
            t = self.store.create_term(
                req.vocabulary_id, req.name, req.resolved_parent, weight=req.weight, description=req.description
            )
            return ok(
                id=f"{tree_serializer.NODE_PREFIX}{t.id}",
                term_id=t.id,
                message=f'Term "{t.name}" created successfully.',
            ), 200
        return self._handle("create", run)

    def update_term(self, payload: Any) -> Response:
        def run():
            req = _parse(UpdateTermRequest, payload)
            self.store.update_term(
                req.term_id, name=req.name, description=req.description, expected_version=req.version
            )
            return ok(message="Term updated successfully."), 200
        return self._handle("update", run)

    def delete_term(self, payload: Any) -> Response:
        def run():
            req = _parse(DeleteTermRequest, payload)
            self.store.delete_term(req.term_id)
            return ok(message="Term deleted successfully."), 200
        return self._handle("delete", run)

    def move_term(self, payload: Any) -> Response:
        def run():
            req = _parse(MoveTermRequest, payload)
            self.store.move_term(req.term_id, req.parent_id, req.weights)
            return ok(message="Term moved successfully."), 200
        return self._handle("move", run)

    def get_term(self, term_id: Any) -> Response:
        def run():
            try:
                tid = int(term_id)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid term id {term_id!r}") from None
            if not 0 <= tid <= MAX_ID:
                raise ValidationError(f"Term id {tid} is out of range")
            t = self.store.get_term(tid)
            return ok(data={
                "id": t.id,
                "name": t.name,
                "description": t.description or "",
                "vid": t.vid,
                "version": t.version,
            }), 200
        return self._handle("get", run)

    def apply_hierarchy(self, vocabulary_id: str, payload: Any) -> Response:
        def run():
            req = _parse(ApplyHierarchyRequest, payload)
            snapshot = HierarchySnapshot.parse_field_value(req.value)
            changed = self.store.apply_hierarchy(vocabulary_id, snapshot.hierarchy)
            return ok(selected_id=snapshot.selected_id, changed=changed), 200
        return self._handle("apply", run)
