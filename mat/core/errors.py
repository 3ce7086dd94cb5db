from __future__ import annotations


class TaxonomyError(Exception):
    """Base for every failure the taxonomy subsystem surfaces to a user."""
    code = "error"


class ValidationError(TaxonomyError):
    """A required field is missing or empty, or a request is malformed."""
    code = "validation"


class NotFound(TaxonomyError):
    """The vocabulary or term does not exist."""
    code = "not_found"


class CycleError(TaxonomyError):
    """A reparent would make a term its own ancestor."""
    code = "cycle"


class ConflictError(TaxonomyError):
    """The term changed since the caller read it (version mismatch)."""
    code = "conflict"


class TransportError(TaxonomyError):
    """Network or server failure without a structured payload."""
    code = "transport"


ERRORS_BY_CODE: dict[str, type[TaxonomyError]] = {
    cls.code: cls for cls in (ValidationError, NotFound, CycleError, ConflictError, TransportError)
}
