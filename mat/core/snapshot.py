from __future__ import annotations

import json
import math
from typing import Annotated, Any, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from mat.db.models.term import MAX_ID

# Ids and weights must fit an SQLite INTEGER
TermId = Annotated[int, Field(ge=0, le=MAX_ID)]
Weight = Annotated[int, Field(ge=-MAX_ID - 1, le=MAX_ID)]


class HierarchyEntry(BaseModel):
    """ One term's position in the forest: its parent (0 for top level) and weight among siblings. """
    id: TermId
    parent_id: TermId = 0
    weight: Weight = 0


def _legacy_id(value: Any) -> Optional[int]:
    """ value as a term id if it is a finite whole number in range, else None. """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not (math.isfinite(value) and value.is_integer()):
        return None
    tid = int(value)
    return tid if 0 <= tid <= MAX_ID else None


class HierarchySnapshot(BaseModel):
    """ The value a tree editor writes into its containing form's hidden field.
    Replaced wholesale on every selection or structural change and read once on submit.
    """
    selected_id: Optional[TermId] = None
    hierarchy: list[HierarchyEntry] = Field(default_factory=list)

    def to_field_value(self) -> str:
        return json.dumps(self.model_dump(), separators=(",", ":"))

    @classmethod
    def parse_field_value(cls, raw: Any) -> "HierarchySnapshot":
        """ Parse a hidden-field value.

        Accepts the JSON form ``{"selected_id": ..., "hierarchy": [...]}`` and the legacy form holding only a numeric
        term id. Empty or unreadable values, including NaN, infinities and fractions, give an empty snapshot.
        """
        if raw is None:
            return cls()
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return cls(selected_id=_legacy_id(raw))
        text = str(raw).strip()
        if not text:
            return cls()

        try:
            decoded = json.loads(text)
        except ValueError:
            decoded = None

        if isinstance(decoded, dict) and "selected_id" in decoded:
            try:
                return cls.model_validate(
                    {"selected_id": decoded.get("selected_id"), "hierarchy": decoded.get("hierarchy") or []}
                )
            except PydanticValidationError:
                return cls()

        # Legacy: plain numeric id
        return cls(selected_id=_legacy_id(decoded))
