from __future__ import annotations

from enum import Enum
from typing import Iterable, Mapping, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mat.core.errors import ValidationError, NotFound, CycleError, ConflictError
from mat.db.manager import DatabaseManager
from mat.db.models import Term, Vocabulary, ROOT
from mat.db.repositories import TermRepo, VocabularyRepo


class OrphanPolicy(Enum):
    """What happens to the children of a deleted term."""
    LEAVE = "leave"
    REPARENT_ROOT = "reparent_root"
    CASCADE = "cascade"


class HierarchyStore:
    """ Canonical owner of vocabularies and their term hierarchies.
    Every public method runs in its own session, so each call is applied atomically: all validation happens before the
    first write, and DatabaseManager.session() rolls back if anything raises part way through.
    """

    def __init__(self, db: DatabaseManager, orphan_policy: OrphanPolicy = OrphanPolicy.LEAVE):
        self.db = db
        self.orphan_policy = orphan_policy
        self.term_repo = TermRepo()
        self.vocab_repo = VocabularyRepo()

    # ---------- Vocabularies ----------
    def create_vocabulary(self, vocabulary_id: str, label: str) -> Vocabulary:
        vid = (vocabulary_id or "").strip()
        if not vid:
            raise ValidationError("Vocabulary id must not be empty")
        with self.db.session() as s:
            if self.vocab_repo.get(s, vid) is not None:
                raise ValidationError(f"Vocabulary '{vid}' already exists")
            try:
                v = self.vocab_repo.create(s, vid, (label or vid).strip())
            except IntegrityError as e:
                raise ValidationError(str(e)) from e
            logger.info("Created vocabulary {!r}", vid)
            return v

    def ensure_vocabularies(self, vocabularies: Mapping[str, str]) -> list[str]:
        """ Create any of the given {id: label} vocabularies that do not exist yet. Returns the created ids. """
        created = []
        with self.db.session() as s:
            existing = {v.id for v in self.vocab_repo.list(s)}
            for vid, label in vocabularies.items():
                if vid in existing:
                    continue
                self.vocab_repo.create(s, vid, label or vid)
                created.append(vid)
        if created:
            logger.info("Created vocabularies {}", created)
        return created

    def get_vocabulary(self, vocabulary_id: str) -> Vocabulary:
        with self.db.session() as s:
            return self._require_vocabulary(s, vocabulary_id)

    def list_vocabularies(self) -> list[Vocabulary]:
        with self.db.session() as s:
            return self.vocab_repo.list(s)

    # ---------- Reads ----------
    def list_terms(self, vocabulary_id: str) -> list[Term]:
        with self.db.session() as s:
            self._require_vocabulary(s, vocabulary_id)
            return self.term_repo.list_for_vocabulary(s, vocabulary_id)

    def get_term(self, term_id: int) -> Term:
        with self.db.session() as s:
            return self._require_term(s, term_id)

    # ---------- Writes ----------
    def create_term(self, vocabulary_id: str, name: str, parent_id: int = ROOT, weight: Optional[int] = None,
                    description: Optional[str] = None) -> Term:
        nm = (name or "").strip()
        if not nm:
            raise ValidationError("Term name is required")
        parent_id = ROOT if parent_id is None else int(parent_id)
        with self.db.session() as s:
            self._require_vocabulary(s, vocabulary_id)
            if parent_id != ROOT:
                self._require_term(s, parent_id, vocabulary_id=vocabulary_id)
            if weight is None:
                # Append after the existing siblings
                weight = self.term_repo.sibling_count(s, vocabulary_id, parent_id)
            t = self.term_repo.create(s, vocabulary_id, nm, parent_id, int(weight), description=description)
            s.refresh(t)
            logger.info("Created term {} {!r} under {} in {!r} (weight {})", t.id, nm, parent_id, vocabulary_id,
                        t.weight)
            return t

    def update_term(self, term_id: int, *, name: Optional[str] = None, description: Optional[str] = None,
                    expected_version: Optional[int] = None) -> Term:
        with self.db.session() as s:
            t = self._require_term(s, term_id)
            if expected_version is not None and t.version != expected_version:
                raise ConflictError(
                    f"Term {term_id} was changed by someone else (version {t.version}, expected {expected_version})"
                )
            if name is not None:
                nm = name.strip()
                if not nm:
                    raise ValidationError("Term name must not be empty")
                t.name = nm
            if description is not None:
                t.description = description
            if name is not None or description is not None:
                t.version += 1
            s.flush()
            logger.info("Updated term {}", term_id)
            return t

    def delete_term(self, term_id: int) -> None:
        with self.db.session() as s:
            t = self._require_term(s, term_id)
            vid = t.vocabulary_id
            match self.orphan_policy:
                case OrphanPolicy.LEAVE:
                    pass
                case OrphanPolicy.REPARENT_ROOT:
                    children = self.term_repo.children(s, vid, t.id)
                    base = self.term_repo.sibling_count(s, vid, ROOT)
                    for i, child in enumerate(children):
                        child.parent_id = ROOT
                        child.weight = base + i
                        child.version += 1
                case OrphanPolicy.CASCADE:
                    removed = self.term_repo.delete_ids(s, self.term_repo.descendant_ids(s, vid, t.id))
                    logger.info("Cascade removed {} descendant(s) of term {}", removed, term_id)
                case _:
                    raise ValueError(f"Unknown orphan policy {self.orphan_policy}")
            self.term_repo.delete(s, t)
            logger.info("Deleted term {} from {!r} (orphan policy {})", term_id, vid, self.orphan_policy.value)

    def move_term(self, term_id: int, new_parent_id: int, weights: Optional[Mapping[int, int]] = None) -> None:
        """ Reparent a term and persist the recomputed sibling weights in one transaction.

        Parameters
        ----------
        term_id : int
            The term being moved.
        new_parent_id : int
            Its new parent, or ROOT.
        weights : mapping of int to int, optional
            Weights for every term in the old and new sibling groups, in visual order.

        Raises
        ------
        NotFound
            The term, the new parent, or any term named in weights does not exist.
        CycleError
            The new parent is the term itself or one of its descendants.
        ValidationError
            A weights entry belongs to another vocabulary.
        """
        new_parent_id = ROOT if new_parent_id is None else int(new_parent_id)
        weights = {int(k): int(v) for k, v in (weights or {}).items()}
        with self.db.session() as s:
            t = self._require_term(s, term_id)
            vid = t.vocabulary_id

            # Validate everything before writing anything
            if new_parent_id != ROOT:
                if new_parent_id == t.id:
                    raise CycleError(f"Term {term_id} cannot be its own parent")
                self._require_term(s, new_parent_id, vocabulary_id=vid)
                if new_parent_id in self.term_repo.descendant_ids(s, vid, t.id):
                    raise CycleError(f"Term {new_parent_id} is a descendant of term {term_id}")

            weighted = self.term_repo.get_many(s, weights.keys())
            missing = sorted(set(weights) - set(weighted))
            if missing:
                raise NotFound(f"Terms not found: {', '.join(map(str, missing))}")
            foreign = sorted(tid for tid, w in weighted.items() if w.vocabulary_id != vid)
            if foreign:
                raise ValidationError(f"Terms {foreign} do not belong to vocabulary '{vid}'")

            old_parent_id = t.parent_id
            self.term_repo.reparent(s, t, new_parent_id)
            self.term_repo.set_weights(s, weighted, weights)
            logger.info("Moved term {} from {} to {} ({} weight(s) updated)", term_id, old_parent_id,
                        new_parent_id, len(weights))

    def apply_hierarchy(self, vocabulary_id: str, entries: Iterable) -> int:
        """ Apply a submitted {id, parent_id, weight} hierarchy to a vocabulary.
        Entries naming unknown terms are skipped and only terms whose parent or weight differ are written. Returns
        the number of terms changed.
        """
        with self.db.session() as s:
            self._require_vocabulary(s, vocabulary_id)
            terms = {t.id: t for t in self.term_repo.list_for_vocabulary(s, vocabulary_id)}
            wanted: dict[int, tuple[int, int]] = {}
            for e in entries:
                tid = int(e.id)
                if tid not in terms:
                    continue
                wanted[tid] = (int(e.parent_id or ROOT), int(e.weight or 0))

            parents = {tid: t.parent_id for tid, t in terms.items()}
            for tid, (pid, _) in wanted.items():
                if pid != ROOT and pid not in terms:
                    raise ValidationError(f"Term {tid} names unknown parent {pid}")
                parents[tid] = pid
            self._check_acyclic(parents)

            changed = 0
            for tid, (pid, weight) in wanted.items():
                t = terms[tid]
                if t.parent_id != pid or t.weight != weight:
                    t.parent_id = pid
                    t.weight = weight
                    t.version += 1
                    changed += 1
            s.flush()
            logger.info("Applied hierarchy to {!r}: {} term(s) changed", vocabulary_id, changed)
            return changed

    # ---------- helpers ----------
    def _require_vocabulary(self, s: Session, vocabulary_id: str) -> Vocabulary:
        v = self.vocab_repo.get(s, vocabulary_id) if vocabulary_id else None
        if v is None:
            raise NotFound(f"Vocabulary '{vocabulary_id}' not found")
        return v

    def _require_term(self, s: Session, term_id: int, *, vocabulary_id: str | None = None) -> Term:
        t = self.term_repo.get(s, int(term_id))
        if t is None or (vocabulary_id is not None and t.vocabulary_id != vocabulary_id):
            raise NotFound(f"Term {term_id} not found")
        return t

    @staticmethod
    def _check_acyclic(parents: dict[int, int]) -> None:
        """ Walk up from every term; revisiting a term on the way to ROOT means a cycle. """
        settled: set[int] = set()
        for start in parents:
            path: list[int] = []
            seen: set[int] = set()
            cur = start
            while cur != ROOT and cur in parents and cur not in settled:
                if cur in seen:
                    raise CycleError(f"Hierarchy contains a cycle through term {cur}")
                seen.add(cur)
                path.append(cur)
                cur = parents[cur]
            settled.update(path)
