from __future__ import annotations
from typing import Optional, Iterable
from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session

from mat.db.models import Term


class TermRepo:
    """Low-level data access for terms. Every query is scoped to one vocabulary unless it addresses a term by id."""

    # ---------- reads ----------
    def get(self, s: Session, term_id: int) -> Optional[Term]:
        return s.get(Term, term_id)

    def get_many(self, s: Session, term_ids: Iterable[int]) -> dict[int, Term]:
        ids = list(term_ids)
        if not ids:
            return {}
        rows = s.execute(select(Term).where(Term.id.in_(ids))).scalars().all()
        return {t.id: t for t in rows}

    def list_for_vocabulary(self, s: Session, vocabulary_id: str) -> list[Term]:
        stmt = select(Term).where(Term.vocabulary_id == vocabulary_id).order_by(Term.id)
        return s.execute(stmt).scalars().all()

    def children(self, s: Session, vocabulary_id: str, parent_id: int) -> list[Term]:
        stmt = (
            select(Term)
            .where(Term.vocabulary_id == vocabulary_id, Term.parent_id == parent_id)
            .order_by(Term.weight, Term.id)
        )
        return s.execute(stmt).scalars().all()

    def sibling_count(self, s: Session, vocabulary_id: str, parent_id: int) -> int:
        return s.execute(
            select(func.count(Term.id)).where(Term.vocabulary_id == vocabulary_id, Term.parent_id == parent_id)
        ).scalar() or 0

    def parent_map(self, s: Session, vocabulary_id: str) -> dict[int, int]:
        """ Return {term_id: parent_id} for a whole vocabulary in one query. """
        rows = s.execute(
            select(Term.id, Term.parent_id).where(Term.vocabulary_id == vocabulary_id)
        ).all()
        return {tid: pid for tid, pid in rows}

    def descendant_ids(self, s: Session, vocabulary_id: str, term_id: int) -> set[int]:
        """ Breadth-first walk down from term_id, excluding term_id itself. """
        by_parent: dict[int, list[int]] = {}
        for tid, pid in self.parent_map(s, vocabulary_id).items():
            by_parent.setdefault(pid, []).append(tid)
        out: set[int] = set()
        frontier = [term_id]
        while frontier:
            nxt = []
            for pid in frontier:
                for cid in by_parent.get(pid, []):
                    if cid not in out and cid != term_id:
                        out.add(cid)
                        nxt.append(cid)
            frontier = nxt
        return out

    # ---------- writes ----------
    def create(self, s: Session, vocabulary_id: str, name: str, parent_id: int, weight: int,
               description: str | None = None) -> Term:
        t = Term(vocabulary_id=vocabulary_id, name=name.strip(), description=description,
                 parent_id=parent_id, weight=weight, version=1)
        s.add(t)
        s.flush()
        return t

    def set_weights(self, s: Session, terms: dict[int, Term], weights: dict[int, int]) -> None:
        for tid, weight in weights.items():
            term = terms[tid]
            if term.weight != weight:
                term.weight = weight
                term.version += 1
        s.flush()

    def reparent(self, s: Session, term: Term, parent_id: int) -> None:
        if term.parent_id != parent_id:
            term.parent_id = parent_id
            term.version += 1
        s.flush()

    def delete(self, s: Session, term: Term) -> None:
        s.delete(term)
        s.flush()

    def delete_ids(self, s: Session, term_ids: Iterable[int]) -> int:
        ids = list(term_ids)
        if not ids:
            return 0
        res = s.execute(delete(Term).where(Term.id.in_(ids)).execution_options(synchronize_session=False))
        s.flush()
        return res.rowcount or 0
