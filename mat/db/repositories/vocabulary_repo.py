from __future__ import annotations
from typing import Optional
from sqlalchemy import select
from sqlalchemy.orm import Session

from mat.db.models import Vocabulary


class VocabularyRepo:
    def get(self, s: Session, vocabulary_id: str) -> Optional[Vocabulary]:
        return s.get(Vocabulary, vocabulary_id)

    def list(self, s: Session) -> list[Vocabulary]:
        return s.execute(select(Vocabulary).order_by(Vocabulary.id)).scalars().all()

    def create(self, s: Session, vocabulary_id: str, label: str) -> Vocabulary:
        v = Vocabulary(id=vocabulary_id, label=label)
        s.add(v)
        s.flush()
        return v
