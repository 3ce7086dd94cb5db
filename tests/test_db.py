import sqlite3

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from mat.db.manager import DatabaseManager, migrate
from mat.db.models import Vocabulary, Term, ROOT
from mat.db.services.hierarchy_store import HierarchyStore


# --- Vocabulary/Term: inserts & constraints

def test_add_vocabulary_and_terms(session):
    v = Vocabulary(id="event", label="Events")
    session.add(v)
    session.flush()

    a = Term(vocabulary_id="event", name="Weddings")
    session.add(a)
    session.flush()
    b = Term(vocabulary_id="event", name="Smith wedding", parent_id=a.id, weight=3)
    session.add(b)
    session.commit()

    # Defaults
    assert a.parent_id == ROOT
    assert a.weight == 0
    assert a.version == 1
    assert b.vid == "event"

    # Relationship ordered by id
    session.refresh(v)
    assert [t.name for t in v.terms] == ["Weddings", "Smith wedding"]


def test_blank_name_rejected(session):
    session.add(Vocabulary(id="event", label="Events"))
    session.flush()

    with pytest.raises(IntegrityError):
        session.add(Term(vocabulary_id="event", name="   "))
        session.commit()


def test_term_requires_existing_vocabulary(session):
    with pytest.raises(IntegrityError):
        session.add(Term(vocabulary_id="missing", name="Orphan"))
        session.commit()


def test_deleting_vocabulary_removes_terms(session):
    v = Vocabulary(id="directory", label="Directories")
    session.add(v)
    session.flush()
    session.add_all([Term(vocabulary_id="directory", name=n) for n in ("A", "B", "C")])
    session.commit()

    session.delete(v)
    session.commit()

    assert session.execute(select(Term)).scalars().all() == []


def test_parent_id_is_not_a_foreign_key(session):
    """ A child may point at a parent id that no longer exists. """
    session.add(Vocabulary(id="directory", label="Directories"))
    session.flush()
    t = Term(vocabulary_id="directory", name="Dangling", parent_id=999)
    session.add(t)
    session.commit()
    assert t.parent_id == 999


# --- DatabaseManager

def test_session_rolls_back_on_error(dbm):
    with pytest.raises(RuntimeError):
        with dbm.session() as s:
            s.add(Vocabulary(id="event", label="Events"))
            s.flush()
            raise RuntimeError("boom")

    with dbm.session() as s:
        assert s.get(Vocabulary, "event") is None


def test_session_requires_open():
    with pytest.raises(RuntimeError):
        with DatabaseManager().session():
            pass


def test_open_creates_schema_at_head(tmp_path):
    db_path = tmp_path / "nested" / "taxonomy.db"
    db = DatabaseManager()
    db.open(db_path)
    try:
        assert db.path == db_path
        assert db.revision() == "3c1f0a9d2b7e"
        store = HierarchyStore(db)
        store.create_vocabulary("event", "Events")
        t = store.create_term("event", "Weddings")
        assert store.get_term(t.id).name == "Weddings"
    finally:
        db.dispose()

    with sqlite3.connect(db_path) as con:
        tables = {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        revision = con.execute("SELECT version_num FROM alembic_version").fetchone()[0]
    assert {"vocabulary", "term", "alembic_version"} <= tables
    assert revision == "3c1f0a9d2b7e"


def test_reopen_keeps_data_without_backup(tmp_path):
    db_path = tmp_path / "taxonomy.db"
    db = DatabaseManager()
    db.open(db_path)
    HierarchyStore(db).create_vocabulary("event", "Events")
    db.dispose()

    db.open(db_path)
    try:
        assert [v.id for v in HierarchyStore(db).list_vocabularies()] == ["event"]
    finally:
        db.dispose()
    assert not list(tmp_path.glob("*.bak.*"))


def test_migrate_outcomes(tmp_path):
    db_path = tmp_path / "taxonomy.db"
    assert migrate(db_path) == "created"
    assert migrate(db_path) == "current"

    # Tables created outside Alembic get stamped rather than rebuilt
    legacy = tmp_path / "legacy.db"
    with sqlite3.connect(legacy) as con:
        con.execute("CREATE TABLE vocabulary (id TEXT PRIMARY KEY, label TEXT)")
    assert migrate(legacy) == "stamped"
    assert migrate(legacy) == "current"


def test_open_missing_without_create(tmp_path):
    with pytest.raises(FileNotFoundError):
        DatabaseManager().open(tmp_path / "absent.db", create_if_missing=False)
