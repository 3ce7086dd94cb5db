import pytest
from PySide6.QtWidgets import QMessageBox
from sqlalchemy import event, Engine, create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mat.db.manager import DatabaseManager
from mat.db.models import Base, Vocabulary, Term, ROOT
from mat.db.services.hierarchy_store import HierarchyStore, OrphanPolicy
from mat.sync.client import SyncClient, EndpointTransport
from mat.sync.protocol import SyncEndpoint
from mat.ui.taxonomy_tab.term_dialog import TermDialog


# --- SQLite tuning for tests --------------------------------------------------
@event.listens_for(Engine, "connect")
def _sqlite_enable_fk(dbapi_connection, _):
    # Ensure ON DELETE CASCADE and general FK correctness in SQLite
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


# --- Database Fixtures -----------------------------------------------------------------
@pytest.fixture()
def session():
    """Fresh session per test."""
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, future=True, expire_on_commit=False)
    with session() as s:
        yield s
        s.rollback()  # clean even if the test forgot


@pytest.fixture()
def dbm():
    """ DatabaseManager over a shared in-memory database; every session sees the same connection. """
    engine = create_engine(
        "sqlite:///:memory:", future=True, connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    db = DatabaseManager()
    db.attach(engine)
    yield db
    db.dispose()


@pytest.fixture()
def store(dbm):
    return HierarchyStore(dbm)


@pytest.fixture()
def store_with_policy(dbm):
    def _mk(policy: OrphanPolicy) -> HierarchyStore:
        return HierarchyStore(dbm, orphan_policy=policy)

    return _mk


@pytest.fixture()
def endpoint(store):
    return SyncEndpoint(store)


@pytest.fixture()
def client(endpoint):
    return SyncClient(EndpointTransport(endpoint))


# --- Helper fixtures for creating rows ----------------------------------------
@pytest.fixture()
def make_vocabulary(store):
    def _mk(vocabulary_id: str = "directory", label: str | None = None) -> Vocabulary:
        return store.create_vocabulary(vocabulary_id, label or vocabulary_id.title())

    return _mk


@pytest.fixture()
def make_term(store):
    def _mk(vocabulary_id: str, name: str, parent: Term | int = ROOT, weight: int | None = None,
            description: str | None = None) -> Term:
        parent_id = parent.id if isinstance(parent, Term) else parent
        return store.create_term(vocabulary_id, name, parent_id, weight=weight, description=description)

    return _mk


# --- UI patching fixtures ------------------
class _FakeContextMenu:
    """ Fake context menu with decision preselected. """
    decision = "Delete term"

    def __init__(self, *args, **kwargs):
        self._actions = []
        self._chosen = None

    def addAction(self, text):
        # Create a tiny action stub with identity semantics
        act = type("Act", (), {})()
        act.text = text
        self._actions.append(act)
        # Preselect decision
        if text == self.decision:
            self._chosen = act
        return act

    def actions(self):
        return list(self._actions)

    # Mimic QMenu.exec(...) API and return the “clicked” action
    def exec(self, *args, **kwargs):
        return self._chosen


@pytest.fixture()
def set_context_menu(monkeypatch):
    """ Sets the context menu option to return the given decision. """
    import mat.ui.taxonomy_tab.taxonomy_widget as tw

    def _set_menu(decision):
        monkeypatch.setattr(_FakeContextMenu, "decision", decision)
        monkeypatch.setattr(tw, "QMenu", _FakeContextMenu)

    return _set_menu


@pytest.fixture()
def set_term_dialog(monkeypatch):
    """ Set what the next term prompt returns.
    Edit prompts are recorded as (title, name, description), add prompts as (title, preset parent id, options).
    parent_id overrides the parent picked in an add prompt.
    """
    prompts = []

    def set_values(name, description="", ok=True, parent_id=None):
        def get_term(parent, title, cur_name="", cur_description=""):
            prompts.append((title, cur_name, cur_description))
            return name, description, ok

        def get_new_term(parent, title, options, cur_parent_id=ROOT):
            prompts.append((title, cur_parent_id, options))
            return name, description, cur_parent_id if parent_id is None else parent_id, ok

        monkeypatch.setattr(TermDialog, "get_term", staticmethod(get_term))
        monkeypatch.setattr(TermDialog, "get_new_term", staticmethod(get_new_term))
        return prompts

    return set_values


@pytest.fixture()
def set_confirm(monkeypatch):
    """ Answer every confirmation with the given button. """
    def _set(answer=QMessageBox.Yes):
        monkeypatch.setattr(QMessageBox, "question", staticmethod(lambda *a, **k: answer))

    return _set


@pytest.fixture()
def shown_warnings(monkeypatch):
    """ Swallow QMessageBox.warning and record (title, text). """
    shown = []

    def fake_warning(parent, title, text, *args, **kwargs):
        shown.append((title, text))
        return QMessageBox.Ok

    monkeypatch.setattr(QMessageBox, "warning", staticmethod(fake_warning))
    return shown
