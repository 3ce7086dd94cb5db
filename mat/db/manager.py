from __future__ import annotations

import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from contextlib import contextmanager
from typing import Iterator, Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from loguru import logger
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# Applied to every new connection of a file database
SQLITE_PRAGMAS = (
    "foreign_keys = ON",
    "journal_mode = WAL",
    "synchronous = NORMAL",
    "temp_store = MEMORY",
)


def _sqlite_url(path: Path) -> str:
    return f"sqlite:///{path.resolve().as_posix()}"


def _apply_sqlite_pragmas(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, conn_rec):
        cur = dbapi_conn.cursor()
        for pragma in SQLITE_PRAGMAS:
            cur.execute(f"PRAGMA {pragma};")
        cur.close()


def _alembic_cfg(db_url: str) -> Config:
    """ Alembic config for db_url. Uses the project's alembic.ini when running from a checkout; an installed package
    only has the migrations directory.
    """
    ini = next((p / "alembic.ini" for p in MIGRATIONS_DIR.parents if (p / "alembic.ini").exists()), None)
    cfg = Config(str(ini)) if ini else Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def _user_table_count(db_path: Path) -> int:
    with sqlite3.connect(db_path) as con:
        return con.execute(
            "SELECT count(*) FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
        ).fetchone()[0]


def _current_revision(db_url: str) -> Optional[str]:
    engine = create_engine(db_url, future=True)
    try:
        with engine.connect() as conn:
            return MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()


def _backup_db_file(path: Path) -> Path | None:
    """Create a timestamped backup beside the DB. Returns backup path or None."""
    if not path.exists():
        return None
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    backup_path = path.with_suffix(path.suffix + f".bak.{ts}")
    shutil.copy2(path, backup_path)
    return backup_path


def migrate(db_path: Path, *, do_backup: bool = True) -> str:
    """Bring the SQLite file at db_path to Alembic head.

    Returns what was done: ``created`` (new or empty file), ``stamped`` (tables without a version), ``current``
    (already at head) or ``upgraded`` (behind head; backed up first when do_backup).
    """
    db_url = _sqlite_url(db_path)
    cfg = _alembic_cfg(db_url)

    if not db_path.exists() or _user_table_count(db_path) == 0:
        command.upgrade(cfg, "head")
        return "created"

    current = _current_revision(db_url)
    if current is None:
        command.stamp(cfg, "head")
        return "stamped"
    if current in set(ScriptDirectory.from_config(cfg).get_heads()):
        return "current"

    if do_backup:
        logger.info("Backed up {} to {} before upgrade", db_path, _backup_db_file(db_path))
    command.upgrade(cfg, "head")
    return "upgraded"


class DatabaseManager:
    """
    Holds the SQLAlchemy engine and session factory the store works through.
    Call .open(path) for a SQLite file (migrated on open), or .attach(engine) for an engine whose schema already
    exists.
    """

    def __init__(self) -> None:
        self._engine: Optional[Engine] = None
        self._Session: Optional[sessionmaker[Session]] = None
        self._path: Optional[Path] = None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def engine(self) -> Optional[Engine]:
        return self._engine

    def open(self, path: Path, *, create_if_missing: bool = True) -> None:
        if not path.exists() and not create_if_missing:
            raise FileNotFoundError(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Schema must be at head before any session is handed out
        outcome = migrate(path, do_backup=True)
        logger.info("Opened {} (schema {})", path, outcome)

        engine = create_engine(_sqlite_url(path), future=True)
        _apply_sqlite_pragmas(engine)
        self.attach(engine)
        self._path = path

    def attach(self, engine: Engine) -> None:
        self.dispose()
        self._engine = engine
        self._Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    def revision(self) -> Optional[str]:
        """ The Alembic revision of the attached database, None when unversioned. """
        if self._engine is None:
            return None
        with self._engine.connect() as conn:
            return MigrationContext.configure(conn).get_current_revision()

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._Session = None
        self._path = None

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context-managed session: commit on success, rollback and re-raise on error."""
        if self._Session is None:
            raise RuntimeError("Database not opened. Call DatabaseManager.open() first.")
        s = self._Session()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()
