from __future__ import annotations

import sys
from pathlib import Path
from importlib.metadata import version

from loguru import logger
from PySide6.QtWidgets import QApplication
from PySide6.QtCore import QCoreApplication

from .core.config import load_config, save_config, ORG, APP
from .core.logging_config import configure_logging
from .db.manager import DatabaseManager
from .db.services.hierarchy_store import HierarchyStore
from .sync.client import SyncClient, EndpointTransport, HttpTransport
from .sync.protocol import SyncEndpoint
from .ui.main_window import MainWindow

DEFAULT_DB = Path.home() / "MediaAlbumTaxonomy" / "taxonomy.db"


def build_client(cfg, db: DatabaseManager) -> SyncClient:
    """ Talk to the configured server, or to the local database in-process when none is set. """
    if cfg.server_url:
        logger.info("Using taxonomy server {}", cfg.server_url)
        return SyncClient(HttpTransport(cfg.server_url, timeout=cfg.request_timeout_s))

    db_path = Path(cfg.last_db_path if cfg.last_db_path else DEFAULT_DB)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db.open(db_path, create_if_missing=True)
    cfg.last_db_path = str(db_path)

    store = HierarchyStore(db, orphan_policy=cfg.orphan_policy)
    store.ensure_vocabularies(cfg.vocabularies)
    return SyncClient(EndpointTransport(SyncEndpoint(store)))


def main() -> None:
    configure_logging(verbose="-v" in sys.argv)

    app = QApplication(sys.argv)
    # Set QSettings identity BEFORE any settings access
    QCoreApplication.setOrganizationName(ORG)
    QCoreApplication.setApplicationName(APP)
    QCoreApplication.setApplicationVersion(version("media-album-taxonomy"))

    # Load user prefs (QSettings-backed)
    cfg = load_config()

    db = DatabaseManager()
    client = build_client(cfg, db)

    win = MainWindow(cfg=cfg, client=client)
    win.show()

    # Persist settings on quit
    def persist():
        if db.path is not None:
            cfg.last_db_path = str(db.path)
        save_config(cfg)
        db.dispose()

    app.aboutToQuit.connect(persist)
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
