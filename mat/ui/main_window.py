from __future__ import annotations

from PySide6.QtCore import Qt, QByteArray
from PySide6.QtGui import QAction
from PySide6.QtWidgets import QMainWindow, QTabWidget, QToolBar, QLabel

from mat.core.config import Config
from mat.sync.client import SyncClient

from .taxonomy_tab import TaxonomyWidget, TreeState


class MainWindow(QMainWindow):
    """ One tab per configured vocabulary. """

    def __init__(self, cfg: Config, client: SyncClient) -> None:
        super().__init__()
        self.setWindowTitle("Media Album Taxonomy")
        self.resize(900, 700)

        self.config = cfg
        self.client = client

        self._tabs = QTabWidget()
        self.setCentralWidget(self._tabs)

        # Tabs
        self.trees: dict[str, TaxonomyWidget] = {}
        for vid, label in cfg.vocabularies.items():
            w = TaxonomyWidget(client, vid, label)
            w.stateChanged.connect(lambda state, vid=vid: self._on_state_changed(vid, state))
            self.trees[vid] = w
            self._tabs.addTab(w, label)

        # Toolbar actions
        tb = QToolBar("Main")
        tb.setMovable(False)
        self.addToolBar(Qt.TopToolBarArea, tb)

        act_reload = QAction("Reload", self)
        act_reload.triggered.connect(self.reload_current)
        tb.addAction(act_reload)

        self._status = QLabel()
        self.statusBar().addPermanentWidget(self._status)
        self._status.setText(cfg.server_url or "Local database")

        saved = cfg.ui.geometry.get("main")
        if saved:
            self.restoreGeometry(QByteArray.fromBase64(saved.encode("ascii")))

    def current_tree(self) -> TaxonomyWidget | None:
        w = self._tabs.currentWidget()
        return w if isinstance(w, TaxonomyWidget) else None

    def reload_current(self) -> None:
        tree = self.current_tree()
        if tree is not None and tree.state in (TreeState.READY, TreeState.ERROR):
            tree.reload()

    def closeEvent(self, event, /):
        """ Remember the window geometry for the next start. """
        self.config.ui.geometry["main"] = bytes(self.saveGeometry().toBase64()).decode("ascii")
        super().closeEvent(event)

    def _on_state_changed(self, vid: str, state: TreeState) -> None:
        if state is TreeState.ERROR:
            self.statusBar().showMessage(f"{self.config.vocabularies.get(vid, vid)}: request failed", 5000)
