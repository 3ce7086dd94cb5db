from __future__ import annotations

from enum import Enum
from typing import Optional

from loguru import logger
from PySide6.QtCore import Qt, QPoint, Signal
from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel, QLineEdit, QMessageBox, QMenu, QStackedWidget,
    QTreeWidgetItem
)

from mat.core.errors import TaxonomyError
from mat.core.snapshot import HierarchySnapshot
from mat.core.tree_serializer import to_flat_hierarchy, parent_options
from mat.db.models import ROOT
from mat.sync.client import SyncClient
from .term_dialog import TermDialog
from .term_items import TermItem
from .term_tree import TermTree


class TreeState(Enum):
    LOADING = "loading"
    READY = "ready"
    MUTATING = "mutating"
    ERROR = "error"


class TaxonomyWidget(QWidget):
    """
    Tree editor for one vocabulary.
    Features:
    - Add / Edit / Delete terms from the context menu; the tree is reloaded from the server after each
    - Drag to reorder or reparent; applied optimistically, reverted and reloaded if the server refuses
    - Writes the selection + full hierarchy snapshot into a hidden field on every change
    Emits:
    - termSelected(int)
    - snapshotChanged(str)
    - stateChanged(TreeState)
    """

    termSelected = Signal(int)
    snapshotChanged = Signal(str)
    stateChanged = Signal(object)

    PAGE_LOADING, PAGE_TREE, PAGE_EMPTY, PAGE_ERROR = range(4)

    def __init__(self, client: SyncClient, vocabulary_id: str, label: str = "", parent=None) -> None:
        super().__init__(parent)
        self.client = client
        self.vocabulary_id = vocabulary_id
        self.label = label or vocabulary_id
        self.state = TreeState.LOADING
        self._selected_id: Optional[int] = None

        # UI
        root = QVBoxLayout(self)
        actions = QHBoxLayout()
        actions.addWidget(QLabel(self.label))
        actions.addStretch(1)
        self.btn_add = QPushButton("Add term")
        self.btn_add.clicked.connect(lambda: self.add_term(self._current_term_id()))
        actions.addWidget(self.btn_add)
        root.addLayout(actions)

        self.pages = QStackedWidget(self)
        self.pages.addWidget(QLabel("Loading...", alignment=Qt.AlignCenter))

        # Set up the tree
        self.tree = TermTree(parent=self)
        self.tree.currentItemChanged.connect(self._on_current_changed)
        self.tree.itemMoved.connect(self._on_item_moved)
        self.tree.setContextMenuPolicy(Qt.CustomContextMenu)
        self.tree.customContextMenuRequested.connect(self._on_tree_context_menu)
        self.pages.addWidget(self.tree)

        empty = QWidget()
        empty_layout = QVBoxLayout(empty)
        empty_layout.addWidget(QLabel("This vocabulary is empty.", alignment=Qt.AlignCenter))
        self.btn_first = QPushButton("Create first term")
        self.btn_first.clicked.connect(lambda: self.add_term(ROOT))
        empty_layout.addWidget(self.btn_first)
        empty_layout.addStretch(1)
        self.pages.addWidget(empty)

        error = QWidget()
        error_layout = QVBoxLayout(error)
        self.error_label = QLabel("Error loading taxonomy tree.", alignment=Qt.AlignCenter)
        self.error_label.setWordWrap(True)
        btn_retry = QPushButton("Retry")
        btn_retry.clicked.connect(self.reload)
        error_layout.addWidget(self.error_label)
        error_layout.addWidget(btn_retry)
        error_layout.addStretch(1)
        self.pages.addWidget(error)
        root.addWidget(self.pages, 1)

        # Hidden field read by the containing form on submit
        self.selected_field = QLineEdit(self)
        self.selected_field.setVisible(False)
        self.selected_field.setText(HierarchySnapshot().to_field_value())

        self.reload()

    # --------- State ---------
    def _set_state(self, state: TreeState) -> None:
        self.state = state
        self.tree.locked = state is not TreeState.READY
        self.btn_add.setEnabled(state is TreeState.READY)
        self.btn_first.setEnabled(state is TreeState.READY)
        self.stateChanged.emit(state)

    def _begin_mutation(self) -> bool:
        """ Enter MUTATING if we are READY; any other state rejects the action. """
        if self.state is not TreeState.READY:
            logger.debug("Ignoring action on {!r} while {}", self.vocabulary_id, self.state.value)
            return False
        self._set_state(TreeState.MUTATING)
        return True

    def _fail(self, title: str, exc: Exception) -> None:
        """ Surface a failed request, then reload the tree from the server. """
        logger.warning("{} on {!r}: {}", title, self.vocabulary_id, exc)
        self._set_state(TreeState.ERROR)
        QMessageBox.warning(self, title, str(exc))
        self.reload()

    # --------- Server → UI population ---------
    def reload(self) -> None:
        """ Replace the displayed tree with the server's. """
        self._set_state(TreeState.LOADING)
        self.pages.setCurrentIndex(self.PAGE_LOADING)
        try:
            nodes = self.client.list_tree(self.vocabulary_id)
        except TaxonomyError as e:
            logger.warning("Loading {!r} failed: {}", self.vocabulary_id, e)
            self.error_label.setText(f"Error loading taxonomy tree.\n{e}")
            self.pages.setCurrentIndex(self.PAGE_ERROR)
            self._set_state(TreeState.ERROR)
            return

        self.tree.blockSignals(True)
        try:
            self.tree.populate(nodes)
            current = self.tree.find_item(self._selected_id) if self._selected_id is not None else None
            if current is not None:
                self.tree.setCurrentItem(current)
            else:
                self._selected_id = None
        finally:
            self.tree.blockSignals(False)

        self.pages.setCurrentIndex(self.PAGE_TREE if nodes else self.PAGE_EMPTY)
        self._set_state(TreeState.READY)
        self._write_snapshot()

    # --------- Snapshot ---------
    def snapshot(self) -> HierarchySnapshot:
        return HierarchySnapshot(
            selected_id=self._selected_id,
            hierarchy=to_flat_hierarchy(self.tree.visual_tree()),
        )

    def _write_snapshot(self) -> None:
        value = self.snapshot().to_field_value()
        self.selected_field.setText(value)
        self.snapshotChanged.emit(value)

    def bind_field(self, field: QLineEdit) -> None:
        """ Write snapshots into field (owned by the containing form) instead of our own hidden one. """
        self.selected_field = field
        self._write_snapshot()

    # --------- Selection ---------
    def _current_term_id(self) -> int:
        item = self.tree.currentItem()
        return item.term_id if isinstance(item, TermItem) else ROOT

    def _on_current_changed(self, cur: Optional[QTreeWidgetItem], prev: Optional[QTreeWidgetItem]) -> None:
        if not isinstance(cur, TermItem):
            return
        self._selected_id = cur.term_id
        self._write_snapshot()
        self.termSelected.emit(cur.term_id)

    # --------- Context menu ---------
    def _on_tree_context_menu(self, pos: QPoint) -> None:
        """ Context menu when right-clicking the tree. On a term: add child / edit / delete; on the background: add
        a top-level term.
        """
        if self.state is not TreeState.READY:
            return
        item = self.tree.itemAt(pos)

        menu = QMenu(self)
        act_add = menu.addAction("Add term")
        if isinstance(item, TermItem):
            act_edit = menu.addAction("Edit term")
            act_delete = menu.addAction("Delete term")
        else:
            act_edit, act_delete = None, None

        chosen = menu.exec(self.tree.viewport().mapToGlobal(pos))
        if not chosen:
            return

        if chosen == act_add:
            self.add_term(item.term_id if isinstance(item, TermItem) else ROOT)
        elif chosen == act_edit:
            self.edit_term(item.term_id)
        elif chosen == act_delete:
            self.delete_term(item.term_id)

    # --------- Structural edits ---------
    def add_term(self, parent_id: int = ROOT) -> bool:
        """ Prompt for a new term (parent preset to parent_id), create it on the server and reload. """
        if self.state is not TreeState.READY:
            return False
        options = parent_options(self.tree.visual_tree())
        name, description, parent_id, ok = TermDialog.get_new_term(self, "Add term", options, parent_id)
        if not ok:
            return False
        name = name.strip()
        if not name:
            QMessageBox.warning(self, "Missing name", "Term name is required")
            return False

        if not self._begin_mutation():
            return False
        weight = self.tree.child_count_for(parent_id)
        try:
            new_id = self.client.create_term(self.vocabulary_id, name, description=description,
                                             parent_id=parent_id, weight=weight)
        except TaxonomyError as e:
            self._fail("Error adding term", e)
            return False

        logger.info("Added term {} to {!r}", new_id, self.vocabulary_id)
        self.reload()
        return True

    def edit_term(self, term_id: int) -> bool:
        """ Prompt pre-filled from the server, update and reload. """
        if self.state is not TreeState.READY:
            return False
        try:
            data = self.client.get_term(term_id)
        except TaxonomyError as e:
            self._fail("Error loading term", e)
            return False

        name, description, ok = TermDialog.get_term(
            self, "Edit term", data.get("name", ""), data.get("description") or ""
        )
        if not ok:
            return False
        name = name.strip()
        if not name:
            QMessageBox.warning(self, "Missing name", "Term name is required")
            return False

        if not self._begin_mutation():
            return False
        try:
            self.client.update_term(term_id, name=name, description=description, version=data.get("version"))
        except TaxonomyError as e:
            self._fail("Error updating term", e)
            return False

        self.reload()
        return True

    def delete_term(self, term_id: int) -> bool:
        """ Confirm, delete on the server and reload. """
        if self.state is not TreeState.READY:
            return False
        item = self.tree.find_item(term_id)
        label = item.label if item else str(term_id)
        resp = QMessageBox.question(
            self, "Delete term", f"Are you sure you want to delete “{label}”?",
            QMessageBox.Yes | QMessageBox.No, QMessageBox.No
        )
        if resp != QMessageBox.Yes:
            return False

        if not self._begin_mutation():
            return False
        try:
            self.client.delete_term(term_id)
        except TaxonomyError as e:
            self._fail("Error deleting term", e)
            return False

        if self._selected_id == term_id:
            self._selected_id = None
        self.reload()
        return True

    def _on_item_moved(self, item: TermItem, old_parent: QTreeWidgetItem, old_row: int) -> None:
        """ Persist a drop: recompute both sibling groups' weights and send them with the new parent. The visual
        state is trusted on success; on failure the move is undone and the tree reloaded.
        """
        if not self._begin_mutation():
            self.tree.move_back(item, old_parent, old_row)
            return

        new_parent = self.tree.container(item)
        weights = self.tree.sibling_weights(old_parent)
        weights.update(self.tree.sibling_weights(new_parent))
        new_parent_id = self.tree.container_term_id(new_parent)
        try:
            self.client.move_term(item.term_id, new_parent_id, weights)
        except TaxonomyError as e:
            self.tree.move_back(item, old_parent, old_row)
            self._fail("Error moving term", e)
            return

        logger.info("Moved term {} under {} in {!r}", item.term_id, new_parent_id, self.vocabulary_id)
        self._set_state(TreeState.READY)
        self._write_snapshot()
