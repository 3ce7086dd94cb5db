from __future__ import annotations

from PySide6.QtCore import Qt, QPoint, Signal
from PySide6.QtWidgets import QTreeWidget, QAbstractItemView, QTreeWidgetItem, QTreeWidgetItemIterator

from mat.core.tree_serializer import TreeNode
from mat.db.models import ROOT
from mat.ui.taxonomy_tab.term_items import TermItem


class TermTree(QTreeWidget):
    """ Drag-and-drop tree of one vocabulary's terms.
    Drops are applied to the visual tree immediately and announced through itemMoved; syncing with the store is left to
    the owner.
    """

    # (moved item, old parent container, old row)
    itemMoved = Signal(object, object, int)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.locked = False
        self.setColumnCount(1)
        self.setHeaderHidden(True)
        self.setSelectionMode(QAbstractItemView.SingleSelection)
        self.setDragDropMode(QAbstractItemView.InternalMove)
        self.setDefaultDropAction(Qt.MoveAction)

    # --- population / lookup --------------------------------------------------
    def populate(self, nodes: list[TreeNode]) -> None:
        self.clear()
        for node in nodes:
            self.addTopLevelItem(TermItem.from_node(node))
        self.expandAll()

    def container(self, item: QTreeWidgetItem | None) -> QTreeWidgetItem:
        """ The item that holds item's siblings; the invisible root for top-level terms. """
        if item is None:
            return self.invisibleRootItem()
        return item.parent() or self.invisibleRootItem()

    def container_term_id(self, container: QTreeWidgetItem) -> int:
        if not isinstance(container, TermItem):
            return ROOT
        return container.term_id

    def find_item(self, term_id: int) -> TermItem | None:
        it = QTreeWidgetItemIterator(self)
        while it.value():
            item = it.value()
            if isinstance(item, TermItem) and item.term_id == term_id:
                return item
            it += 1
        return None

    def child_count_for(self, parent_id: int) -> int:
        """ Number of children currently shown under parent_id (ROOT for top level). """
        if parent_id == ROOT:
            return self.topLevelItemCount()
        item = self.find_item(parent_id)
        return item.childCount() if item else 0

    @staticmethod
    def sibling_weights(container: QTreeWidgetItem) -> dict[int, int]:
        """ Renumber a sibling group 0..N-1 in visual order, store the weights on the items and return them. """
        weights: dict[int, int] = {}
        for row in range(container.childCount()):
            child = container.child(row)
            child.weight = row
            weights[child.term_id] = row
        return weights

    def visual_tree(self) -> list[TreeNode]:
        """ The forest as currently displayed; weights are visual positions. """
        def build(item: TermItem, parent_id: int, row: int) -> TreeNode:
            node = TreeNode(term_id=item.term_id, name=item.label, description=item.description, weight=row,
                            parent_id=parent_id)
            node.children = [build(item.child(i), item.term_id, i) for i in range(item.childCount())]
            return node

        return [build(self.topLevelItem(i), ROOT, i) for i in range(self.topLevelItemCount())]

    @staticmethod
    def _same(a: QTreeWidgetItem, b: QTreeWidgetItem) -> bool:
        """ Same container; every non-term container is the invisible root. """
        if not isinstance(a, TermItem) and not isinstance(b, TermItem):
            return True
        return a is b

    @staticmethod
    def _is_descendant(parent: QTreeWidgetItem, potential_child: QTreeWidgetItem) -> bool:
        """ Check if the second item is a descendant of the first by walking up from the child. """
        cur = potential_child.parent()
        while cur:
            if cur is parent:
                return True
            cur = cur.parent()
        return False

    # --- DnD validation core --------------------------------------------------
    def _is_valid_drop(self, src: QTreeWidgetItem, dst: QTreeWidgetItem) -> bool:
        """ Check if dst (a container) can receive src. The invisible root accepts anything. """
        if self.locked or src is None:
            return False
        if not isinstance(dst, TermItem):
            return True
        if src is dst:
            return False
        # No cyclic moves
        return not self._is_descendant(src, dst)

    def _resolve_target(self, anchor: QTreeWidgetItem | None, indicator) -> tuple[QTreeWidgetItem, int]:
        """ Resolve (container, insert_row) for a drop on anchor with the given indicator. """
        if anchor is None or indicator == QAbstractItemView.OnViewport:
            root = self.invisibleRootItem()
            return root, root.childCount()

        if indicator == QAbstractItemView.OnItem:
            return anchor, anchor.childCount()  # append

        # Between siblings → parent is the anchor's parent; compute index above/below
        parent = self.container(anchor)
        idx = parent.indexOfChild(anchor)
        if idx < 0:
            idx = parent.childCount()
        return parent, idx + (1 if indicator == QAbstractItemView.BelowItem else 0)

    # --- Qt event overrides ---------------------------------------------------
    def dragEnterEvent(self, event):
        if self.locked:
            event.ignore()
            return
        event.acceptProposedAction()

    def dragMoveEvent(self, event):
        """ Validate drag with awareness of the drop indicator (on/above/below). """
        QTreeWidget.dragMoveEvent(self, event)
        anchor = self.itemAt(event.position().toPoint())
        target, _ = self._resolve_target(anchor, self.dropIndicatorPosition())
        src = self.currentItem()
        if self._is_valid_drop(src, target):
            event.acceptProposedAction()
        else:
            event.ignore()

    def dropEvent(self, event):
        """ Perform the move with the exact insertion index, then let Qt know we handled it ourselves. """
        pos: QPoint = event.position().toPoint()
        anchor = self.itemAt(pos)
        success = self._handle_item_movement(self.currentItem(), anchor, self.dropIndicatorPosition())
        if not success:
            event.ignore()
            return
        event.setDropAction(Qt.IgnoreAction)
        event.accept()

    def _handle_item_movement(self, src: QTreeWidgetItem | None, anchor: QTreeWidgetItem | None, indicator) -> bool:
        """ Move src to the position described by anchor + indicator and emit itemMoved.

        Parameters
        ----------
        src : TermItem
            The item to move.
        anchor : QTreeWidgetItem or None
            The item under the cursor, None for the empty viewport.
        indicator : QAbstractItemView.DropIndicatorPosition
            Where relative to the anchor the drop happened.

        Returns
        -------
        bool
            If we performed the movement.
        """
        target, insert_row = self._resolve_target(anchor, indicator)
        if not self._is_valid_drop(src, target):
            return False

        old_parent = self.container(src)
        old_row = old_parent.indexOfChild(src)

        # Removing an earlier row of the same parent shifts the target left by one
        if self._same(old_parent, target) and old_row < insert_row:
            insert_row -= 1
        if self._same(old_parent, target) and old_row == insert_row:
            return False

        self._reinsert(src, old_parent, target, insert_row)
        if isinstance(target, TermItem):
            target.setExpanded(True)

        self.itemMoved.emit(src, old_parent, old_row)
        return True

    def move_back(self, item: QTreeWidgetItem, old_parent: QTreeWidgetItem, old_row: int) -> None:
        """ Undo a visual move. """
        self._reinsert(item, self.container(item), old_parent, old_row)

    def _reinsert(self, item, src_container, dst_container, row: int) -> None:
        # Detaching the current item would otherwise report a selection change
        was_current = self.currentItem() is item
        self.blockSignals(True)
        try:
            src_container.removeChild(item)
            dst_container.insertChild(max(0, min(row, dst_container.childCount())), item)
            if was_current:
                self.setCurrentItem(item)
        finally:
            self.blockSignals(False)
