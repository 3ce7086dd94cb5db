from __future__ import annotations
from PySide6.QtCore import Qt
from PySide6.QtWidgets import QTreeWidgetItem

from mat.core.tree_serializer import TreeNode

# ---- Roles & column setup ----------------------------------------------------
COL_LABEL = 0  # single-column tree; label stored as text(0)

ROLE_ID = Qt.ItemDataRole.UserRole + 1  # term id: int
ROLE_WEIGHT = Qt.ItemDataRole.UserRole + 2  # weight within parent: int
ROLE_DESCRIPTION = Qt.ItemDataRole.UserRole + 3  # description: str


# ---- Tree Items --------------------------------------------------------------
class TermItem(QTreeWidgetItem):
    """ A taxonomy term; may be dragged, and may receive dropped terms as children. """

    def __init__(self, term_id: int, label: str, weight: int = 0, description: str = ""):
        super().__init__([label])
        self.setData(COL_LABEL, ROLE_ID, term_id)
        self.setData(COL_LABEL, ROLE_WEIGHT, weight)
        self.setData(COL_LABEL, ROLE_DESCRIPTION, description or "")
        self.setToolTip(COL_LABEL, description or "")
        self.setFlags(self.flags() | Qt.ItemIsDropEnabled | Qt.ItemIsDragEnabled)

    @classmethod
    def from_node(cls, node: TreeNode) -> "TermItem":
        item = cls(node.term_id, node.name, node.weight, node.description)
        for child in node.children:
            item.addChild(cls.from_node(child))
        return item

    @property
    def term_id(self) -> int:
        return int(self.data(COL_LABEL, ROLE_ID))

    @property
    def label(self) -> str:
        return self.text(COL_LABEL)

    @property
    def weight(self) -> int:
        return int(self.data(COL_LABEL, ROLE_WEIGHT) or 0)

    @weight.setter
    def weight(self, v: int) -> None:
        self.setData(COL_LABEL, ROLE_WEIGHT, int(v))

    @property
    def description(self) -> str:
        return self.data(COL_LABEL, ROLE_DESCRIPTION) or ""
