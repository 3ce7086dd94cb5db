from __future__ import annotations

from typing import Optional, Sequence

from PySide6.QtWidgets import (
    QComboBox, QDialog, QDialogButtonBox, QFormLayout, QLineEdit, QPlainTextEdit, QVBoxLayout, QMessageBox
)

from mat.db.models import ROOT


class TermDialog(QDialog):
    """ Name + description prompt used for both adding and editing a term.
    When given parent options (see tree_serializer.parent_options) it also offers a parent picker, with a
    "(top level)" entry first.
    """

    def __init__(self, title: str, name: str = "", description: str = "", parent=None,
                 parents: Optional[Sequence[tuple[int, str]]] = None, parent_id: int = ROOT):
        super().__init__(parent)
        self.setWindowTitle(title)
        self.resize(420, 240)

        root = QVBoxLayout(self)
        form = QFormLayout()
        self._name = QLineEdit(name, self)
        self._name.setPlaceholderText("Enter term name")
        self._description = QPlainTextEdit(description, self)
        self._description.setPlaceholderText("Enter term description (optional)")
        form.addRow("Term name *", self._name)
        form.addRow("Description", self._description)

        self._parent: Optional[QComboBox] = None
        if parents is not None:
            self._parent = QComboBox(self)
            self._parent.addItem("(top level)", ROOT)
            for term_id, label in parents:
                self._parent.addItem(label, term_id)
            self._parent.setCurrentIndex(max(self._parent.findData(parent_id), 0))
            form.addRow("Parent", self._parent)
        root.addLayout(form)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel, parent=self)
        buttons.button(QDialogButtonBox.Ok).setText(title)
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)
        root.addWidget(buttons)

    @property
    def name(self) -> str:
        return self._name.text().strip()

    @property
    def description(self) -> str:
        return self._description.toPlainText().strip()

    @property
    def parent_id(self) -> int:
        if self._parent is None:
            return ROOT
        return int(self._parent.currentData())

    def _on_accept(self) -> None:
        # Keep the dialog open rather than sending a request that must fail
        if not self.name:
            QMessageBox.warning(self, "Missing name", "Term name is required")
            return
        self.accept()

    @staticmethod
    def get_term(parent, title: str, name: str = "", description: str = "") -> tuple[str, str, bool]:
        """ Run the dialog modally. Returns (name, description, accepted). """
        dlg = TermDialog(title, name, description, parent)
        ok = dlg.exec() == QDialog.Accepted
        return dlg.name, dlg.description, ok

    @staticmethod
    def get_new_term(parent, title: str, parents: Sequence[tuple[int, str]],
                     parent_id: int = ROOT) -> tuple[str, str, int, bool]:
        """ Run the dialog modally with a parent picker preset to parent_id.
        Returns (name, description, chosen parent id, accepted).
        """
        dlg = TermDialog(title, parent=parent, parents=parents, parent_id=parent_id)
        ok = dlg.exec() == QDialog.Accepted
        return dlg.name, dlg.description, dlg.parent_id, ok
