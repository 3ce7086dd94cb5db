from PySide6.QtWidgets import QDialog

from mat.db.models import ROOT
from mat.ui.taxonomy_tab.term_dialog import TermDialog


def test_parent_picker_lists_options_and_presets(qtbot):
    dlg = TermDialog("Add term", parents=[(1, "A"), (2, "-- B")], parent_id=2)
    qtbot.addWidget(dlg)

    combo = dlg._parent
    assert [combo.itemText(i) for i in range(combo.count())] == ["(top level)", "A", "-- B"]
    assert dlg.parent_id == 2

    combo.setCurrentIndex(0)
    assert dlg.parent_id == ROOT


def test_unknown_preset_parent_falls_back_to_top_level(qtbot):
    dlg = TermDialog("Add term", parents=[(1, "A")], parent_id=99)
    qtbot.addWidget(dlg)
    assert dlg.parent_id == ROOT


def test_edit_dialog_has_no_parent_picker(qtbot):
    dlg = TermDialog("Edit term", "  X  ", "About X\n")
    qtbot.addWidget(dlg)
    assert dlg._parent is None
    assert (dlg.name, dlg.description, dlg.parent_id) == ("X", "About X", ROOT)


def test_blank_name_keeps_dialog_open(qtbot, shown_warnings):
    dlg = TermDialog("Add term", "   ")
    qtbot.addWidget(dlg)

    with qtbot.assertNotEmitted(dlg.accepted):
        dlg._on_accept()
    assert shown_warnings == [("Missing name", "Term name is required")]

    dlg._name.setText("Named")
    with qtbot.waitSignal(dlg.accepted, timeout=1000):
        dlg._on_accept()


def test_get_new_term_returns_chosen_parent(qtbot, monkeypatch):
    monkeypatch.setattr(TermDialog, "exec", lambda self: QDialog.Accepted)
    assert TermDialog.get_new_term(None, "Add term", [(1, "A"), (2, "B")], 2) == ("", "", 2, True)
