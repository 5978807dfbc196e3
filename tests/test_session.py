import pathlib
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import i18n
from addressing import count_ast_nodes, count_blocks
from errors import StructuralError
from node_factory import IdGenerator
from script_ast import Dialogue, Label, Script
from session import EditorSession


def _session():
    script = Script(labels=[Label(id="label-start", name="start", body=[Dialogue(id="dlg-1", text="hi")])])
    return EditorSession(script, IdGenerator("u"))


def test_tree_is_built_on_first_open():
    session = _session()
    root = session.tree("start")
    assert root is session.tree("start")
    assert [c.kind for c in root.children] == ["dialogue"]
    assert session.tree("missing") is None


def test_undo_and_redo_restore_both_trees():
    session = _session()
    root = session.tree("start")
    assert session.add_block("start", "dialogue", root.id, 1).success
    assert count_blocks(session.tree("start")) == 2

    assert session.undo()
    assert count_blocks(session.tree("start")) == 1
    assert count_ast_nodes(session.script, "start") == 1

    assert session.redo()
    assert count_blocks(session.tree("start")) == 2
    assert count_ast_nodes(session.script, "start") == 2
    assert not session.redo()


def test_failed_operation_is_not_recorded():
    session = _session()
    root = session.tree("start")
    result = session.add_block("start", "choice", root.id, 0)
    assert not result.success
    assert not session.undo_manager.can_undo()
    assert session.add_block("nowhere", "dialogue", root.id, 0).error_kind == "not-found"


def test_copy_paste_through_session_clipboard():
    session = _session()
    root = session.tree("start")
    assert session.paste("start", root.id, 0).error_kind == "empty-input"

    clipboard = session.copy_block("start", root.children[0].id)
    assert clipboard is session.clipboard
    assert session.paste("start", root.id, 1).success
    assert count_ast_nodes(session.script, "start") == 2


def test_add_label_and_move_between_labels():
    session = _session()
    name = session.add_label("start")
    assert name == "start1"
    block_id = session.tree("start").children[0].id

    result = session.move_block_across_labels(block_id, 0, "start", name)

    assert result.success
    assert session.tree("start").children == []
    assert session.script.get_label(name).body[0].id == "dlg-1"
    assert session.undo()
    assert session.script.get_label("start").body[0].id == "dlg-1"


def test_messages_follow_language():
    try:
        i18n.set_language("korean")
        err = StructuralError("root_not_removable")
        assert str(err) == i18n._STRINGS["korean"]["root_not_removable"]
        i18n.set_language("klingon")
        assert i18n.LANG == "en"
        assert str(StructuralError("move_into_self")) == i18n._STRINGS["en"]["move_into_self"]
    finally:
        i18n.set_language("en")
