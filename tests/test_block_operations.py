import pathlib
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from addressing import count_ast_nodes, count_blocks, find_ast_node, find_block, resolve_link
from block_operations import BlockOperationHandler, CrossLabelContext, OperationContext
from blocks import BranchLink, ChoiceLink, Clipboard
from node_factory import IdGenerator
from script_ast import Dialogue, If, Label, Menu, Script
from tree_builder import TreeBuilder


def _setup(*names):
    names = names or ("start",)
    ids = IdGenerator("t")
    handler = BlockOperationHandler(ids)
    script = Script(labels=[Label(id=f"label-{n}", name=n) for n in names])
    builder = TreeBuilder(ids)
    trees = {lb.name: builder.build_from_label(lb) for lb in script.labels}
    return handler, script, trees


def _ctx(script, trees, name="start"):
    return OperationContext(trees[name], script, name)


def _add(handler, ctx, kind, parent_id=None, index=0):
    result = handler.add_block(kind, parent_id or ctx.block_tree.id, index, ctx)
    assert result.success, result.error
    return find_block(ctx.block_tree, result.block_id)


def _child_ids(block):
    return [c.id for c in block.children]


def _body_ids(body):
    return [n.id for n in body]


def test_add_then_delete_keeps_counts_in_step():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")

    first = handler.add_block("dialogue", root.id, 0, ctx)
    assert first.success
    assert count_blocks(root) == 1
    assert len(label.body) == 1

    second = handler.add_block("dialogue", root.id, 1, ctx)
    assert second.success
    assert count_blocks(root) == 2
    assert len(label.body) == 2

    deleted = handler.delete_block(first.block_id, ctx)
    assert deleted.success
    assert count_blocks(root) == 1
    assert len(label.body) == 1
    assert label.body[0].id == find_block(root, second.block_id).linked_node_id


def test_move_reorders_both_trees():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")
    b0, b1, b2 = (_add(handler, ctx, "dialogue", index=i) for i in range(3))

    result = handler.move_block(b0.id, root.id, 2, ctx)

    assert result.success
    assert _child_ids(root) == [b1.id, b0.id, b2.id]
    assert _body_ids(label.body) == [b1.linked_node_id, b0.linked_node_id, b2.linked_node_id]


def test_move_to_current_position_changes_nothing():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")
    blocks = [_add(handler, ctx, "dialogue", index=i) for i in range(3)]
    before = _child_ids(root)
    before_body = _body_ids(label.body)

    for i, block in enumerate(blocks):
        assert handler.move_block(block.id, root.id, i, ctx).success
        assert _child_ids(root) == before
        assert _body_ids(label.body) == before_body


def test_move_to_end_and_negative_index_are_clamped():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")
    b0, b1, b2 = (_add(handler, ctx, "dialogue", index=i) for i in range(3))

    assert handler.move_block(b0.id, root.id, 99, ctx).success
    assert _child_ids(root) == [b1.id, b2.id, b0.id]
    assert handler.move_block(b0.id, root.id, -5, ctx).success
    assert _child_ids(root) == [b0.id, b1.id, b2.id]
    assert _body_ids(label.body) == [b.linked_node_id for b in (b0, b1, b2)]


def test_update_field_updates_block_and_ast():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    block = _add(handler, ctx, "dialogue")

    result = handler.update_field(block.id, "text", "Updated", ctx)

    assert result.success
    assert block.value("text") == "Updated"
    node = find_ast_node(script, block.linked_node_id)
    assert isinstance(node, Dialogue)
    assert node.text == "Updated"


def test_update_unknown_field_fails():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    block = _add(handler, ctx, "dialogue")

    result = handler.update_field(block.id, "volume", 3, ctx)

    assert not result.success
    assert result.error_kind == "not-found"


def test_invalid_value_restores_field():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    block = _add(handler, ctx, "play-music")

    result = handler.update_field(block.id, "fadein", "slowly", ctx)

    assert not result.success
    assert result.error_kind == "invalid-value"
    assert block.value("fadein") is None
    assert find_ast_node(script, block.linked_node_id).fade_in is None


def test_comment_has_no_ast_entity_and_shifts_no_index():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")

    comment = _add(handler, ctx, "comment", index=0)
    later = _add(handler, ctx, "dialogue", index=1)
    earlier = _add(handler, ctx, "dialogue", index=0)

    assert comment.link is None
    assert _child_ids(root) == [earlier.id, comment.id, later.id]
    assert _body_ids(label.body) == [earlier.linked_node_id, later.linked_node_id]
    assert handler.update_field(comment.id, "text", "note to self", ctx).success
    assert handler.delete_block(comment.id, ctx).success
    assert len(label.body) == 2


def test_non_container_parent_inserts_after_it():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")
    a = _add(handler, ctx, "dialogue", index=0)
    b = _add(handler, ctx, "dialogue", index=1)

    c = _add(handler, ctx, "jump", parent_id=a.id, index=0)

    assert _child_ids(root) == [a.id, c.id, b.id]
    assert _body_ids(label.body) == [a.linked_node_id, c.linked_node_id, b.linked_node_id]


def test_choice_lifecycle_in_menu():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    menu_block = _add(handler, ctx, "menu")
    menu = find_ast_node(script, menu_block.linked_node_id)

    first = _add(handler, ctx, "choice", parent_id=menu_block.id, index=0)
    second = _add(handler, ctx, "choice", parent_id=menu_block.id, index=10)

    assert isinstance(menu, Menu)
    assert [c.text for c in menu.choices] == ["Choice", "Choice1"]
    assert first.link == ChoiceLink(menu.id, "Choice")
    assert first.linked_node_id == f"{menu.id}_choice_Choice"
    assert first.value("text") == "Choice"

    line = _add(handler, ctx, "dialogue", parent_id=first.id)
    assert _body_ids(menu.choices[0].body) == [line.linked_node_id]

    assert handler.update_field(first.id, "text", "Go left", ctx).success
    assert menu.choices[0].text == "Go left"
    assert first.link == ChoiceLink(menu.id, "Go left")
    # 이름이 바뀐 뒤에도 새 주소로 찾아진다
    _add(handler, ctx, "dialogue", parent_id=first.id, index=1)
    assert len(menu.choices[0].body) == 2

    dup = handler.update_field(first.id, "text", "Choice1", ctx)
    assert not dup.success
    assert dup.error_kind == "structural"
    assert first.value("text") == "Go left"
    assert first.link == ChoiceLink(menu.id, "Go left")

    assert handler.update_field(second.id, "condition", "has_key", ctx).success
    assert menu.choices[1].condition == "has_key"

    assert handler.delete_block(first.id, ctx).success
    assert [c.text for c in menu.choices] == ["Choice1"]
    assert _child_ids(menu_block) == [second.id]


def test_kind_compatibility_is_enforced_before_mutation():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    menu_block = _add(handler, ctx, "menu")
    label = script.get_label("start")

    for kind, parent in (("choice", root), ("dialogue", menu_block), ("elif", root), ("label", root)):
        result = handler.add_block(kind, parent.id, 0, ctx)
        assert not result.success
        assert result.error_kind == "structural"
    assert _child_ids(root) == [menu_block.id]
    assert menu_block.children == []
    assert len(label.body) == 1

    missing = handler.add_block("dialogue", "nope", 0, ctx)
    assert missing.error_kind == "not-found"


def test_if_branches_are_appended_and_renumbered_on_delete():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    if_block = _add(handler, ctx, "if")
    node = find_ast_node(script, if_block.linked_node_id)
    assert isinstance(node, If)
    assert node.branches[0].condition == "True"

    body_line = _add(handler, ctx, "dialogue", parent_id=if_block.id)
    elif_block = _add(handler, ctx, "elif", parent_id=if_block.id, index=0)
    else_block = _add(handler, ctx, "else", parent_id=if_block.id, index=0)

    assert _child_ids(if_block) == [body_line.id, elif_block.id, else_block.id]
    assert elif_block.link == BranchLink(node.id, 1)
    assert else_block.link == BranchLink(node.id, 2)
    assert node.branches[2].condition is None

    late = handler.add_block("elif", if_block.id, 0, ctx)
    assert not late.success
    assert late.error_kind == "structural"
    assert len(node.branches) == 3
    assert len(if_block.children) == 3

    # 분기 블록 뒤로는 들어가지 않는다
    second_line = _add(handler, ctx, "dialogue", parent_id=if_block.id, index=99)
    assert _child_ids(if_block)[:2] == [body_line.id, second_line.id]
    assert len(node.branches[0].body) == 2

    in_else = _add(handler, ctx, "dialogue", parent_id=else_block.id)
    assert _body_ids(node.branches[2].body) == [in_else.linked_node_id]

    assert handler.update_field(if_block.id, "condition", "score > 3", ctx).success
    assert handler.update_field(elif_block.id, "condition", "score > 1", ctx).success
    assert node.branches[0].condition == "score > 3"
    assert node.branches[1].condition == "score > 1"

    assert handler.delete_block(elif_block.id, ctx).success
    assert len(node.branches) == 2
    assert else_block.link == BranchLink(node.id, 1)
    assert resolve_link(script, else_block) is node.branches[1]
    assert _body_ids(node.branches[1].body) == [in_else.linked_node_id]


def test_failed_ast_insert_removes_new_block():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    label = script.get_label("start")
    if_block = _add(handler, ctx, "if")
    label.body.clear()  # AST 쪽을 일부러 어긋나게 만든다

    result = handler.add_block("dialogue", if_block.id, 0, ctx)

    assert not result.success
    assert result.error_kind == "not-found"
    assert if_block.children == []


def test_failed_move_is_reverted():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")
    menu_block = _add(handler, ctx, "menu")
    choice = _add(handler, ctx, "choice", parent_id=menu_block.id)
    line = _add(handler, ctx, "dialogue", index=1)
    label.body.pop(0)  # 메뉴 노드만 사라진 상태
    body_before = list(label.body)

    result = handler.move_block(line.id, choice.id, 0, ctx)

    assert not result.success
    assert _child_ids(root) == [menu_block.id, line.id]
    assert choice.children == []
    assert label.body == body_before


def test_move_into_own_subtree_is_rejected():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    menu_block = _add(handler, ctx, "menu")
    choice = _add(handler, ctx, "choice", parent_id=menu_block.id)

    result = handler.move_block(menu_block.id, choice.id, 0, ctx)

    assert not result.success
    assert result.error_kind == "structural"


def test_root_cannot_be_deleted_or_moved():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree

    assert handler.delete_block(root.id, ctx).error_kind == "structural"
    assert handler.move_block(root.id, root.id, 0, ctx).error_kind == "structural"
    assert handler.delete_block("missing", ctx).error_kind == "not-found"


def test_move_statement_into_choice_and_choice_between_menus():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")
    menu_a = _add(handler, ctx, "menu", index=0)
    menu_b = _add(handler, ctx, "menu", index=1)
    choice_a = _add(handler, ctx, "choice", parent_id=menu_a.id)
    choice_b = _add(handler, ctx, "choice", parent_id=menu_b.id)
    handler.update_field(choice_b.id, "text", "Stay", ctx)
    line = _add(handler, ctx, "dialogue", index=2)

    assert handler.move_block(line.id, choice_a.id, 0, ctx).success
    node_a = find_ast_node(script, menu_a.linked_node_id)
    node_b = find_ast_node(script, menu_b.linked_node_id)
    assert _body_ids(node_a.choices[0].body) == [line.linked_node_id]
    assert _body_ids(label.body) == [node_a.id, node_b.id]

    assert handler.move_block(choice_a.id, menu_b.id, 0, ctx).success
    assert node_a.choices == []
    assert [c.text for c in node_b.choices] == ["Choice", "Stay"]
    assert choice_a.link == ChoiceLink(node_b.id, "Choice")
    assert _child_ids(menu_b) == [choice_a.id, choice_b.id]
    assert _body_ids(node_b.choices[0].body) == [line.linked_node_id]

    wrong = handler.move_block(choice_a.id, root.id, 0, ctx)
    assert wrong.error_kind == "structural"


def test_move_across_labels_conserves_counts():
    handler, script, trees = _setup("start", "ending")
    start_ctx = _ctx(script, trees, "start")
    end_ctx = _ctx(script, trees, "ending")
    start = script.get_label("start")
    ending = script.get_label("ending")
    moving = _add(handler, start_ctx, "dialogue", index=0)
    _add(handler, start_ctx, "dialogue", index=1)
    _add(handler, end_ctx, "dialogue", index=0)
    blocks_before = (len(trees["start"].children), len(trees["ending"].children))
    nodes_before = (len(start.body), len(ending.body))

    ctx = CrossLabelContext(trees["start"], trees["ending"], script, "start", "ending")
    result = handler.move_block_across_labels(moving.id, 0, ctx)

    assert result.success
    blocks_after = (len(trees["start"].children), len(trees["ending"].children))
    nodes_after = (len(start.body), len(ending.body))
    for before, after in ((blocks_before, blocks_after), (nodes_before, nodes_after)):
        assert after[0] == before[0] - 1
        assert after[1] == before[1] + 1
        assert sum(after) == sum(before)
    assert trees["ending"].children[0] is moving
    assert ending.body[0].id == moving.linked_node_id


def test_move_across_labels_rejects_choices():
    handler, script, trees = _setup("start", "ending")
    start_ctx = _ctx(script, trees, "start")
    menu_block = _add(handler, start_ctx, "menu")
    choice = _add(handler, start_ctx, "choice", parent_id=menu_block.id)

    ctx = CrossLabelContext(trees["start"], trees["ending"], script, "start", "ending")
    result = handler.move_block_across_labels(choice.id, 0, ctx)

    assert not result.success
    assert result.error_kind == "structural"
    assert menu_block.children == [choice]


def test_copy_paste_gives_fresh_ids_and_independent_values():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    label = script.get_label("start")
    original = _add(handler, ctx, "dialogue")
    handler.update_field(original.id, "text", "Hello", ctx)

    clipboard = handler.copy_block(original.id, ctx)
    assert clipboard is not None
    assert clipboard.source_label == "start"
    result = handler.paste_blocks(clipboard, ctx.block_tree.id, 1, ctx)

    assert result.success
    pasted = find_block(ctx.block_tree, result.block_id)
    assert pasted.id != original.id
    assert pasted.linked_node_id != original.linked_node_id
    assert [(f.name, f.value) for f in pasted.fields] == [(f.name, f.value) for f in original.fields]
    assert len(label.body) == 2

    handler.update_field(original.id, "text", "Changed", ctx)
    assert pasted.value("text") == "Hello"
    assert clipboard.blocks[0].value("text") == "Hello"
    assert find_ast_node(script, pasted.linked_node_id).text == "Hello"


def test_paste_nested_menu_builds_whole_subtree():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    menu_block = _add(handler, ctx, "menu")
    choice = _add(handler, ctx, "choice", parent_id=menu_block.id)
    _add(handler, ctx, "dialogue", parent_id=choice.id)

    clipboard = handler.copy_block(menu_block.id, ctx)
    result = handler.paste_blocks(clipboard, root.id, 5, ctx)

    assert result.success
    copy_block = find_block(root, result.block_id)
    assert _child_ids(root) == [menu_block.id, copy_block.id]
    node = find_ast_node(script, copy_block.linked_node_id)
    assert isinstance(node, Menu)
    assert node.id != menu_block.linked_node_id
    assert [c.text for c in node.choices] == ["Choice"]
    assert len(node.choices[0].body) == 1
    for block in copy_block.walk():
        assert resolve_link(script, block) is not None
    assert count_blocks(root) == count_ast_nodes(script, "start")


def test_paste_choice_into_menu_gets_unique_text():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    menu_block = _add(handler, ctx, "menu")
    choice = _add(handler, ctx, "choice", parent_id=menu_block.id)

    clipboard = handler.copy_block(choice.id, ctx)
    result = handler.paste_blocks(clipboard, menu_block.id, 1, ctx)

    assert result.success
    node = find_ast_node(script, menu_block.linked_node_id)
    assert [c.text for c in node.choices] == ["Choice", "Choice1"]
    pasted = find_block(ctx.block_tree, result.block_id)
    assert pasted.link == ChoiceLink(node.id, "Choice1")


def test_paste_rolls_back_earlier_blocks_on_failure():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)
    root = ctx.block_tree
    label = script.get_label("start")
    line = _add(handler, ctx, "dialogue")
    menu_block = _add(handler, ctx, "menu", index=1)
    choice = _add(handler, ctx, "choice", parent_id=menu_block.id)
    mixed = Clipboard(
        blocks=handler.copy_block(line.id, ctx).blocks + handler.copy_block(choice.id, ctx).blocks,
        source_label="start",
        timestamp=0.0,
    )
    children_before = _child_ids(root)
    body_before = list(label.body)

    result = handler.paste_blocks(mixed, root.id, 0, ctx)

    assert not result.success
    assert result.error_kind == "structural"
    assert _child_ids(root) == children_before
    assert label.body == body_before


def test_paste_empty_clipboard_fails():
    handler, script, trees = _setup()
    ctx = _ctx(script, trees)

    result = handler.paste_blocks(Clipboard(blocks=(), source_label="start", timestamp=0.0), ctx.block_tree.id, 0, ctx)

    assert not result.success
    assert result.error_kind == "empty-input"
    assert ctx.block_tree.children == []


def test_copy_missing_block_returns_none():
    handler, script, trees = _setup()
    assert handler.copy_block("missing", _ctx(script, trees)) is None


def test_unknown_label_fails_without_mutation():
    handler, script, trees = _setup()
    ctx = OperationContext(trees["start"], script, "nowhere")

    result = handler.add_block("dialogue", trees["start"].id, 0, ctx)

    assert not result.success
    assert result.error_kind == "not-found"
    assert trees["start"].children == []
