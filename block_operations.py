"""
Block operations

``BlockOperationHandler`` applies the structural edits of the block editor
(add, delete, move, move across labels, copy, paste, field update) to a block
tree and mirrors each one into the script AST.

Layout rules the handler keeps in step on both sides:

1. The label root's children are the label body.
2. A menu's children are its choices, in ``choices`` order.
3. An if block stands for branch 0: its children are branch 0's statements
   followed by one elif/else block per further branch.
4. choice/elif/else children are the statements of their body.
5. Comments have no AST entity and are skipped when a block index is turned
   into a body index.

Every operation either succeeds on both trees or leaves both untouched. Errors
are raised internally as ``EngineError`` and come back to the caller as a
failed ``OperationResult``.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from addressing import (
    find_ast_node,
    find_ast_parent,
    find_block,
    find_block_with_parent,
    find_branch,
    find_choice,
    is_descendant,
)
from blocks import BRANCH_KINDS, Block, BranchLink, ChoiceLink, Clipboard, NodeLink, clone_block
from edits import EditLog, atomic, clamp
from errors import EmptyInputError, EngineError, NotFoundError, StructuralError
from node_factory import IdGenerator, NodeFactory
from property_sync import sync_field
from script_ast import AstNode, Entity, If, Label, Menu, Script

logger = logging.getLogger(__name__)


@dataclass
class OperationContext:
    block_tree: Block
    ast: Script
    label_name: str


@dataclass
class CrossLabelContext:
    source_tree: Block
    target_tree: Block
    ast: Script
    source_label: str
    target_label: str


@dataclass(frozen=True)
class OperationResult:
    success: bool
    block_id: Optional[str] = None
    block_ids: Tuple[str, ...] = ()
    error: Optional[str] = None
    error_kind: Optional[str] = None
    block_tree: Optional[Block] = None
    ast: Optional[Script] = None

    @classmethod
    def failure(cls, err: EngineError) -> "OperationResult":
        return cls(False, error=str(err), error_kind=err.kind)


@dataclass
class DropTarget:
    container: Block
    index: int
    # 부모가 컨테이너가 아닐 때: 본문을 못 찾으면 레이블 끝에 넣는다
    fallback: bool = False


class BlockOperationHandler:
    def __init__(self, ids: Optional[IdGenerator] = None, factory: Optional[NodeFactory] = None):
        self.factory = factory or NodeFactory(ids)

    @property
    def ids(self) -> IdGenerator:
        return self.factory.ids

    # ---------- 공개 API ----------

    def add_block(self, kind: str, parent_id: str, index: int, context: OperationContext) -> OperationResult:
        try:
            with atomic() as log:
                block_id = self._add(kind, parent_id, index, context, log)
        except EngineError as e:
            return self._failed("add_block", e)
        logger.debug("add_block ok kind=%s block=%s label=%s", kind, block_id, context.label_name)
        return self._done(context, block_id=block_id, block_ids=(block_id,))

    def delete_block(self, block_id: str, context: OperationContext) -> OperationResult:
        try:
            with atomic() as log:
                self._delete(block_id, context, log)
        except EngineError as e:
            return self._failed("delete_block", e)
        logger.debug("delete_block ok block=%s label=%s", block_id, context.label_name)
        return self._done(context, block_id=block_id)

    def move_block(self, block_id: str, new_parent_id: str, new_index: int, context: OperationContext) -> OperationResult:
        try:
            with atomic() as log:
                self._move(block_id, new_parent_id, new_index, context, log)
        except EngineError as e:
            return self._failed("move_block", e)
        logger.debug("move_block ok block=%s parent=%s index=%s", block_id, new_parent_id, new_index)
        return self._done(context, block_id=block_id)

    def move_block_across_labels(self, block_id: str, target_index: int, context: CrossLabelContext) -> OperationResult:
        try:
            with atomic() as log:
                self._move_across(block_id, target_index, context, log)
        except EngineError as e:
            return self._failed("move_block_across_labels", e)
        logger.debug(
            "move_block_across_labels ok block=%s %s -> %s",
            block_id, context.source_label, context.target_label,
        )
        return OperationResult(True, block_id=block_id, block_tree=context.target_tree, ast=context.ast)

    def copy_block(self, block_id: str, context: OperationContext) -> Optional[Clipboard]:
        block = find_block(context.block_tree, block_id)
        if block is None:
            logger.info("copy_block failed: block not found %s", block_id)
            return None
        return Clipboard(blocks=(clone_block(block),), source_label=context.label_name, timestamp=time.time())

    def paste_blocks(self, clipboard: Clipboard, parent_id: str, index: int, context: OperationContext) -> OperationResult:
        try:
            with atomic() as log:
                pasted = self._paste(clipboard, parent_id, index, context, log)
        except EngineError as e:
            return self._failed("paste_blocks", e)
        logger.debug("paste_blocks ok blocks=%s parent=%s", pasted, parent_id)
        return self._done(context, block_id=pasted[0], block_ids=tuple(pasted))

    def update_field(self, block_id: str, field_name: str, value, context: OperationContext) -> OperationResult:
        try:
            with atomic() as log:
                self._update_field(block_id, field_name, value, context, log)
        except EngineError as e:
            return self._failed("update_field", e)
        logger.debug("update_field ok block=%s field=%s", block_id, field_name)
        return self._done(context, block_id=block_id)

    # ---------- 연산 ----------

    def _add(self, kind: str, parent_id: str, index: int, context: OperationContext, log: EditLog) -> str:
        label = self._label(context.ast, context.label_name)
        parent = find_block(context.block_tree, parent_id)
        if parent is None:
            raise NotFoundError("parent_not_found", id=parent_id)
        block = self.factory.create_block(kind)
        target = self._drop_target(context.block_tree, parent, index, kind)

        entity: Optional[Entity]
        if kind == "choice":
            menu = self._menu_node(target.container, label)
            block.set_value("text", menu.ensure_unique_choice_text())
            entity = self.factory.create_choice(block)
        elif kind in BRANCH_KINDS:
            entity = self.factory.create_branch(block)
        else:
            entity = self.factory.create_ast_node(kind, block)
            if entity is not None:
                block.link = NodeLink(entity.id)

        log.insert(target.container.children, target.index, block)
        self._attach(log, block, entity, target, label)
        return block.id

    def _delete(self, block_id: str, context: OperationContext, log: EditLog) -> None:
        label = self._label(context.ast, context.label_name)
        loc = find_block_with_parent(context.block_tree, block_id)
        if loc is None:
            raise NotFoundError("block_not_found", id=block_id)
        if loc.is_root:
            raise StructuralError("root_not_removable")
        block = loc.block

        log.remove(loc.parent.children, loc.index)
        if block.kind in BRANCH_KINDS:
            self._remove_branch(log, block, loc.parent, label)
            return
        self._detach(log, block, label)
        # 하위 노드는 대부분 부모와 함께 이미 빠졌다; 남은 것만 정리
        for desc in block.walk():
            if desc is not block and isinstance(desc.link, NodeLink):
                self._remove_node(log, desc.link.node_id, label)

    def _move(self, block_id: str, new_parent_id: str, new_index: int, context: OperationContext, log: EditLog) -> None:
        label = self._label(context.ast, context.label_name)
        loc = find_block_with_parent(context.block_tree, block_id)
        if loc is None:
            raise NotFoundError("block_not_found", id=block_id)
        if loc.is_root:
            raise StructuralError("root_not_removable")
        block = loc.block
        if block.kind in BRANCH_KINDS:
            raise StructuralError("branch_not_movable", kind=block.kind)
        new_parent = find_block(context.block_tree, new_parent_id)
        if new_parent is None:
            raise NotFoundError("new_parent_not_found", id=new_parent_id)
        if is_descendant(block, new_parent):
            raise StructuralError("move_into_self")

        log.remove(loc.parent.children, loc.index)
        target = self._drop_target(context.block_tree, new_parent, new_index, block.kind, moved_from=(loc.parent, loc.index))
        log.insert(target.container.children, target.index, block)

        entity = self._detach(log, block, label)
        if entity is None and block.kind != "comment":
            raise NotFoundError("ast_node_not_found", id=block.linked_node_id)
        self._attach(log, block, entity, target, label)

    def _move_across(self, block_id: str, target_index: int, context: CrossLabelContext, log: EditLog) -> None:
        source_label = self._label(context.ast, context.source_label)
        target_label = self._label(context.ast, context.target_label)
        loc = find_block_with_parent(context.source_tree, block_id)
        if loc is None:
            raise NotFoundError("block_not_found", id=block_id)
        if loc.is_root:
            raise StructuralError("root_not_removable")
        block = loc.block
        if block.kind == "choice":
            raise StructuralError("choice_needs_menu", kind=context.target_tree.kind)
        if block.kind in BRANCH_KINDS:
            raise StructuralError("branch_not_movable", kind=block.kind)
        if context.target_tree.children is None:
            raise StructuralError("not_a_label_root", id=context.target_tree.id)

        log.remove(loc.parent.children, loc.index)
        index = log.insert(context.target_tree.children, target_index, block)

        entity = self._detach(log, block, source_label)
        if entity is None and block.kind != "comment":
            raise NotFoundError("ast_node_not_found", id=block.linked_node_id)
        self._attach(log, block, entity, DropTarget(context.target_tree, index), target_label)

    def _paste(self, clipboard: Clipboard, parent_id: str, index: int, context: OperationContext, log: EditLog) -> List[str]:
        if not clipboard.blocks:
            raise EmptyInputError("clipboard_empty")
        label = self._label(context.ast, context.label_name)
        parent = find_block(context.block_tree, parent_id)
        if parent is None:
            raise NotFoundError("parent_not_found", id=parent_id)

        pasted: List[str] = []
        current = max(index, 0)
        for source in clipboard.blocks:
            block = self.factory.clone_with_new_ids(source)
            target = self._drop_target(context.block_tree, parent, current, block.kind)
            if block.kind == "choice":
                menu = self._menu_node(target.container, label)
                text = block.value("text") or ""
                if not text or menu.find_choice(text) is not None:
                    block.set_value("text", menu.ensure_unique_choice_text(text or "Choice"))
                entity = self.factory.build_subtree(block, owner_id=menu.id)
            elif block.kind in BRANCH_KINDS:
                node = self._if_node(target.container, label)
                entity = self.factory.build_subtree(block, owner_id=node.id, branch_index=len(node.branches))
            else:
                entity = self.factory.build_subtree(block)
            log.insert(target.container.children, target.index, block)
            self._attach(log, block, entity, target, label)
            pasted.append(block.id)
            current += 1
        return pasted

    def _update_field(self, block_id: str, field_name: str, value, context: OperationContext, log: EditLog) -> None:
        label = self._label(context.ast, context.label_name)
        block = find_block(context.block_tree, block_id)
        if block is None:
            raise NotFoundError("block_not_found", id=block_id)
        f = block.get_field(field_name)
        if f is None:
            raise NotFoundError("field_not_found", name=field_name)
        log.assign(f, "value", value)
        if block.kind == "comment":
            return
        sync_field(block, field_name, value, label, log)

    # ---------- 위치 계산 ----------

    def _drop_target(self, root: Block, parent: Block, index: int, kind: str,
                     moved_from: Optional[Tuple[Block, int]] = None) -> DropTarget:
        """Where a block of ``kind`` dropped on ``parent`` at ``index`` ends up."""
        if kind == "label":
            raise StructuralError("label_not_insertable")
        if kind == "choice":
            if parent.kind != "menu":
                raise StructuralError("choice_needs_menu", kind=parent.kind)
            return DropTarget(parent, self._adjusted(parent, index, len(parent.children), moved_from))
        if kind in BRANCH_KINDS:
            if parent.kind != "if":
                raise StructuralError("branch_needs_if", kind=kind, parent=parent.kind)
            return DropTarget(parent, len(parent.children))
        if parent.kind == "menu":
            raise StructuralError("menu_needs_choice", kind=kind)
        if parent.is_container:
            return DropTarget(parent, self._adjusted(parent, index, _statement_limit(parent), moved_from))

        # 컨테이너가 아닌 부모: 그 바로 뒤 형제로 넣는다
        loc = find_block_with_parent(root, parent.id)
        if loc is None or loc.parent is None:
            raise NotFoundError("parent_not_found", id=parent.id)
        container = loc.parent
        position = loc.index + 1 + max(index, 0)
        return DropTarget(container, clamp(position, 0, _statement_limit(container)), fallback=True)

    @staticmethod
    def _adjusted(container: Block, index: int, limit: int, moved_from: Optional[Tuple[Block, int]]) -> int:
        if moved_from is not None:
            source, source_index = moved_from
            if source is container and source_index < index:
                index -= 1
        return clamp(index, 0, limit)

    # ---------- AST 반영 ----------

    def _attach(self, log: EditLog, block: Block, entity: Optional[Entity], target: DropTarget, label: Label) -> None:
        """Insert ``entity`` where ``block`` now sits in ``target.container``."""
        if entity is None:
            return
        container = target.container
        if block.kind == "choice":
            menu = self._menu_node(container, label)
            if menu.find_choice(entity.text) is not None:
                raise StructuralError("duplicate_choice_text", text=entity.text)
            log.insert(menu.choices, target.index, entity)
            log.assign(block, "link", ChoiceLink(menu.id, entity.text))
            return
        if block.kind in BRANCH_KINDS:
            node = self._if_node(container, label)
            if node.has_else():
                raise StructuralError("branch_after_else")
            index = log.insert(node.branches, len(node.branches), entity)
            log.assign(block, "link", BranchLink(node.id, index))
            return
        try:
            body = self._body_of(container, label)
        except NotFoundError:
            if not target.fallback:
                raise
            logger.debug("body of %s not found, appending to label %s", container.id, label.name)
            log.insert(label.body, len(label.body), entity)
            return
        log.insert(body, _ast_index(container, target.index), entity)

    def _detach(self, log: EditLog, block: Block, label: Label) -> Optional[Entity]:
        """Remove the AST entity of ``block`` from ``label``; None if it has none there."""
        link = block.link
        if isinstance(link, NodeLink):
            found = find_ast_parent(label, link.node_id)
            if found is None:
                return None
            body, i = found
            return log.remove(body, i)
        if isinstance(link, ChoiceLink):
            found = find_choice(label, link)
            if found is None:
                return None
            menu, choice = found
            log.remove_item(menu.choices, choice)
            return choice
        return None

    def _remove_node(self, log: EditLog, node_id: str, label: Label) -> None:
        found = find_ast_parent(label, node_id)
        if found is not None:
            body, i = found
            log.remove(body, i)

    def _remove_branch(self, log: EditLog, block: Block, if_block: Block, label: Label) -> None:
        link = block.link
        if not isinstance(link, BranchLink):
            return
        found = find_branch(label, link)
        if found is None:
            return
        node, branch = found
        log.remove_item(node.branches, branch)
        # 뒤에 있던 분기들의 인덱스를 하나씩 당긴다
        for sibling in if_block.children:
            other = sibling.link
            if isinstance(other, BranchLink) and other.owner_id == link.owner_id and other.index > link.index:
                log.assign(sibling, "link", BranchLink(other.owner_id, other.index - 1))

    def _body_of(self, container: Block, label: Label) -> List[AstNode]:
        if container.kind == "label":
            return label.body
        if container.kind == "choice":
            if not isinstance(container.link, ChoiceLink):
                raise NotFoundError("menu_not_found", id=container.linked_node_id)
            found = find_choice(label, container.link)
            if found is None:
                raise NotFoundError("choice_not_found", text=container.link.text)
            return found[1].body
        if container.kind == "if":
            return self._if_node(container, label).branches[0].body
        if container.kind in BRANCH_KINDS:
            if not isinstance(container.link, BranchLink):
                raise NotFoundError("if_not_found", id=container.linked_node_id)
            found = find_branch(label, container.link)
            if found is None:
                raise NotFoundError("branch_not_found", index=container.link.index)
            return found[1].body
        raise NotFoundError("ast_node_not_found", id=container.linked_node_id)

    def _menu_node(self, container: Block, label: Label) -> Menu:
        node = self._linked_node(container, label)
        if not isinstance(node, Menu):
            raise NotFoundError("menu_not_found", id=container.linked_node_id)
        return node

    def _if_node(self, container: Block, label: Label) -> If:
        node = self._linked_node(container, label)
        if not isinstance(node, If) or not node.branches:
            raise NotFoundError("if_not_found", id=container.linked_node_id)
        return node

    @staticmethod
    def _linked_node(block: Block, label: Label) -> Optional[AstNode]:
        if not isinstance(block.link, NodeLink):
            return None
        return find_ast_node(label, block.link.node_id)

    @staticmethod
    def _label(ast: Script, name: str) -> Label:
        label = ast.get_label(name)
        if label is None:
            raise NotFoundError("label_not_found", name=name)
        return label

    # ---------- 결과 ----------

    @staticmethod
    def _done(context: OperationContext, **kwargs) -> OperationResult:
        return OperationResult(True, block_tree=context.block_tree, ast=context.ast, **kwargs)

    @staticmethod
    def _failed(operation: str, err: EngineError) -> OperationResult:
        logger.info("%s failed (%s): %s", operation, err.kind, err)
        return OperationResult.failure(err)


def _statement_limit(container: Block) -> int:
    """Last valid insert index for statements: before any elif/else block."""
    children = container.children or []
    for i, child in enumerate(children):
        if child.kind in BRANCH_KINDS:
            return i
    return len(children)


def _ast_index(container: Block, block_index: int) -> int:
    """Body index matching ``block_index`` in ``container``, skipping comments."""
    return sum(
        1 for b in container.children[:block_index]
        if b.kind != "comment" and b.kind not in BRANCH_KINDS
    )
