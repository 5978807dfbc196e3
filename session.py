"""
Editor session

The editor state layer in front of ``BlockOperationHandler``: it owns the
script, one block tree per opened label and the undo history. Each successful
operation records a snapshot; failed operations change nothing and record
nothing.
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional

from block_operations import BlockOperationHandler, CrossLabelContext, OperationContext, OperationResult
from blocks import Block, Clipboard
from node_factory import IdGenerator
from script_ast import Label, Script
from tree_builder import TreeBuilder

logger = logging.getLogger(__name__)


class UndoManager:
    """Simple undo/redo manager storing deep copies of editor state."""

    def __init__(self, get_state: Callable[[], Any], set_state: Callable[[Any], None]):
        self._get_state = get_state
        self._set_state = set_state
        self._undo_stack: List[Any] = [copy.deepcopy(self._get_state())]
        self._redo_stack: List[Any] = []

    def record(self) -> None:
        """Record a new state for undo."""
        self._undo_stack.append(copy.deepcopy(self._get_state()))
        self._redo_stack.clear()

    def can_undo(self) -> bool:
        return len(self._undo_stack) > 1

    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def undo(self) -> bool:
        if len(self._undo_stack) <= 1:
            return False
        state = self._undo_stack.pop()
        self._redo_stack.append(state)
        self._set_state(copy.deepcopy(self._undo_stack[-1]))
        return True

    def redo(self) -> bool:
        if not self._redo_stack:
            return False
        state = self._redo_stack.pop()
        self._undo_stack.append(state)
        self._set_state(copy.deepcopy(state))
        return True


class EditorSession:
    def __init__(self, script: Script, ids: Optional[IdGenerator] = None):
        self.ids = ids or IdGenerator()
        self.script = script
        self.handler = BlockOperationHandler(self.ids)
        self.builder = TreeBuilder(self.ids)
        self.trees: Dict[str, Block] = {}
        self.clipboard: Optional[Clipboard] = None
        self.undo_manager = UndoManager(self._capture_state, self._restore_state)

    def _capture_state(self):
        return {
            "script": self.script,
            "trees": self.trees,
        }

    def _restore_state(self, state: Dict[str, Any]):
        self.script = state["script"]
        self.trees = state["trees"]

    # ---------- 레이블 ----------

    def tree(self, label_name: str) -> Optional[Block]:
        """Block tree of a label, built from the AST the first time it is opened."""
        if label_name not in self.trees:
            label = self.script.get_label(label_name)
            if label is None:
                return None
            self.trees[label_name] = self.builder.build_from_label(label)
        return self.trees[label_name]

    def add_label(self, base: str = "label") -> str:
        name = self.script.ensure_unique_label_name(base)
        self.script.labels.append(Label(id=self.ids.next_node_id("label"), name=name))
        self.tree(name)
        self.undo_manager.record()
        return name

    def context(self, label_name: str) -> OperationContext:
        return OperationContext(self.tree(label_name), self.script, label_name)

    # ---------- 블록 연산 ----------

    def add_block(self, label_name: str, kind: str, parent_id: str, index: int) -> OperationResult:
        return self._run(label_name, lambda ctx: self.handler.add_block(kind, parent_id, index, ctx))

    def delete_block(self, label_name: str, block_id: str) -> OperationResult:
        return self._run(label_name, lambda ctx: self.handler.delete_block(block_id, ctx))

    def move_block(self, label_name: str, block_id: str, new_parent_id: str, new_index: int) -> OperationResult:
        return self._run(label_name, lambda ctx: self.handler.move_block(block_id, new_parent_id, new_index, ctx))

    def move_block_across_labels(self, block_id: str, target_index: int,
                                 source_label: str, target_label: str) -> OperationResult:
        ctx = CrossLabelContext(
            self.tree(source_label) or _empty_root(),
            self.tree(target_label) or _empty_root(),
            self.script,
            source_label,
            target_label,
        )
        result = self.handler.move_block_across_labels(block_id, target_index, ctx)
        if result.success:
            self.undo_manager.record()
        return result

    def update_field(self, label_name: str, block_id: str, field_name: str, value) -> OperationResult:
        return self._run(label_name, lambda ctx: self.handler.update_field(block_id, field_name, value, ctx))

    def copy_block(self, label_name: str, block_id: str) -> Optional[Clipboard]:
        if self.tree(label_name) is None:
            return None
        clipboard = self.handler.copy_block(block_id, self.context(label_name))
        if clipboard is not None:
            self.clipboard = clipboard
        return clipboard

    def paste(self, label_name: str, parent_id: str, index: int) -> OperationResult:
        clipboard = self.clipboard or Clipboard(blocks=(), source_label="", timestamp=0.0)
        return self._run(label_name, lambda ctx: self.handler.paste_blocks(clipboard, parent_id, index, ctx))

    def undo(self) -> bool:
        return self.undo_manager.undo()

    def redo(self) -> bool:
        return self.undo_manager.redo()

    def _run(self, label_name: str, operation: Callable[[OperationContext], OperationResult]) -> OperationResult:
        # 없는 레이블은 빈 루트로 실행해 label_not_found 결과를 받는다
        tree = self.tree(label_name) or _empty_root()
        result = operation(OperationContext(tree, self.script, label_name))
        if result.success:
            self.undo_manager.record()
        else:
            logger.debug("session operation on %s not recorded: %s", label_name, result.error)
        return result


def _empty_root() -> Block:
    return Block(id="", kind="label", children=[])
