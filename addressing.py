from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from blocks import Block, BranchLink, ChoiceLink, NodeLink, parse_link
from script_ast import AstNode, If, IfBranch, Label, Menu, MenuChoice, Script, child_bodies


@dataclass
class BlockLocation:
    block: Block
    parent: Optional[Block]
    index: int  # -1 이면 루트 (삭제 불가)

    @property
    def is_root(self) -> bool:
        return self.parent is None


# ---------- 블록 트리 조회 ----------


def find_block(root: Block, block_id: str) -> Optional[Block]:
    if root.id == block_id:
        return root
    for child in root.children or []:
        found = find_block(child, block_id)
        if found is not None:
            return found
    return None


def find_block_with_parent(root: Block, block_id: str) -> Optional[BlockLocation]:
    if root.id == block_id:
        return BlockLocation(root, None, -1)
    return _find_in_children(root, block_id)


def _find_in_children(parent: Block, block_id: str) -> Optional[BlockLocation]:
    for i, child in enumerate(parent.children or []):
        if child.id == block_id:
            return BlockLocation(child, parent, i)
        found = _find_in_children(child, block_id)
        if found is not None:
            return found
    return None


def is_descendant(block: Block, candidate: Block) -> bool:
    """True if ``candidate`` is ``block`` or lies inside its subtree."""
    return any(b is candidate for b in block.walk())


# ---------- AST 조회 ----------


def _top_nodes(ast: Union[Script, AstNode]) -> List[AstNode]:
    if isinstance(ast, Script):
        return list(ast.labels)
    return [ast]


def find_ast_node(ast: Union[Script, AstNode], node_id: str) -> Optional[AstNode]:
    for node in _top_nodes(ast):
        found = _find_node_in_tree(node, node_id)
        if found is not None:
            return found
    return None


def _find_node_in_tree(node: AstNode, node_id: str) -> Optional[AstNode]:
    if node.id == node_id:
        return node
    for body in child_bodies(node):
        for child in body:
            found = _find_node_in_tree(child, node_id)
            if found is not None:
                return found
    return None


def find_ast_parent(ast: Union[Script, AstNode], node_id: str) -> Optional[Tuple[List[AstNode], int]]:
    """The statement list holding ``node_id`` and its index there."""
    for node in _top_nodes(ast):
        found = _find_parent_in_tree(node, node_id)
        if found is not None:
            return found
    return None


def _find_parent_in_tree(node: AstNode, node_id: str) -> Optional[Tuple[List[AstNode], int]]:
    for body in child_bodies(node):
        for i, child in enumerate(body):
            if child.id == node_id:
                return body, i
            found = _find_parent_in_tree(child, node_id)
            if found is not None:
                return found
    return None


def resolve_synthetic_owner(synthetic_id: str) -> Optional[Tuple[str, Union[str, int]]]:
    """Split a synthetic id into the owning node id and its discriminator.

    ``menu-1_choice_Go left`` gives ``("menu-1", "Go left")`` and
    ``if-2_branch_1`` gives ``("if-2", 1)``. Plain node ids give None.
    """
    link = parse_link(synthetic_id)
    if isinstance(link, ChoiceLink):
        return link.owner_id, link.text
    if isinstance(link, BranchLink):
        return link.owner_id, link.index
    return None


def find_choice(scope: Union[Script, AstNode], link: ChoiceLink) -> Optional[Tuple[Menu, MenuChoice]]:
    menu = find_ast_node(scope, link.owner_id)
    if not isinstance(menu, Menu):
        return None
    choice = menu.find_choice(link.text)
    if choice is None:
        return None
    return menu, choice


def find_branch(scope: Union[Script, AstNode], link: BranchLink) -> Optional[Tuple[If, IfBranch]]:
    node = find_ast_node(scope, link.owner_id)
    if not isinstance(node, If):
        return None
    if not 0 <= link.index < len(node.branches):
        return None
    return node, node.branches[link.index]


def resolve_link(scope: Union[Script, AstNode], block: Block):
    """The AST entity a block points at: a node, a choice record, a branch, or None."""
    link = block.link
    if isinstance(link, NodeLink):
        return find_ast_node(scope, link.node_id)
    if isinstance(link, ChoiceLink):
        found = find_choice(scope, link)
        return found[1] if found else None
    if isinstance(link, BranchLink):
        found = find_branch(scope, link)
        return found[1] if found else None
    return None


# ---------- 개수 세기 ----------


def count_blocks(root: Block) -> int:
    """Blocks below ``root`` that have an AST entity (comments excluded)."""
    return sum(1 for b in root.walk() if b is not root and b.kind != "comment")


def count_ast_nodes(ast: Union[Script, Label], label_name: Optional[str] = None) -> int:
    """Statements, choice records and extra branches under one label."""
    label = ast.get_label(label_name) if isinstance(ast, Script) else ast
    if label is None:
        return 0
    return _count_body(label.body)


def _count_body(body: List[AstNode]) -> int:
    total = 0
    for node in body:
        total += 1
        if isinstance(node, Menu):
            total += len(node.choices)
        elif isinstance(node, If):
            total += max(len(node.branches) - 1, 0)
        for inner in child_bodies(node):
            total += _count_body(inner)
    return total
