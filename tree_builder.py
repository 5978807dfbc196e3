import logging
from typing import Any, Dict, List, Optional

from blocks import Block, BranchLink, ChoiceLink, NodeLink, default_fields, is_container_kind
from node_factory import IdGenerator
from script_ast import (
    AstNode,
    Call,
    Dialogue,
    Hide,
    If,
    IfBranch,
    Jump,
    Label,
    Menu,
    MenuChoice,
    Play,
    Python,
    Return,
    Scene,
    SetVar,
    Show,
    Stop,
    With,
)

logger = logging.getLogger(__name__)


def _join(values: List[str], sep: str = " ") -> Optional[str]:
    return sep.join(values) if values else None


def _dedupe_choice_texts(menu: Menu) -> None:
    """Rename later choices whose text repeats an earlier one in the same menu.

    Choice links are addressed by text, so parsed menus must follow the same
    uniqueness rule the editor keeps.
    """
    seen = set()
    for choice in menu.choices:
        if choice.text in seen:
            new_text = menu.ensure_unique_choice_text(choice.text or "Choice")
            logger.info("menu %s: duplicate choice %r renamed to %r", menu.id, choice.text, new_text)
            choice.text = new_text
        seen.add(choice.text)


class TreeBuilder:
    """Builds the block tree of one label from its AST.

    The field mapping is the reverse of ``NodeFactory.create_ast_node``.
    Statements without a block kind are skipped.
    """

    def __init__(self, ids: Optional[IdGenerator] = None):
        self.ids = ids or IdGenerator()

    def build_from_label(self, label: Label) -> Block:
        root = self._block("label", NodeLink(label.id), {"name": label.name})
        root.children = self._build_body(label.body)
        return root

    def build_block(self, node: AstNode) -> Optional[Block]:
        if isinstance(node, Dialogue):
            return self._block("dialogue", NodeLink(node.id), {
                "speaker": node.speaker,
                "text": node.text,
                "attributes": _join(node.attributes),
            })
        if isinstance(node, Scene):
            return self._block("scene", NodeLink(node.id), {"image": node.image, "layer": node.layer})
        if isinstance(node, Show):
            return self._block("show", NodeLink(node.id), {
                "character": node.image,
                "position": node.at_position,
                "expression": _join(node.attributes),
            })
        if isinstance(node, Hide):
            return self._block("hide", NodeLink(node.id), {"character": node.image})
        if isinstance(node, With):
            return self._block("with", NodeLink(node.id), {"transition": node.transition})
        if isinstance(node, Menu):
            block = self._block("menu", NodeLink(node.id), {"prompt": node.prompt})
            _dedupe_choice_texts(node)
            block.children = [self._build_choice(c, node.id) for c in node.choices]
            return block
        if isinstance(node, Jump):
            return self._block("jump", NodeLink(node.id), {"target": node.target, "expression": node.expression})
        if isinstance(node, Call):
            return self._block("call", NodeLink(node.id), {
                "target": node.target,
                "arguments": _join(node.arguments, ", "),
                "expression": node.expression,
            })
        if isinstance(node, Return):
            return self._block("return", NodeLink(node.id), {"value": node.value})
        if isinstance(node, If):
            return self._build_if(node)
        if isinstance(node, Python):
            return self._block("python", NodeLink(node.id), {"code": node.code})
        if isinstance(node, SetVar):
            return self._block("set", NodeLink(node.id), {
                "variable": node.variable,
                "operator": node.operator,
                "value": node.value,
            })
        if isinstance(node, Play):
            if node.channel == "sound":
                return self._block("play-sound", NodeLink(node.id), {"file": node.file, "volume": node.volume})
            return self._block("play-music", NodeLink(node.id), {
                "file": node.file,
                "fadein": node.fade_in,
                "loop": True if node.loop is None else node.loop,
                "volume": node.volume,
            })
        if isinstance(node, Stop):
            return self._block("stop-music", NodeLink(node.id), {"fadeout": node.fade_out})
        return None

    def _build_choice(self, choice: MenuChoice, menu_id: str) -> Block:
        block = self._block("choice", ChoiceLink(menu_id, choice.text), {
            "text": choice.text,
            "condition": choice.condition,
        })
        block.children = self._build_body(choice.body)
        return block

    def _build_if(self, node: If) -> Block:
        first = node.branches[0] if node.branches else IfBranch(condition="True")
        block = self._block("if", NodeLink(node.id), {"condition": first.condition})
        # 첫 분기의 본문이 if 블록의 자식이 되고, 나머지 분기는 그 뒤에 붙는다
        children = self._build_body(first.body)
        for i, branch in enumerate(node.branches[1:], start=1):
            kind = "else" if branch.condition is None else "elif"
            branch_block = self._block(kind, BranchLink(node.id, i), {"condition": branch.condition})
            branch_block.children = self._build_body(branch.body)
            children.append(branch_block)
        block.children = children
        return block

    def _build_body(self, body: List[AstNode]) -> List[Block]:
        blocks = []
        for node in body:
            block = self.build_block(node)
            if block is not None:
                blocks.append(block)
        return blocks

    def _block(self, kind: str, link, values: Dict[str, Any]) -> Block:
        fields = default_fields(kind)
        for f in fields:
            if f.name in values and values[f.name] is not None:
                f.value = values[f.name]
        return Block(
            id=self.ids.next_block_id(),
            kind=kind,
            fields=fields,
            link=link,
            children=[] if is_container_kind(kind) else None,
        )
