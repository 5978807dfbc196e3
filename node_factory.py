import itertools
import uuid
from typing import Any, List, Optional

from blocks import (
    BLOCK_KINDS,
    BRANCH_KINDS,
    Block,
    BranchLink,
    ChoiceLink,
    NodeLink,
    clone_block,
    default_fields,
    is_container_kind,
)
from errors import InvalidValueError, StructuralError
from script_ast import (
    SET_OPERATORS,
    AstNode,
    Call,
    Dialogue,
    Entity,
    Hide,
    If,
    IfBranch,
    Jump,
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


class IdGenerator:
    """Hands out block and AST node ids.

    Each generator owns a namespace, so ids from two generators never collide;
    pass a fixed namespace to get predictable ids in tests.
    """

    def __init__(self, namespace: Optional[str] = None):
        self.namespace = namespace if namespace is not None else uuid.uuid4().hex[:8]
        self._counter = itertools.count(1)

    def _next(self) -> int:
        return next(self._counter)

    def next_block_id(self) -> str:
        return f"block_{self.namespace}_{self._next()}"

    def next_node_id(self, kind: str) -> str:
        return f"{kind}-{self.namespace}-{self._next()}"


# ---------- 값 변환 ----------


def text_or(value: Any, default: Optional[str] = "") -> Optional[str]:
    if value is None:
        return default
    text = str(value)
    return text if text != "" else default


def to_number(name: str, value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidValueError("invalid_number", name=name, value=value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        raise InvalidValueError("invalid_number", name=name, value=value)


def to_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def split_attributes(value: Any) -> List[str]:
    if not value:
        return []
    return str(value).split()


def split_arguments(value: Any) -> List[str]:
    if not value:
        return []
    return [a.strip() for a in str(value).split(",") if a.strip()]


def set_operator(value: Any) -> str:
    op = text_or(value, "=")
    return op if op in SET_OPERATORS else "="


# ---------- 종류별 AST 노드 생성 ----------


def _dialogue(node_id: str, block: Block) -> Dialogue:
    return Dialogue(
        id=node_id,
        speaker=text_or(block.value("speaker"), None),
        text=text_or(block.value("text")),
        attributes=split_attributes(block.value("attributes")),
    )


def _scene(node_id: str, block: Block) -> Scene:
    return Scene(id=node_id, image=text_or(block.value("image")), layer=text_or(block.value("layer"), None))


def _show(node_id: str, block: Block) -> Show:
    return Show(
        id=node_id,
        image=text_or(block.value("character")),
        attributes=split_attributes(block.value("expression")),
        at_position=text_or(block.value("position"), None),
    )


def _hide(node_id: str, block: Block) -> Hide:
    return Hide(id=node_id, image=text_or(block.value("character")))


def _with(node_id: str, block: Block) -> With:
    return With(id=node_id, transition=text_or(block.value("transition"), "dissolve"))


def _menu(node_id: str, block: Block) -> Menu:
    return Menu(id=node_id, prompt=text_or(block.value("prompt"), None))


def _jump(node_id: str, block: Block) -> Jump:
    return Jump(id=node_id, target=text_or(block.value("target")), expression=to_bool(block.value("expression")))


def _call(node_id: str, block: Block) -> Call:
    return Call(
        id=node_id,
        target=text_or(block.value("target")),
        arguments=split_arguments(block.value("arguments")),
        expression=to_bool(block.value("expression")),
    )


def _return(node_id: str, block: Block) -> Return:
    return Return(id=node_id, value=text_or(block.value("value"), None))


def _if(node_id: str, block: Block) -> If:
    return If(id=node_id, branches=[IfBranch(condition=text_or(block.value("condition"), "True"))])


def _python(node_id: str, block: Block) -> Python:
    return Python(id=node_id, code=text_or(block.value("code")))


def _set(node_id: str, block: Block) -> SetVar:
    return SetVar(
        id=node_id,
        variable=text_or(block.value("variable")),
        operator=set_operator(block.value("operator")),
        value=text_or(block.value("value")),
    )


def _play_music(node_id: str, block: Block) -> Play:
    return Play(
        id=node_id,
        channel="music",
        file=text_or(block.value("file")),
        fade_in=to_number("fadein", block.value("fadein")),
        loop=to_bool(block.value("loop"), True),
        volume=to_number("volume", block.value("volume")),
    )


def _stop_music(node_id: str, block: Block) -> Stop:
    return Stop(id=node_id, channel="music", fade_out=to_number("fadeout", block.value("fadeout")))


def _play_sound(node_id: str, block: Block) -> Play:
    return Play(
        id=node_id,
        channel="sound",
        file=text_or(block.value("file")),
        volume=to_number("volume", block.value("volume")),
    )


NODE_BUILDERS = {
    "dialogue": _dialogue,
    "scene": _scene,
    "show": _show,
    "hide": _hide,
    "with": _with,
    "menu": _menu,
    "jump": _jump,
    "call": _call,
    "return": _return,
    "if": _if,
    "python": _python,
    "set": _set,
    "play-music": _play_music,
    "stop-music": _stop_music,
    "play-sound": _play_sound,
}

# AST 노드 종류 이름 (id 접두어)
NODE_PREFIXES = {"play-music": "play", "play-sound": "play", "stop-music": "stop"}


class NodeFactory:
    def __init__(self, ids: Optional[IdGenerator] = None):
        self.ids = ids or IdGenerator()

    def create_block(self, kind: str) -> Block:
        if kind not in BLOCK_KINDS:
            raise StructuralError("unknown_block_kind", kind=kind)
        return Block(
            id=self.ids.next_block_id(),
            kind=kind,
            fields=default_fields(kind),
            children=[] if is_container_kind(kind) else None,
        )

    def create_ast_node(self, kind: str, block: Block) -> Optional[AstNode]:
        """New AST node for ``block``, or None for kinds without their own node.

        ``comment``, ``label``, ``choice``, ``elif`` and ``else`` have no
        standalone node; the last three live in their owner's array.
        """
        builder = NODE_BUILDERS.get(kind)
        if builder is None:
            return None
        return builder(self.ids.next_node_id(NODE_PREFIXES.get(kind, kind)), block)

    def create_choice(self, block: Block) -> MenuChoice:
        return MenuChoice(text=text_or(block.value("text")), condition=text_or(block.value("condition"), None))

    def create_branch(self, block: Block) -> IfBranch:
        if block.kind == "else":
            return IfBranch(condition=None)
        return IfBranch(condition=text_or(block.value("condition"), "True"))

    def clone_with_new_ids(self, block: Block) -> Block:
        """Deep copy of a block subtree with fresh block ids and no links."""
        copied = clone_block(block)
        for b in copied.walk():
            b.id = self.ids.next_block_id()
            b.link = None
        return copied

    def build_subtree(self, block: Block, owner_id: Optional[str] = None, branch_index: int = 0) -> Optional[Entity]:
        """Build fresh AST entities for a whole block subtree and link every block.

        Choices need the id of the menu that will own them and elif/else blocks
        the id of the if node and their branch index.
        """
        if block.kind == "comment":
            block.link = None
            return None
        if block.kind == "label":
            raise StructuralError("label_not_insertable")
        if block.kind == "choice":
            choice = self.create_choice(block)
            choice.body = self._build_body(block)
            block.link = ChoiceLink(owner_id or "", choice.text)
            return choice
        if block.kind in BRANCH_KINDS:
            branch = self.create_branch(block)
            branch.body = self._build_body(block)
            block.link = BranchLink(owner_id or "", branch_index)
            return branch

        node = self.create_ast_node(block.kind, block)
        if node is None:
            raise StructuralError("unknown_block_kind", kind=block.kind)
        block.link = NodeLink(node.id)
        if isinstance(node, Menu):
            for child in block.children or []:
                if child.kind != "choice":
                    raise StructuralError("menu_needs_choice", kind=child.kind)
                node.choices.append(self.build_subtree(child, owner_id=node.id))
        elif isinstance(node, If):
            for child in block.children or []:
                if child.kind in BRANCH_KINDS:
                    if node.has_else():
                        raise StructuralError("branch_after_else")
                    node.branches.append(self.build_subtree(child, owner_id=node.id, branch_index=len(node.branches)))
                else:
                    entity = self.build_subtree(child)
                    if entity is not None:
                        node.branches[0].body.append(entity)
        return node

    def _build_body(self, parent: Block) -> List[AstNode]:
        body: List[AstNode] = []
        for child in parent.children or []:
            if child.kind == "choice":
                raise StructuralError("choice_needs_menu", kind=parent.kind)
            if child.kind in BRANCH_KINDS:
                raise StructuralError("branch_needs_if", kind=child.kind, parent=parent.kind)
            entity = self.build_subtree(child)
            if entity is not None:
                body.append(entity)
        return body
