"""
Block tree model

Blocks are the visual counterpart of the script AST. Each block carries a
``link`` to the AST entity it represents:

- ``NodeLink``   a freestanding AST node (dialogue, menu, if, ...)
- ``ChoiceLink`` a choice record inside a menu node, addressed by its text
- ``BranchLink`` an elif/else branch inside an if node, addressed by index
- ``None``       comments, which have no AST entity

The string form of a link (``linked_node_id``) follows the editor convention
``{owner}_choice_{text}`` / ``{owner}_branch_{index}``.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


CHOICE_DELIMITER = "_choice_"
BRANCH_DELIMITER = "_branch_"

CATEGORIES = {
    "scene": "scene",
    "show": "scene",
    "hide": "scene",
    "with": "scene",
    "dialogue": "dialogue",
    "label": "flow",
    "menu": "flow",
    "choice": "flow",
    "jump": "flow",
    "call": "flow",
    "return": "flow",
    "if": "flow",
    "elif": "flow",
    "else": "flow",
    "play-music": "audio",
    "stop-music": "audio",
    "play-sound": "audio",
    "python": "advanced",
    "set": "advanced",
    "comment": "advanced",
}

BLOCK_KINDS = tuple(CATEGORIES.keys())
CONTAINER_KINDS = ("label", "menu", "choice", "if", "elif", "else")
BRANCH_KINDS = ("elif", "else")


@dataclass(frozen=True)
class NodeLink:
    node_id: str

    def __str__(self) -> str:
        return self.node_id


@dataclass(frozen=True)
class ChoiceLink:
    owner_id: str
    text: str

    def __str__(self) -> str:
        return f"{self.owner_id}{CHOICE_DELIMITER}{self.text}"


@dataclass(frozen=True)
class BranchLink:
    owner_id: str
    index: int

    def __str__(self) -> str:
        return f"{self.owner_id}{BRANCH_DELIMITER}{self.index}"


Link = Union[NodeLink, ChoiceLink, BranchLink]


def parse_link(value: str) -> Optional[Link]:
    """Read the string form of a link back into its variant.

    The owner id never contains a delimiter, so the first ``_choice_`` splits
    owner from text even when the choice text itself contains the delimiter.
    """
    if not value:
        return None
    owner, sep, text = value.partition(CHOICE_DELIMITER)
    if sep and owner:
        return ChoiceLink(owner, text)
    owner, sep, index = value.rpartition(BRANCH_DELIMITER)
    if sep and owner and index.isdigit():
        return BranchLink(owner, int(index))
    return NodeLink(value)


@dataclass
class Field:
    name: str
    type: str
    value: Any = None
    required: bool = False


# 종류별 기본 필드: (이름, 타입, 기본값, 필수 여부)
DEFAULT_FIELDS: Dict[str, List[Tuple[str, str, Any, bool]]] = {
    "dialogue": [
        ("speaker", "character", None, False),
        ("text", "text", "", True),
        ("attributes", "text", None, False),
    ],
    "scene": [
        ("image", "image", "", True),
        ("layer", "text", None, False),
    ],
    "show": [
        ("character", "character", "", True),
        ("position", "text", "center", False),
        ("expression", "expression", None, False),
    ],
    "hide": [
        ("character", "character", "", True),
    ],
    "with": [
        ("transition", "text", "dissolve", True),
    ],
    "label": [
        ("name", "text", "", True),
    ],
    "menu": [
        ("prompt", "text", None, False),
    ],
    "choice": [
        ("text", "text", "", True),
        ("condition", "expression", None, False),
    ],
    "jump": [
        ("target", "label", "", True),
        ("expression", "boolean", False, False),
    ],
    "call": [
        ("target", "label", "", True),
        ("arguments", "text", None, False),
        ("expression", "boolean", False, False),
    ],
    "return": [
        ("value", "expression", None, False),
    ],
    "if": [
        ("condition", "expression", "", True),
    ],
    "elif": [
        ("condition", "expression", "", True),
    ],
    "else": [],
    "python": [
        ("code", "text", "", True),
    ],
    "set": [
        ("variable", "text", "", True),
        ("operator", "text", "=", True),
        ("value", "expression", "", True),
    ],
    "play-music": [
        ("file", "audio", "", True),
        ("fadein", "number", None, False),
        ("loop", "boolean", True, False),
        ("volume", "number", None, False),
    ],
    "stop-music": [
        ("fadeout", "number", None, False),
    ],
    "play-sound": [
        ("file", "audio", "", True),
        ("volume", "number", None, False),
    ],
    "comment": [
        ("text", "text", "", False),
    ],
}


def default_fields(kind: str) -> List[Field]:
    return [Field(name, ftype, value, required) for name, ftype, value, required in DEFAULT_FIELDS.get(kind, [])]


def is_container_kind(kind: str) -> bool:
    return kind in CONTAINER_KINDS


@dataclass(eq=False)
class Block:
    id: str
    kind: str
    fields: List[Field] = field(default_factory=list)
    link: Optional[Link] = None
    children: Optional[List["Block"]] = None

    @property
    def category(self) -> str:
        return CATEGORIES.get(self.kind, "advanced")

    @property
    def linked_node_id(self) -> str:
        return str(self.link) if self.link is not None else ""

    @property
    def is_container(self) -> bool:
        return self.children is not None

    def get_field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def value(self, name: str, default: Any = None) -> Any:
        f = self.get_field(name)
        if f is None:
            return default
        return f.value

    def set_value(self, name: str, value: Any) -> None:
        f = self.get_field(name)
        if f is not None:
            f.value = value

    def walk(self):
        yield self
        for child in self.children or []:
            yield from child.walk()


@dataclass(frozen=True)
class Clipboard:
    blocks: Tuple[Block, ...]
    source_label: str
    timestamp: float


def clone_block(block: Block) -> Block:
    """Deep copy of a block subtree sharing no mutable state with the original."""
    return copy.deepcopy(block)
