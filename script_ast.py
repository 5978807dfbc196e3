from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Union


@dataclass(eq=False)
class AstNode:
    id: str
    line: int = 0
    raw: str = ""

    type: ClassVar[str] = "node"


@dataclass(eq=False)
class Dialogue(AstNode):
    speaker: Optional[str] = None
    text: str = ""
    attributes: List[str] = field(default_factory=list)

    type: ClassVar[str] = "dialogue"


@dataclass(eq=False)
class Scene(AstNode):
    image: str = ""
    layer: Optional[str] = None

    type: ClassVar[str] = "scene"


@dataclass(eq=False)
class Show(AstNode):
    image: str = ""
    attributes: List[str] = field(default_factory=list)
    at_position: Optional[str] = None

    type: ClassVar[str] = "show"


@dataclass(eq=False)
class Hide(AstNode):
    image: str = ""

    type: ClassVar[str] = "hide"


@dataclass(eq=False)
class With(AstNode):
    transition: str = "dissolve"

    type: ClassVar[str] = "with"


@dataclass(eq=False)
class MenuChoice:
    text: str
    condition: Optional[str] = None
    body: List[AstNode] = field(default_factory=list)


@dataclass(eq=False)
class Menu(AstNode):
    prompt: Optional[str] = None
    choices: List[MenuChoice] = field(default_factory=list)

    type: ClassVar[str] = "menu"

    def find_choice(self, text: str) -> Optional[MenuChoice]:
        for choice in self.choices:
            if choice.text == text:
                return choice
        return None

    def ensure_unique_choice_text(self, base: str = "Choice") -> str:
        i = 1
        text = f"{base}"
        texts = {c.text for c in self.choices}
        if text not in texts:
            return text
        while True:
            text = f"{base}{i}"
            if text not in texts:
                return text
            i += 1


@dataclass(eq=False)
class Jump(AstNode):
    target: str = ""
    expression: bool = False

    type: ClassVar[str] = "jump"


@dataclass(eq=False)
class Call(AstNode):
    target: str = ""
    arguments: List[str] = field(default_factory=list)
    expression: bool = False

    type: ClassVar[str] = "call"


@dataclass(eq=False)
class Return(AstNode):
    value: Optional[str] = None

    type: ClassVar[str] = "return"


@dataclass(eq=False)
class IfBranch:
    condition: Optional[str]  # None 이면 else 분기
    body: List[AstNode] = field(default_factory=list)


@dataclass(eq=False)
class If(AstNode):
    branches: List[IfBranch] = field(default_factory=list)

    type: ClassVar[str] = "if"

    def has_else(self) -> bool:
        return bool(self.branches) and self.branches[-1].condition is None


@dataclass(eq=False)
class Python(AstNode):
    code: str = ""

    type: ClassVar[str] = "python"


@dataclass(eq=False)
class SetVar(AstNode):
    variable: str = ""
    operator: str = "="
    value: str = ""

    type: ClassVar[str] = "set"


@dataclass(eq=False)
class Play(AstNode):
    channel: str = "music"  # 'music', 'sound', 'voice'
    file: str = ""
    fade_in: Optional[float] = None
    loop: Optional[bool] = None
    volume: Optional[float] = None

    type: ClassVar[str] = "play"


@dataclass(eq=False)
class Stop(AstNode):
    channel: str = "music"
    fade_out: Optional[float] = None

    type: ClassVar[str] = "stop"


@dataclass(eq=False)
class Label(AstNode):
    name: str = ""
    parameters: List[str] = field(default_factory=list)
    body: List[AstNode] = field(default_factory=list)

    type: ClassVar[str] = "label"


# 블록 하나가 가리키는 AST 쪽 대상: 노드, 메뉴 선택지, if 분기
Entity = Union[AstNode, MenuChoice, IfBranch]

SET_OPERATORS = ("=", "+=", "-=", "*=", "/=")


@dataclass
class Script:
    labels: List[Label] = field(default_factory=list)
    file_path: str = ""

    type: ClassVar[str] = "script"

    def get_label(self, name: str) -> Optional[Label]:
        for label in self.labels:
            if label.name == name:
                return label
        return None

    def ensure_unique_label_name(self, base: str = "label") -> str:
        i = 1
        name = f"{base}"
        names = {lb.name for lb in self.labels}
        if name not in names:
            return name
        while True:
            name = f"{base}{i}"
            if name not in names:
                return name
            i += 1


def child_bodies(node: AstNode) -> List[List[AstNode]]:
    """Statement lists nested directly inside ``node`` (label body, choice and branch bodies)."""
    if isinstance(node, Label):
        return [node.body]
    if isinstance(node, Menu):
        return [c.body for c in node.choices]
    if isinstance(node, If):
        return [b.body for b in node.branches]
    return []
