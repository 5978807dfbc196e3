"""
Property sync

Maps one block field edit onto the paired AST entity. ``FIELD_RULES`` lists,
per block kind, which AST attribute a field drives and how its value is
converted. Fields not listed are accepted without touching the AST.
"""

import logging
from typing import Any, Callable, Dict, Tuple

from addressing import find_ast_node, find_branch, find_choice
from blocks import Block, BranchLink, ChoiceLink, NodeLink
from edits import EditLog
from errors import NotFoundError, StructuralError
from node_factory import set_operator, split_arguments, split_attributes, text_or, to_bool, to_number
from script_ast import If, Label

logger = logging.getLogger(__name__)

Converter = Callable[[str, Any], Any]


def _text(name: str, value: Any) -> str:
    return text_or(value)


def _optional_text(name: str, value: Any):
    return text_or(value, None)


def _condition(name: str, value: Any) -> str:
    return text_or(value, "True")


def _attributes(name: str, value: Any):
    return split_attributes(value)


def _arguments(name: str, value: Any):
    return split_arguments(value)


def _boolean(name: str, value: Any) -> bool:
    return to_bool(value)


def _loop(name: str, value: Any) -> bool:
    return to_bool(value, True)


def _operator(name: str, value: Any) -> str:
    return set_operator(value)


FIELD_RULES: Dict[str, Dict[str, Tuple[str, Converter]]] = {
    "dialogue": {
        "speaker": ("speaker", _optional_text),
        "text": ("text", _text),
        "attributes": ("attributes", _attributes),
    },
    "scene": {
        "image": ("image", _text),
        "layer": ("layer", _optional_text),
    },
    "show": {
        "character": ("image", _text),
        "position": ("at_position", _optional_text),
        "expression": ("attributes", _attributes),
    },
    "hide": {
        "character": ("image", _text),
    },
    "with": {
        "transition": ("transition", _text),
    },
    "menu": {
        "prompt": ("prompt", _optional_text),
    },
    "choice": {
        "text": ("text", _text),
        "condition": ("condition", _optional_text),
    },
    "jump": {
        "target": ("target", _text),
        "expression": ("expression", _boolean),
    },
    "call": {
        "target": ("target", _text),
        "arguments": ("arguments", _arguments),
        "expression": ("expression", _boolean),
    },
    "return": {
        "value": ("value", _optional_text),
    },
    "if": {
        "condition": ("condition", _condition),
    },
    "elif": {
        "condition": ("condition", _condition),
    },
    "python": {
        "code": ("code", _text),
    },
    "set": {
        "variable": ("variable", _text),
        "operator": ("operator", _operator),
        "value": ("value", _text),
    },
    "play-music": {
        "file": ("file", _text),
        "fadein": ("fade_in", to_number),
        "loop": ("loop", _loop),
        "volume": ("volume", to_number),
    },
    "stop-music": {
        "fadeout": ("fade_out", to_number),
    },
    "play-sound": {
        "file": ("file", _text),
        "volume": ("volume", to_number),
    },
}


def sync_field(block: Block, field_name: str, value: Any, label: Label, log: EditLog) -> None:
    """Apply the AST side of a field edit on ``block`` through ``log``.

    Raises ``NotFoundError`` when the paired entity is missing and
    ``StructuralError`` / ``InvalidValueError`` when the value cannot be
    mirrored; the caller rolls the log back in that case.
    """
    rule = FIELD_RULES.get(block.kind, {}).get(field_name)
    if rule is None:
        return
    attr, convert = rule

    if block.kind == "choice":
        _sync_choice(block, attr, convert(field_name, value), label, log)
        return

    target = _target_for(block, label)
    log.assign(target, attr, convert(field_name, value))
    logger.debug("synced %s.%s -> %s", block.kind, field_name, block.linked_node_id)


def _target_for(block: Block, label: Label):
    link = block.link
    if isinstance(link, BranchLink):
        found = find_branch(label, link)
        if found is None:
            raise NotFoundError("if_not_found", id=str(link))
        return found[1]
    if not isinstance(link, NodeLink):
        raise NotFoundError("ast_node_not_found", id=block.linked_node_id)
    node = find_ast_node(label, link.node_id)
    if node is None:
        raise NotFoundError("ast_node_not_found", id=link.node_id)
    if block.kind == "if":
        if not isinstance(node, If) or not node.branches:
            raise NotFoundError("if_not_found", id=link.node_id)
        return node.branches[0]
    return node


def _sync_choice(block: Block, attr: str, value: Any, label: Label, log: EditLog) -> None:
    link = block.link
    if not isinstance(link, ChoiceLink):
        raise NotFoundError("menu_not_found", id=block.linked_node_id)
    # 링크에 남아 있는 이전 텍스트로 찾는다
    found = find_choice(label, link)
    if found is None:
        raise NotFoundError("choice_not_found", text=link.text)
    menu, choice = found
    if attr != "text":
        log.assign(choice, attr, value)
        return
    other = menu.find_choice(value)
    if other is not None and other is not choice:
        raise StructuralError("duplicate_choice_text", text=value)
    log.assign(choice, "text", value)
    log.assign(block, "link", ChoiceLink(link.owner_id, value))
