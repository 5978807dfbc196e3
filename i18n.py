import os

LANG_FILE = os.path.join(os.path.dirname(__file__), 'language.txt')


def _load_language() -> str:
    try:
        with open(LANG_FILE, encoding='utf-8') as f:
            return f.read().strip() or 'en'
    except OSError:
        return 'en'


LANG = _load_language()

_STRINGS = {
    'en': {
        'label_not_found': 'Label not found: {name}',
        'parent_not_found': 'Parent block not found: {id}',
        'block_not_found': 'Block not found: {id}',
        'new_parent_not_found': 'New parent not found: {id}',
        'field_not_found': 'Field not found: {name}',
        'ast_node_not_found': 'AST node not found: {id}',
        'choice_not_found': 'Choice not found in menu: {text}',
        'menu_not_found': 'Menu not found for choice: {id}',
        'if_not_found': 'If node not found for branch: {id}',
        'branch_not_found': 'Branch not found: {index}',
        'unknown_block_kind': 'Unknown block kind: {kind}',
        'choice_needs_menu': "A choice can only be placed inside a menu, not '{kind}'.",
        'menu_needs_choice': "A menu can only contain choices, not '{kind}'.",
        'branch_needs_if': "'{kind}' can only be added to an if block, not '{parent}'.",
        'branch_after_else': 'No branch can follow an else branch.',
        'branch_not_movable': "'{kind}' blocks cannot be moved.",
        'label_not_insertable': 'A label cannot be placed inside another block.',
        'root_not_removable': 'The label root cannot be removed or moved.',
        'move_into_self': 'A block cannot be moved into itself.',
        'duplicate_choice_text': 'Another choice already uses the text: {text}',
        'not_a_label_root': 'Block is not a label root: {id}',
        'clipboard_empty': 'Clipboard is empty',
        'invalid_number': "Invalid number for '{name}': {value}",
    },
    'korean': {
        'label_not_found': '레이블을 찾을 수 없습니다: {name}',
        'parent_not_found': '부모 블록을 찾을 수 없습니다: {id}',
        'block_not_found': '블록을 찾을 수 없습니다: {id}',
        'new_parent_not_found': '새 부모 블록을 찾을 수 없습니다: {id}',
        'field_not_found': '필드를 찾을 수 없습니다: {name}',
        'ast_node_not_found': 'AST 노드를 찾을 수 없습니다: {id}',
        'choice_not_found': '메뉴에서 선택지를 찾을 수 없습니다: {text}',
        'menu_not_found': '선택지의 메뉴를 찾을 수 없습니다: {id}',
        'if_not_found': '분기의 if 노드를 찾을 수 없습니다: {id}',
        'branch_not_found': '분기를 찾을 수 없습니다: {index}',
        'unknown_block_kind': '알 수 없는 블록 종류: {kind}',
        'choice_needs_menu': "선택지는 메뉴 안에만 놓을 수 있습니다 ('{kind}' 불가).",
        'menu_needs_choice': "메뉴에는 선택지만 넣을 수 있습니다 ('{kind}' 불가).",
        'branch_needs_if': "'{kind}' 블록은 if 블록에만 추가할 수 있습니다 ('{parent}' 불가).",
        'branch_after_else': 'else 분기 뒤에는 분기를 추가할 수 없습니다.',
        'branch_not_movable': "'{kind}' 블록은 이동할 수 없습니다.",
        'label_not_insertable': '레이블은 다른 블록 안에 넣을 수 없습니다.',
        'root_not_removable': '레이블 루트는 삭제하거나 이동할 수 없습니다.',
        'move_into_self': '블록을 자기 자신 안으로 이동할 수 없습니다.',
        'duplicate_choice_text': '같은 텍스트의 선택지가 이미 있습니다: {text}',
        'not_a_label_root': '레이블 루트 블록이 아닙니다: {id}',
        'clipboard_empty': '클립보드가 비어 있습니다',
        'invalid_number': "'{name}' 값이 올바른 숫자가 아닙니다: {value}",
    },
}


def set_language(lang: str) -> None:
    global LANG
    LANG = lang if lang in _STRINGS else 'en'


def tr(key: str, **kwargs) -> str:
    table = _STRINGS.get(LANG, _STRINGS['en'])
    text = table.get(key, key)
    return text.format(**kwargs)
