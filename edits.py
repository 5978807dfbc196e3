"""
Reversible edits

Every mutation an operation makes to the block tree or the AST goes through an
``EditLog`` as a small command object with an inverse. ``atomic()`` undoes the
recorded commands in reverse order when an exception escapes, so a failed
operation leaves both trees exactly as they were.
"""

import logging
from contextlib import contextmanager
from typing import Any, List

logger = logging.getLogger(__name__)


class Insert:
    def __init__(self, items: list, index: int, item: Any):
        self.items = items
        self.index = index
        self.item = item

    def apply(self) -> None:
        self.items.insert(self.index, self.item)

    def revert(self) -> None:
        self.items.pop(self.index)


class Remove:
    def __init__(self, items: list, index: int):
        self.items = items
        self.index = index
        self.item = items[index]

    def apply(self) -> None:
        self.items.pop(self.index)

    def revert(self) -> None:
        self.items.insert(self.index, self.item)


class Assign:
    def __init__(self, obj: Any, attr: str, value: Any):
        self.obj = obj
        self.attr = attr
        self.value = value
        self.old = getattr(obj, attr)

    def apply(self) -> None:
        setattr(self.obj, self.attr, self.value)

    def revert(self) -> None:
        setattr(self.obj, self.attr, self.old)


class EditLog:
    def __init__(self):
        self._done: List[Any] = []

    def __len__(self) -> int:
        return len(self._done)

    def run(self, command) -> None:
        command.apply()
        self._done.append(command)

    def insert(self, items: list, index: int, item: Any) -> int:
        index = clamp(index, 0, len(items))
        self.run(Insert(items, index, item))
        return index

    def remove(self, items: list, index: int) -> Any:
        command = Remove(items, index)
        self.run(command)
        return command.item

    def remove_item(self, items: list, item: Any) -> int:
        for i, existing in enumerate(items):
            if existing is item:
                self.remove(items, i)
                return i
        return -1

    def assign(self, obj: Any, attr: str, value: Any) -> None:
        self.run(Assign(obj, attr, value))

    def rollback(self) -> None:
        while self._done:
            self._done.pop().revert()


@contextmanager
def atomic():
    log = EditLog()
    try:
        yield log
    except Exception as e:
        if log:
            logger.warning("rolling back %d edits: %s", len(log), e)
        log.rollback()
        raise


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))
