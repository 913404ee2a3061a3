"""Completion tracking for the plan's setup checklist.

Completion marks are local state: the backend never sees or regenerates them.
Keys are positional indices by default, so a refinement that reorders or
resizes the checklist leaves old marks pointing at whatever item now sits at
that index. :class:`ContentHashKeying` keys items by their text instead; which
behaviour the product wants is still undecided, hence the strategy seam.
"""

from __future__ import annotations

import hashlib
from typing import Hashable, List, Protocol, Sequence, Set

from .errors import InvalidIndexError
from .schemas import ChecklistItemView


class ChecklistKeying(Protocol):
    def key(self, items: Sequence[str], index: int) -> Hashable: ...


class IndexKeying:
    """Key a checklist item by its position."""

    def key(self, items: Sequence[str], index: int) -> Hashable:
        return index


class ContentHashKeying:
    """Key a checklist item by a hash of its normalised text."""

    def key(self, items: Sequence[str], index: int) -> Hashable:
        normalised = " ".join(items[index].split()).lower()
        return hashlib.sha1(normalised.encode("utf-8")).hexdigest()


class ChecklistProgress:
    """Set of completed checklist steps behind a swappable keying strategy."""

    def __init__(self, keying: ChecklistKeying | None = None) -> None:
        self._keying = keying or IndexKeying()
        self._completed: Set[Hashable] = set()

    def toggle(self, items: Sequence[str], index: int) -> bool:
        """Flip the completion mark of ``items[index]`` and return the new value."""

        if index < 0 or index >= len(items):
            raise InvalidIndexError(f"checklist has no step {index}")
        key = self._keying.key(items, index)
        if key in self._completed:
            self._completed.discard(key)
            return False
        self._completed.add(key)
        return True

    def is_completed(self, items: Sequence[str], index: int) -> bool:
        return self._keying.key(items, index) in self._completed

    def view(self, items: Sequence[str]) -> List[ChecklistItemView]:
        return [
            ChecklistItemView(index=index, text=text, completed=self.is_completed(items, index))
            for index, text in enumerate(items)
        ]

    def clear(self) -> None:
        self._completed.clear()
