from __future__ import annotations


class Navigator:
    """Current question index, kept within [0, total - 1].

    Out-of-range moves are ignored rather than raised; every move method
    returns True only when the index actually changed.
    """

    def __init__(self, total: int) -> None:
        if total < 1:
            raise ValueError("Navigator needs at least one question")
        self._total = total
        self._index = 0

    def current(self) -> int:
        return self._index

    def total(self) -> int:
        return self._total

    def go_to(self, index: int) -> bool:
        if not 0 <= index < self._total or index == self._index:
            return False
        self._index = index
        return True

    def next(self) -> bool:
        return self.go_to(self._index + 1)

    def previous(self) -> bool:
        return self.go_to(self._index - 1)

    def is_first(self) -> bool:
        return self._index == 0

    def is_last(self) -> bool:
        return self._index == self._total - 1
