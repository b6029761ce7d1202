from collections import deque
from typing import Deque, Generic, List, Optional, TypeVar

from app.config.settings import settings

T = TypeVar("T")


class History(Generic[T]):
    """Bounded undo/redo stacks of whole-state snapshots."""

    def __init__(self, limit: int = settings.HISTORY_LIMIT):
        self._past: Deque[T] = deque(maxlen=limit)
        self._future: List[T] = []

    @property
    def can_undo(self) -> bool:
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    def record(self, previous: T, current: T) -> bool:
        """Remember `previous` before moving to `current`; no-op if unchanged."""
        if previous == current:
            return False
        self._past.append(previous)
        self._future.clear()
        return True

    def undo(self, current: T) -> Optional[T]:
        if not self._past:
            return None
        self._future.append(current)
        return self._past.pop()

    def redo(self, current: T) -> Optional[T]:
        if not self._future:
            return None
        self._past.append(current)
        return self._future.pop()

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
