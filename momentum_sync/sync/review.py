"""In-memory queue of workouts awaiting review"""
import threading
from typing import Iterable, List, Optional

from ..core.models import WorkoutReviewItem


class ReviewQueue:
    """
    Pending review items for the lifetime of the process.

    All mutations go through one lock so sync (append) and user decisions
    (remove) can come from different threads.
    """

    def __init__(self):
        self._items: List[WorkoutReviewItem] = []
        self._lock = threading.Lock()

    def extend(self, items: Iterable[WorkoutReviewItem]) -> int:
        items = list(items)
        with self._lock:
            self._items.extend(items)
        return len(items)

    def replace(self, items: Iterable[WorkoutReviewItem]) -> None:
        items = list(items)
        with self._lock:
            self._items = items

    def get(self, item_id: str) -> Optional[WorkoutReviewItem]:
        with self._lock:
            for item in self._items:
                if item.id == item_id:
                    return item
        return None

    def remove(self, item_id: str) -> Optional[WorkoutReviewItem]:
        """Remove and return the item with this id, None if absent"""
        with self._lock:
            for index, item in enumerate(self._items):
                if item.id == item_id:
                    return self._items.pop(index)
        return None

    def snapshot(self) -> List[WorkoutReviewItem]:
        with self._lock:
            return list(self._items)

    def sorted_for_display(self) -> List[WorkoutReviewItem]:
        """Newest workout first"""
        return sorted(self.snapshot(), key=lambda item: item.date, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __bool__(self) -> bool:
        return len(self) > 0
