from __future__ import annotations

import threading
from typing import List

from digipin import config
from digipin.models import SelectedPlace


class HistoryStore:
    """Most-recent-first list of looked-up places, deduplicated by DigiPIN."""

    def __init__(self, max_items: int = config.HISTORY_SIZE) -> None:
        self.max_items = max_items
        self._items: List[SelectedPlace] = []
        self._lock = threading.Lock()

    def add(self, place: SelectedPlace) -> List[SelectedPlace]:
        with self._lock:
            rest = [p for p in self._items if p.digi_pin != place.digi_pin]
            self._items = [place, *rest][: self.max_items]
            return list(self._items)

    def items(self) -> List[SelectedPlace]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items = []
