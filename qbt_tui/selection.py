from typing import List, Optional, Sequence, Tuple

from .models import Torrent


def reanchor(identity: Optional[str], order: Sequence[Torrent]) -> Tuple[int, Optional[str]]:
    """
    Find where the selected torrent went after the list was rebuilt.

    The hash is authoritative, the index follows it. If the torrent is gone
    the selection falls back to the first row; an empty list selects nothing.
    """
    if not order:
        return 0, None
    if identity is not None:
        for index, torrent in enumerate(order):
            if torrent.hash == identity:
                return index, identity
    return 0, order[0].hash


class SelectionTracker:
    """Keeps the cursor on the same torrent across refreshes and re-sorts."""

    def __init__(self):
        self.index = 0
        self.identity: Optional[str] = None
        self._order: List[Torrent] = []

    def __len__(self):
        return len(self._order)

    @property
    def selected(self) -> Optional[Torrent]:
        if not self._order:
            return None
        return self._order[self.index]

    def set_records(self, order: Sequence[Torrent]) -> None:
        self._order = list(order)
        self.index, self.identity = reanchor(self.identity, self._order)

    def select_index(self, index: int) -> None:
        if not self._order:
            self.index, self.identity = 0, None
            return
        self.index = max(0, min(index, len(self._order) - 1))
        self.identity = self._order[self.index].hash

    def move_up(self, count: int = 1) -> None:
        self.select_index(self.index - count)

    def move_down(self, count: int = 1) -> None:
        self.select_index(self.index + count)

    def move_top(self) -> None:
        self.select_index(0)

    def move_bottom(self) -> None:
        self.select_index(len(self._order) - 1)
