"""
Responsive column layout for the torrent table.

Columns are admitted by priority while their minimum widths fit, the spare
width is shared out by flex-grow, and whatever clamping to max widths leaves
over goes to the single unbounded column (the name column). Text is measured
in terminal cells, so wide characters are truncated correctly.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from rich.cells import cell_len, set_cell_size


ELLIPSIS = "..."
SEPARATOR = " "


@dataclass(frozen=True)
class ColumnDeclaration:
    key: str
    title: str
    min_width: int
    max_width: int = 0  # 0 = unbounded
    flex_grow: float = 0.0
    priority: int = 1  # 1 = kept longest when space is scarce


@dataclass(frozen=True)
class Column:
    declaration: ColumnDeclaration
    width: int

    @property
    def key(self) -> str:
        return self.declaration.key

    @property
    def title(self) -> str:
        return self.declaration.title


# Minimum widths leave room for the title plus a sort arrow, e.g. "Progress ↑"
ALL_COLUMNS = [
    ColumnDeclaration("name", "Name", 20, 0, 0.6, 1),
    ColumnDeclaration("size", "Size", 8, 12, 0.0, 3),
    ColumnDeclaration("progress", "Progress", 10, 13, 0.0, 2),
    ColumnDeclaration("status", "Status", 8, 15, 0.1, 2),
    ColumnDeclaration("down", "Down", 6, 15, 0.1, 3),
    ColumnDeclaration("up", "Up", 4, 15, 0.1, 4),
    ColumnDeclaration("seeds", "Seeds", 7, 12, 0.05, 4),
    ColumnDeclaration("peers", "Peers", 7, 12, 0.05, 5),
    ColumnDeclaration("ratio", "Ratio", 7, 10, 0.0, 5),
    ColumnDeclaration("eta", "ETA", 5, 15, 0.05, 6),
    ColumnDeclaration("added_on", "Added", 7, 20, 0.05, 7),
    ColumnDeclaration("category", "Category", 10, 20, 0.1, 8),
    ColumnDeclaration("tags", "Tags", 6, 25, 0.1, 9),
    ColumnDeclaration("tracker", "Tracker", 9, 25, 0.1, 10),
]

COLUMN_KEYS = [c.key for c in ALL_COLUMNS]

DEFAULT_VISIBLE_COLUMNS = [
    "name", "size", "progress", "status", "down", "up", "seeds", "peers", "ratio",
]


def _resolve(declarations: Iterable[ColumnDeclaration], visible_keys: Iterable[str]) -> List[ColumnDeclaration]:
    by_key = {d.key: d for d in declarations}
    resolved = []
    seen = set()
    for key in visible_keys:
        if key in by_key and key not in seen:
            resolved.append(by_key[key])
            seen.add(key)
    return resolved


def layout(
    declarations: Iterable[ColumnDeclaration],
    visible_keys: Iterable[str],
    available_width: int,
) -> List[Column]:
    """
    Assign a width to each visible column that fits in ``available_width``.

    Columns that do not fit are dropped, never shrunk below their minimum.
    Admitted columns keep the order of ``visible_keys``. When not even the
    most important column fits, it is returned alone at its minimum width.
    """
    selected = _resolve(declarations, visible_keys)
    if not selected:
        return []

    usable = available_width - (len(selected) - 1) * len(SEPARATOR)
    by_priority = sorted(selected, key=lambda d: d.priority)

    admitted = []
    total_min = 0
    for declaration in by_priority:
        if total_min + declaration.min_width <= usable:
            admitted.append(declaration)
            total_min += declaration.min_width

    if not admitted:
        top = by_priority[0]
        return [Column(top, top.min_width)]

    remaining = usable - total_min
    total_flex = sum(d.flex_grow for d in admitted)
    leftover = remaining
    widths: Dict[str, int] = {}

    for declaration in admitted:
        width = declaration.min_width
        if total_flex > 0 and remaining > 0:
            grow = int(remaining * (declaration.flex_grow / total_flex))
            target = declaration.min_width + grow
            if declaration.max_width and target > declaration.max_width:
                width = max(declaration.max_width, declaration.min_width)
            else:
                width = target
            leftover -= width - declaration.min_width
        widths[declaration.key] = width

    # Reclaimed width goes to one unbounded column only
    if leftover > 0:
        for declaration in admitted:
            if declaration.max_width == 0:
                widths[declaration.key] += leftover
                break

    return [Column(d, widths[d.key]) for d in selected if d.key in widths]


def truncate(text: str, width: int) -> str:
    """
    Cut ``text`` to at most ``width`` terminal cells.

    An ellipsis marks the cut when there is room for it; at three cells or
    fewer the text is chopped without one.
    """
    if width <= 0:
        return ""
    if cell_len(text) <= width:
        return text
    if width <= len(ELLIPSIS):
        return set_cell_size(text, width)
    return set_cell_size(text, width - len(ELLIPSIS)) + ELLIPSIS


def fit(text: str, width: int, align: str = "left") -> str:
    """Truncate and pad ``text`` to exactly ``width`` cells."""
    text = truncate(text, width)
    padding = " " * max(0, width - cell_len(text))
    if align == "right":
        return padding + text
    return text + padding


def header_cell(title: str, width: int, indicator: str = "") -> str:
    """Render a column title, keeping the sort indicator when truncating."""
    if not indicator:
        return fit(title, width)
    full = title + indicator
    if cell_len(full) <= width:
        return fit(full, width)
    room = width - cell_len(indicator)
    if room < 1:
        return fit(indicator, width)
    return fit(truncate(title, room) + indicator, width)


# Key bindings addressing columns by position
SORT_KEYS = "123456789"
REVERSE_SORT_KEYS = "!@#$%^&*()"
TOGGLE_KEYS = "1234567890qwer"


class ColumnKeyMap:
    """
    Explicit key -> column tables.

    Sort keys address the rendered columns, so the table rebuilds the map
    every time the layout changes. Toggle keys address the declared columns
    in the column configuration overlay.
    """

    def __init__(self, columns: List[Column], declarations: List[ColumnDeclaration] = ALL_COLUMNS):
        self.sort: Dict[str, Tuple[str, bool]] = {}
        for key, column in zip(SORT_KEYS, columns):
            self.sort[key] = (column.key, False)
        for key, column in zip(REVERSE_SORT_KEYS, columns):
            self.sort[key] = (column.key, True)

        self.toggle: Dict[str, str] = {
            key: declaration.key for key, declaration in zip(TOGGLE_KEYS, declarations)
        }
        self._titles = [column.title for column in columns]

    def sort_action(self, key: str) -> Optional[Tuple[str, bool]]:
        """Return (column key, reverse) bound to ``key``, if any."""
        return self.sort.get(key)

    def toggle_target(self, key: str) -> Optional[str]:
        return self.toggle.get(key.lower())

    def shortcuts(self) -> Dict[int, str]:
        """Position -> title for the help line, for the numbered columns."""
        return {i + 1: title for i, title in enumerate(self._titles[:len(SORT_KEYS)])}
