"""
The torrent table: filter, sort, selection and column layout over the
canonical record set.

TorrentTable holds no rendering code. ``current_view()`` produces plain
cell text already fitted to the column widths, which app.py styles with rich.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from loguru import logger

from . import filters
from .filters import FilterCriteria
from .formatting import format_cell
from .layout import (
    ALL_COLUMNS,
    COLUMN_KEYS,
    DEFAULT_VISIBLE_COLUMNS,
    Column,
    ColumnKeyMap,
    fit,
    header_cell,
    layout,
)
from .models import Torrent
from .selection import SelectionTracker
from .sorting import SortConfig, SortDirection, select_column, sort_records


RIGHT_ALIGNED = {"size", "progress", "down", "up", "seeds", "peers", "ratio", "eta"}

SORT_INDICATORS = {SortDirection.ASC: " ↑", SortDirection.DESC: " ↓"}


@dataclass
class TableView:
    columns: List[Column]
    header: List[str]
    rows: List[List[str]]
    row_hashes: List[str]
    selected: int
    offset: int
    total: int
    sort_indicators: Dict[str, str] = field(default_factory=dict)
    show_column_config: bool = False

    @property
    def selected_row(self) -> Optional[int]:
        """Position of the selection inside ``rows``, if it is on screen."""
        position = self.selected - self.offset
        if 0 <= position < len(self.rows):
            return position
        return None


class TorrentTable:
    def __init__(
        self,
        width: int = 80,
        height: int = 20,
        sort: Optional[SortConfig] = None,
        visible_columns: Optional[List[str]] = None,
        log=logger,
    ):
        self.log = log.bind(component="table")
        self.width = width
        self.height = height
        self.sort = sort or SortConfig()
        self.visible_columns = list(visible_columns or DEFAULT_VISIBLE_COLUMNS)
        self.criteria = FilterCriteria()
        self.selection = SelectionTracker()
        self.offset = 0
        self.show_column_config = False

        self._records: List[Torrent] = []
        self._ordered: List[Torrent] = []
        self.columns: List[Column] = []
        self.key_map = ColumnKeyMap([])
        self._relayout()

    # Data

    def set_records(self, records: Iterable[Torrent]) -> None:
        self._records = list(records)
        self._reorder()

    def set_filter(self, criteria: FilterCriteria) -> None:
        self.criteria = criteria
        self._reorder()

    def clear_filter(self) -> None:
        self.set_filter(FilterCriteria())

    def set_search(self, text: str) -> None:
        self.criteria.search = text
        self._reorder()

    @property
    def ordered(self) -> List[Torrent]:
        return list(self._ordered)

    @property
    def selected(self) -> Optional[Torrent]:
        return self.selection.selected

    def _reorder(self) -> None:
        self._ordered = sort_records(filters.apply(self._records, self.criteria), self.sort)
        self.selection.set_records(self._ordered)

    # Layout

    def set_size(self, width: int, height: int) -> None:
        if (width, height) == (self.width, self.height):
            return
        self.width, self.height = width, height
        self._relayout()

    def _relayout(self) -> None:
        self.columns = layout(ALL_COLUMNS, self.visible_columns, self.width)
        self.key_map = ColumnKeyMap(self.columns)
        self.log.debug(
            f"Layout width={self.width}: " + ", ".join(f"{c.key}={c.width}" for c in self.columns)
        )

    def set_visible_columns(self, keys: Iterable[str]) -> None:
        self.visible_columns = [key for key in keys if key in COLUMN_KEYS]
        self._relayout()

    def toggle_column(self, key: str) -> None:
        if key in self.visible_columns:
            self.visible_columns.remove(key)
        else:
            self.visible_columns.append(key)
        self._relayout()

    # Sorting

    def set_sort(self, column: str, reverse: bool = False) -> None:
        self.sort = select_column(self.sort, column, reverse)
        self.log.debug(f"Sort {self.sort.column} {self.sort.direction.value}")
        self._reorder()

    # Keys

    def on_key(self, key: str) -> bool:
        """Handle a key press. Returns True if the table used it."""
        if self.show_column_config:
            if key in ("C", "c", "esc"):
                self.show_column_config = False
            else:
                target = self.key_map.toggle_target(key)
                if target:
                    self.toggle_column(target)
            return True

        page = max(1, self.height - 1)
        if key in ("up", "k"):
            self.selection.move_up()
        elif key in ("down", "j"):
            self.selection.move_down()
        elif key in ("g", "home"):
            self.selection.move_top()
        elif key in ("G", "end"):
            self.selection.move_bottom()
        elif key == "pgup":
            self.selection.move_up(page)
        elif key == "pgdown":
            self.selection.move_down(page)
        elif key == "C":
            self.show_column_config = True
        else:
            action = self.key_map.sort_action(key)
            if action is None:
                return False
            self.set_sort(*action)
        return True

    # Rendering

    def _scroll(self) -> None:
        visible = max(1, self.height - 1)
        index = self.selection.index
        if index < self.offset:
            self.offset = index
        elif index >= self.offset + visible:
            self.offset = index - visible + 1
        self.offset = max(0, min(self.offset, max(0, len(self._ordered) - visible)))

    def current_view(self) -> TableView:
        self._scroll()
        indicators = {}
        header = []
        for column in self.columns:
            indicator = SORT_INDICATORS[self.sort.direction] if column.key == self.sort.column else ""
            if indicator:
                indicators[column.key] = indicator
            header.append(header_cell(column.title, column.width, indicator))

        window = self._ordered[self.offset:self.offset + max(1, self.height - 1)]
        rows = []
        for torrent in window:
            rows.append([
                fit(
                    format_cell(torrent, column.key),
                    column.width,
                    "right" if column.key in RIGHT_ALIGNED else "left",
                )
                for column in self.columns
            ])

        return TableView(
            columns=list(self.columns),
            header=header,
            rows=rows,
            row_hashes=[t.hash for t in window],
            selected=self.selection.index,
            offset=self.offset,
            total=len(self._ordered),
            sort_indicators=indicators,
            show_column_config=self.show_column_config,
        )

    def column_config_lines(self) -> List[str]:
        """Lines of the column configuration overlay."""
        lines = []
        for key, column_key in self.key_map.toggle.items():
            mark = "x" if column_key in self.visible_columns else " "
            title = next(c.title for c in ALL_COLUMNS if c.key == column_key)
            lines.append(f"{key}  [{mark}] {title}")
        return lines

    # Preferences

    def preferences(self) -> Dict[str, str]:
        return {
            "columns": ",".join(self.visible_columns),
            "sort_column": self.sort.column,
            "sort_direction": self.sort.direction.value,
        }

    def load_preferences(self, preferences: Dict[str, str]) -> None:
        """Restore preferences, ignoring values that are no longer valid."""
        columns = preferences.get("columns")
        if columns is not None:
            keys = [key.strip() for key in columns.split(",") if key.strip()]
            unknown = [key for key in keys if key not in COLUMN_KEYS]
            if unknown:
                self.log.warning(f"Ignoring unknown column(s) in preferences: {', '.join(unknown)}")
            self.set_visible_columns(keys)

        column = preferences.get("sort_column") or self.sort.column
        if column not in COLUMN_KEYS:
            self.log.warning(f"Ignoring unknown sort column in preferences: {column}")
            column = self.sort.column
        try:
            direction = SortDirection(preferences.get("sort_direction", self.sort.direction.value))
        except ValueError:
            self.log.warning(f"Ignoring invalid sort direction: {preferences.get('sort_direction')}")
            direction = self.sort.direction

        self.sort = SortConfig(column=column, direction=direction, secondary=self.sort.secondary)
        self._reorder()
