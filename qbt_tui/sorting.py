"""
Ordering of torrents for the table.

Comparison runs primary column, then secondary column, then the name
case-insensitively, then the hash, so two distinct torrents never compare
equal. A descending sort negates the composed result, not each stage.
"""

from dataclasses import dataclass, replace
from enum import Enum
from functools import cmp_to_key
from typing import Callable, Dict, Iterable, List

from .models import Torrent


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


@dataclass(frozen=True)
class SortConfig:
    column: str = "name"
    direction: SortDirection = SortDirection.ASC
    secondary: str = "size"


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _text(attr: str) -> Callable[[Torrent], str]:
    return lambda t: getattr(t, attr).lower()


def _number(attr: str) -> Callable[[Torrent], float]:
    return lambda t: getattr(t, attr)


# Column key -> sort key. Status sorts by the raw state tag, not its label.
SORT_KEYS: Dict[str, Callable[[Torrent], object]] = {
    "name": _text("name"),
    "size": _number("size"),
    "progress": _number("progress"),
    "status": lambda t: t.state,
    "down": _number("dlspeed"),
    "up": _number("upspeed"),
    "seeds": _number("num_seeds"),
    "peers": _number("num_leechs"),
    "ratio": _number("ratio"),
    "eta": _number("eta"),
    "added_on": _number("added_on"),
    "category": _text("category"),
    "tags": _text("tags"),
    "tracker": _text("tracker"),
}


def compare_by_column(a: Torrent, b: Torrent, column: str) -> int:
    key = SORT_KEYS.get(column, SORT_KEYS["name"])
    return _cmp(key(a), key(b))


def compare(a: Torrent, b: Torrent, config: SortConfig) -> int:
    result = compare_by_column(a, b, config.column)
    if result == 0 and config.secondary and config.secondary != config.column:
        result = compare_by_column(a, b, config.secondary)
    if result == 0:
        result = _cmp(a.name.lower(), b.name.lower())
    if result == 0:
        result = _cmp(a.hash, b.hash)

    if config.direction is SortDirection.DESC:
        return -result
    return result


def sort_records(records: Iterable[Torrent], config: SortConfig) -> List[Torrent]:
    return sorted(records, key=cmp_to_key(lambda a, b: compare(a, b, config)))


def select_column(config: SortConfig, column: str, reverse: bool = False) -> SortConfig:
    """
    Apply a column selection to ``config``.

    Selecting the active column flips the direction. Selecting another
    column starts ascending, or descending for the reverse gesture.
    """
    if config.column == column:
        return replace(config, direction=config.direction.flipped())
    direction = SortDirection.DESC if reverse else SortDirection.ASC
    return replace(config, column=column, direction=direction)
