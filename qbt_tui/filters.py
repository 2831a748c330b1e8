from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from .models import STATE_CHECKING, STATE_QUEUED, STATE_STALLED, Torrent, is_paused


# Logical states offered alongside the raw qBittorrent state tags
LOGICAL_STATES = {
    # Actually transferring data, stalled torrents excluded
    "active": {"downloading", "uploading", "metaDL", "forcedDL", "forcedUP", "allocating"},
    # Finished downloading and seeding (paused torrents are filtered separately)
    "completed": {"uploading", "stalledUP", "forcedUP", "queuedUP"},
    "queued": STATE_QUEUED,
    "stalled": STATE_STALLED,
    "checking": STATE_CHECKING,
}


@dataclass
class FilterCriteria:
    """
    Which torrents to show.

    Values inside one criterion are OR'd, criteria are AND'd together, and an
    empty criteria set matches everything.
    """
    states: List[str] = field(default_factory=list)
    trackers: List[str] = field(default_factory=list)
    category: str = ""
    tags: List[str] = field(default_factory=list)
    search: str = ""

    def is_empty(self) -> bool:
        return not (self.states or self.trackers or self.category or self.tags or self.search)

    def copy(self) -> "FilterCriteria":
        return FilterCriteria(list(self.states), list(self.trackers), self.category, list(self.tags), self.search)


def extract_domain(tracker: str) -> str:
    """
    Host part of a tracker URL, without scheme, port or path.

    Anything that does not parse as a URL with a host yields "".
    """
    if not tracker:
        return ""
    try:
        host = urlsplit(tracker).hostname
    except ValueError:
        return ""
    return host or ""


def split_tags(tags: str) -> List[str]:
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


def matches_state(torrent: Torrent, state: str) -> bool:
    if state == "paused":
        return is_paused(torrent.state)
    if state in LOGICAL_STATES:
        return torrent.state in LOGICAL_STATES[state]
    return torrent.state == state


def matches(torrent: Torrent, criteria: FilterCriteria) -> bool:
    if criteria.states and not any(matches_state(torrent, s) for s in criteria.states):
        return False

    if criteria.trackers:
        domain = extract_domain(torrent.tracker)
        if not domain or domain not in criteria.trackers:
            return False

    if criteria.category and torrent.category != criteria.category:
        return False

    if criteria.tags and not set(split_tags(torrent.tags)).intersection(criteria.tags):
        return False

    if criteria.search and criteria.search.lower() not in torrent.name.lower():
        return False

    return True


def apply(records: Iterable[Torrent], criteria: FilterCriteria) -> List[Torrent]:
    """Return the records matching ``criteria``, preserving input order."""
    records = list(records or [])
    if criteria.is_empty():
        return records
    return [t for t in records if matches(t, criteria)]


# Option lists for the filter prompts

def unique_trackers(records: Iterable[Torrent]) -> List[str]:
    domains = {extract_domain(t.tracker) for t in records}
    domains.discard("")
    return sorted(domains)


def unique_categories(records: Iterable[Torrent]) -> List[str]:
    return sorted({t.category for t in records if t.category})


def unique_tags(records: Iterable[Torrent]) -> List[str]:
    tags = set()
    for t in records:
        tags.update(split_tags(t.tags))
    return sorted(tags)


# Interactive filter selection

STATE_OPTIONS = [
    "active", "downloading", "uploading", "completed", "paused", "queued",
    "stalled", "checking", "error", "allocating", "metaDL", "moving",
]

# Menu key -> (criterion, title)
FILTER_LISTS = {
    "s": ("states", "States"),
    "c": ("category", "Category"),
    "t": ("trackers", "Trackers"),
    "g": ("tags", "Tags"),
}


class FilterPanel:
    """
    Picks filter criteria from lists of available options.

    At the menu, ``s``/``c``/``t``/``g`` open the state, category, tracker
    or tag list, ``x`` clears every criterion and ``enter``/``esc``/``f``
    close the panel. In a list, ``space`` toggles the option under the
    cursor, ``a`` selects all, ``n`` selects none, ``enter`` keeps the
    choice and ``esc`` restores what was selected when the list was opened.
    The category is single-choice.
    """

    def __init__(self):
        self.criteria = FilterCriteria()
        self.is_open = False
        self.mode: Optional[str] = None
        self.cursor = 0
        self.options: Dict[str, List[str]] = {
            "states": list(STATE_OPTIONS),
            "category": [],
            "trackers": [],
            "tags": [],
        }
        self._backup = FilterCriteria()

    def set_available_options(self, categories: List[str], trackers: List[str], tags: List[str]) -> None:
        self.options["category"] = list(categories)
        self.options["trackers"] = list(trackers)
        self.options["tags"] = list(tags)

    def open(self, criteria: FilterCriteria) -> None:
        self.criteria = criteria.copy()
        self.is_open = True
        self.mode = None
        self.cursor = 0

    def selected(self, criterion: str) -> List[str]:
        if criterion == "category":
            return [self.criteria.category] if self.criteria.category else []
        return getattr(self.criteria, criterion)

    def on_key(self, key: str) -> bool:
        """Handle a key press. Returns True if the panel used it."""
        if self.mode is None:
            return self._on_menu_key(key)
        return self._on_list_key(key)

    def _on_menu_key(self, key: str) -> bool:
        if key in FILTER_LISTS:
            self._backup = self.criteria.copy()
            self.mode = FILTER_LISTS[key][0]
            self.cursor = 0
        elif key == "x":
            self.criteria = FilterCriteria()
        elif key in ("enter", "esc", "f"):
            self.is_open = False
        else:
            return False
        return True

    def _on_list_key(self, key: str) -> bool:
        options = self.options[self.mode]
        if key in ("up", "k"):
            self.cursor = max(0, self.cursor - 1)
        elif key in ("down", "j"):
            self.cursor = max(0, min(self.cursor + 1, len(options) - 1))
        elif key == " ":
            if self.cursor < len(options):
                self._toggle(options[self.cursor])
        elif key == "a":
            if self.mode != "category":
                setattr(self.criteria, self.mode, list(options))
        elif key == "n":
            if self.mode == "category":
                self.criteria.category = ""
            else:
                setattr(self.criteria, self.mode, [])
        elif key == "enter":
            self.mode = None
        elif key == "esc":
            self.criteria = self._backup
            self.mode = None
        else:
            return False
        return True

    def _toggle(self, option: str) -> None:
        if self.mode == "category":
            self.criteria.category = "" if self.criteria.category == option else option
            return
        values = getattr(self.criteria, self.mode)
        if option in values:
            values.remove(option)
        else:
            values.append(option)

    def lines(self) -> List[str]:
        if self.mode is None:
            lines = []
            for key, (criterion, title) in FILTER_LISTS.items():
                chosen = ", ".join(self.selected(criterion)) or "-"
                lines.append(f"{key}  {title + ':':<10} {chosen}")
            lines.append(f"   {'Search:':<10} {self.criteria.search or '-'}")
            lines.append("x  Clear all filters")
            return lines

        options = self.options[self.mode]
        if not options:
            return ["No options available"]
        chosen = self.selected(self.mode)
        return [
            f"{'>' if i == self.cursor else ' '} [{'x' if option in chosen else ' '}] {option}"
            for i, option in enumerate(options)
        ]
