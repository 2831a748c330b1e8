"""
Reconciliation of /api/v2/sync/maindata responses into canonical state.

``merge`` is a pure function of (old state, response) so it can be tested in
isolation. ``SyncReconciler`` owns the current state for the lifetime of the
process, logs what each response changed, and turns a stale cursor into a
request for a full snapshot on the next fetch.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from loguru import logger

from .errors import MalformedDeltaError, StaleCursorError
from .models import (
    CanonicalState,
    Category,
    ServerState,
    SyncResponse,
    Torrent,
)


@dataclass
class MergeResult:
    state: CanonicalState
    problems: List[MalformedDeltaError] = field(default_factory=list)


def _merge_server_state(current: ServerState, raw) -> ServerState:
    if not raw:
        return current
    present = {key: value for key, value in raw.items() if key in ServerState.model_fields and value is not None}
    return ServerState(**{**current.model_dump(), **present})


def _merge_categories(current: Dict[str, Category], updates: Dict[str, Category]) -> Dict[str, Category]:
    categories = dict(current)
    for name, update in updates.items():
        existing = categories.get(name)
        base = existing.model_dump() if existing is not None else {}
        present = update.model_dump(include=update.model_fields_set)
        # The map key is the name, a delta may leave it out
        categories[name] = Category.model_validate({**base, **present, "name": name})
    return categories


def _snapshot(response: SyncResponse) -> CanonicalState:
    records = {}
    for info_hash, partial in response.torrents.items():
        records[info_hash] = partial.to_torrent().model_copy(update={"hash": info_hash})

    return CanonicalState(
        cursor=response.rid,
        records=records,
        categories=_merge_categories({}, response.categories),
        tags=set(response.tags),
        server_state=_merge_server_state(ServerState(), response.server_state),
    )


def merge(current: CanonicalState, response: SyncResponse, resync: bool = False) -> MergeResult:
    """
    Merge one server response into ``current`` and return the new state.

    A full snapshot replaces everything; it is accepted when it is newer than
    the state, when the state is empty (cursor 0), or when ``resync`` says a
    full snapshot was asked for, which also covers a server restart resetting
    its counter. A delta must carry a cursor strictly newer than the state's,
    so applying the same delta twice is rejected. While resyncing no delta is
    accepted.

    Raises:
        StaleCursorError: the response is not newer than ``current``.
    """
    if response.full_update:
        if not resync and current.cursor and response.rid <= current.cursor:
            raise StaleCursorError(current.cursor, response.rid)
        return MergeResult(_snapshot(response))

    if resync or response.rid <= current.cursor:
        raise StaleCursorError(current.cursor, response.rid)

    problems = []
    records = dict(current.records)

    for info_hash, partial in response.torrents.items():
        existing = records.get(info_hash)
        if existing is None:
            updated = partial.to_torrent()
        else:
            updated = partial.apply_to(existing)
        # The map key is the identity, whatever the payload says
        if updated.hash != info_hash:
            updated = updated.model_copy(update={"hash": info_hash})
        records[info_hash] = updated

    for info_hash in response.torrents_removed:
        if records.pop(info_hash, None) is None:
            problems.append(MalformedDeltaError(info_hash, "removal of unknown torrent"))

    categories = _merge_categories(current.categories, response.categories)
    for name in response.categories_removed:
        categories.pop(name, None)

    tags = set(current.tags)
    tags.update(response.tags)
    tags.difference_update(response.tags_removed)

    state = CanonicalState(
        cursor=response.rid,
        records=records,
        categories=categories,
        tags=tags,
        server_state=_merge_server_state(current.server_state, response.server_state),
    )
    return MergeResult(state, problems)


class SyncReconciler:
    """
    Owns the canonical state and applies gateway responses to it.

    ``cursor`` is the id of the last merged response and never moves on a
    rejection. ``fetch_cursor`` is what the next fetch should send: 0 while
    a full snapshot is pending, the cursor otherwise.
    """

    def __init__(self, log=logger):
        self.state = CanonicalState()
        self.resync = False
        self.log = log.bind(component="sync")

    @property
    def cursor(self) -> int:
        return self.state.cursor

    @property
    def fetch_cursor(self) -> int:
        return 0 if self.resync else self.state.cursor

    @property
    def categories(self):
        return self.state.categories

    @property
    def tags(self) -> List[str]:
        return sorted(self.state.tags)

    @property
    def server_state(self) -> ServerState:
        return self.state.server_state

    def records(self) -> List[Torrent]:
        return list(self.state.records.values())

    def get(self, info_hash: str):
        return self.state.records.get(info_hash)

    def request_full_snapshot(self) -> None:
        """Ask for a full snapshot next time, keeping what is displayed now."""
        self.resync = True

    def apply(self, response: SyncResponse) -> bool:
        """
        Merge a response into the owned state.

        Returns True when the state changed. A stale response is discarded
        and the next fetch will request a full snapshot; until one arrives
        every delta is discarded too.
        """
        try:
            result = merge(self.state, response, resync=self.resync)
        except StaleCursorError as e:
            if self.resync:
                self.log.debug(f"Discarding delta rid={response.rid} while waiting for a full snapshot")
            else:
                self.log.debug(f"Discarding response: {e}; requesting full snapshot")
            self.request_full_snapshot()
            return False

        self.log.info(
            f"Sync update rid={response.rid} full_update={response.full_update} "
            f"torrents_updated={len(response.torrents)} torrents_removed={len(response.torrents_removed)} "
            f"categories_updated={len(response.categories)} categories_removed={len(response.categories_removed)} "
            f"tags_added={len(response.tags)} tags_removed={len(response.tags_removed)}"
        )
        for info_hash, partial in response.torrents.items():
            changed = ", ".join(sorted(partial.present_fields()))
            self.log.debug(f"Torrent {info_hash[:8]} changed: {changed}")
        for problem in result.problems:
            self.log.warning(f"Skipped malformed delta entry: {problem}")

        self.state = result.state
        self.resync = False
        return True
