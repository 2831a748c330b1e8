"""
Detail view for a single torrent.

The view fetches properties, trackers, peers and files through the gateway
when it is opened and on every refresh tick. At most one fetch is in flight;
closing or switching the view cancels it and bumps the generation number so a
response that still arrives is ignored.
"""

import asyncio
from typing import Callable, List, Optional

from loguru import logger

from .errors import GatewayError
from .formatting import format_bytes, format_duration, format_speed, format_time
from .gateway import Gateway
from .models import RecordDetail


TABS = ["general", "trackers", "peers", "files"]

TRACKER_STATUS = {
    0: "Disabled",
    1: "Not contacted",
    2: "Working",
    3: "Updating",
    4: "Not working",
}


class DetailView:
    def __init__(self, gateway: Gateway, on_change: Optional[Callable[[], None]] = None, log=logger):
        self.gateway = gateway
        self.on_change = on_change
        self.log = log.bind(component="details")

        self.info_hash: Optional[str] = None
        self.detail: Optional[RecordDetail] = None
        self.error: Optional[GatewayError] = None
        self.tab = 0
        self.generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self.info_hash is not None

    @property
    def fetching(self) -> bool:
        return self._task is not None and not self._task.done()

    def open(self, info_hash: str) -> None:
        self._cancel()
        self.generation += 1
        self.info_hash = info_hash
        self.detail = None
        self.error = None
        self.tab = 0
        self.log.debug(f"Opened details for {info_hash[:8]} (generation {self.generation})")
        self.refresh()

    def close(self) -> None:
        self._cancel()
        self.generation += 1
        self.info_hash = None
        self.detail = None
        self.error = None

    def _cancel(self) -> None:
        if self.fetching:
            self._task.cancel()
        self._task = None

    def refresh(self) -> Optional[asyncio.Task]:
        """Start a fetch unless one is already outstanding."""
        if not self.is_open:
            return None
        if self.fetching:
            self.log.debug("Detail fetch still in flight, skipping refresh")
            return None
        self._task = asyncio.create_task(self._fetch(self.info_hash, self.generation))
        return self._task

    async def wait(self) -> None:
        """Wait for the outstanding fetch, if any."""
        if self._task is not None:
            await asyncio.wait([self._task])

    async def _fetch(self, info_hash: str, generation: int) -> None:
        try:
            detail = await self.gateway.fetch_record_detail(info_hash)
        except GatewayError as e:
            if generation == self.generation:
                self.error = e
                self.log.warning(f"Failed to fetch details for {info_hash[:8]}: {e}")
                self._changed()
            return
        self.on_response(generation, detail)

    def on_response(self, generation: int, detail: RecordDetail) -> bool:
        """Accept ``detail`` if it belongs to the current generation."""
        if generation != self.generation or detail.hash != self.info_hash:
            self.log.debug(f"Discarding detail response from generation {generation}")
            return False
        self.detail = detail
        self.error = None
        self._changed()
        return True

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def on_key(self, key: str) -> bool:
        if key in ("tab", "right", "l"):
            self.tab = (self.tab + 1) % len(TABS)
        elif key in ("left", "h"):
            self.tab = (self.tab - 1) % len(TABS)
        elif key in ("1", "2", "3", "4"):
            self.tab = int(key) - 1
        else:
            return False
        return True

    # Rendering

    def lines(self) -> List[str]:
        if self.detail is None:
            if self.error is not None:
                return [f"Error: {self.error}"]
            return ["Loading..."]
        return getattr(self, f"_{TABS[self.tab]}_lines")(self.detail)

    def _general_lines(self, detail: RecordDetail) -> List[str]:
        p = detail.properties
        progress = f"{p.pieces_have}/{p.pieces_num}" if p.pieces_num else "-"
        return [
            f"Save path:    {p.save_path}",
            f"Total size:   {format_bytes(p.total_size)}",
            f"Pieces:       {progress} x {format_bytes(p.piece_size)}",
            f"Downloaded:   {format_bytes(p.total_downloaded)} ({format_bytes(p.total_downloaded_session)} this session)",
            f"Uploaded:     {format_bytes(p.total_uploaded)} ({format_bytes(p.total_uploaded_session)} this session)",
            f"Wasted:       {format_bytes(p.total_wasted)}",
            f"Ratio:        {p.share_ratio:.2f}",
            f"Speed:        down {format_speed(p.dl_speed)} (avg {format_speed(p.dl_speed_avg)}), "
            f"up {format_speed(p.up_speed)} (avg {format_speed(p.up_speed_avg)})",
            f"Seeds:        {p.seeds} ({p.seeds_total} total)",
            f"Peers:        {p.peers} ({p.peers_total} total)",
            f"Connections:  {p.nb_connections} ({p.nb_connections_limit} max)",
            f"Time active:  {format_duration(p.time_elapsed)} (seeding {format_duration(p.seeding_time)})",
            f"ETA:          {format_duration(p.eta)}",
            f"Added:        {format_time(p.addition_date)}",
            f"Completed:    {format_time(p.completion_date)}",
            f"Created by:   {p.created_by or '-'}",
            f"Comment:      {p.comment or '-'}",
        ]

    def _trackers_lines(self, detail: RecordDetail) -> List[str]:
        if not detail.trackers:
            return ["No trackers"]
        return [
            f"{t.tier:>3}  {TRACKER_STATUS.get(t.status, str(t.status)):<13} "
            f"seeds {t.num_seeds:>4} peers {t.num_peers:>4}  {t.url}"
            + (f"  ({t.msg})" if t.msg else "")
            for t in detail.trackers
        ]

    def _peers_lines(self, detail: RecordDetail) -> List[str]:
        if not detail.peers:
            return ["No peers"]
        peers = sorted(detail.peers.values(), key=lambda p: p.dl_speed + p.up_speed, reverse=True)
        return [
            f"{p.ip}:{p.port:<6} {p.client[:20]:<20} {p.progress * 100:5.1f}%  "
            f"down {format_speed(p.dl_speed)}  up {format_speed(p.up_speed)}"
            for p in peers
        ]

    def _files_lines(self, detail: RecordDetail) -> List[str]:
        if not detail.files:
            return ["No files"]
        return [
            f"{f.progress * 100:5.1f}%  {format_bytes(f.size):>10}  {f.name}"
            for f in detail.files
        ]
