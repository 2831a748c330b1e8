"""Human readable renderings of sizes, rates, durations and states."""

from datetime import datetime
from typing import Optional

from .models import Torrent


INFINITY = "∞"
# qBittorrent reports this ETA when a torrent will never complete
ETA_UNKNOWN = 8640000

STATUS_LABELS = {
    "downloading": "Downloading",
    "metaDL": "Metadata",
    "forcedDL": "Force DL",
    "allocating": "Allocating",
    "uploading": "Seeding",
    "forcedUP": "Force Seed",
    "stalledUP": "Stalled",
    "pausedDL": "Paused DL",
    "pausedUP": "Paused UP",
    "queuedDL": "Queued DL",
    "queuedUP": "Queued UP",
    "error": "Error",
    "missingFiles": "Missing",
}


def format_bytes(num_bytes: int) -> str:
    unit = 1024
    if num_bytes < unit:
        return f"{num_bytes} B"
    div, exp = unit, 0
    n = num_bytes // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{num_bytes / div:.1f} {'KMGTPE'[exp]}B"


def format_speed(bytes_per_second: int) -> str:
    return format_bytes(bytes_per_second) + "/s"


def format_duration(seconds: int) -> str:
    if seconds <= 0 or seconds >= ETA_UNKNOWN:
        return INFINITY
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        hours, minutes = seconds // 3600, (seconds % 3600) // 60
        return f"{hours}h{minutes}m" if minutes else f"{hours}h"
    days, hours = seconds // 86400, (seconds % 86400) // 3600
    return f"{days}d{hours}h" if hours else f"{days}d"


def format_time(timestamp: int, now: Optional[datetime] = None) -> str:
    """Clock time for today, month and day for this year, a date otherwise."""
    if timestamp <= 0:
        return "-"
    when = datetime.fromtimestamp(timestamp)
    now = now or datetime.now()
    if when.date() == now.date():
        return when.strftime("%H:%M")
    if when.year == now.year:
        return when.strftime("%b %d")
    return when.strftime("%Y-%m-%d")


def status_label(state: str) -> str:
    return STATUS_LABELS.get(state, state)


def format_cell(torrent: Torrent, column: str) -> str:
    """Text of one table cell, before truncation to the column width."""
    if column == "name":
        return torrent.name
    if column == "size":
        return format_bytes(torrent.size)
    if column == "progress":
        return f"{torrent.progress * 100:.1f}%"
    if column == "status":
        return status_label(torrent.state)
    if column == "seeds":
        return f"{torrent.num_seeds}/{torrent.num_complete}"
    if column == "peers":
        return f"{torrent.num_leechs}/{torrent.num_incomplete}"
    if column == "down":
        return format_speed(torrent.dlspeed)
    if column == "up":
        return format_speed(torrent.upspeed)
    if column == "ratio":
        return f"{torrent.ratio:.2f}"
    if column == "eta":
        return format_duration(torrent.eta)
    if column == "added_on":
        return format_time(torrent.added_on)
    if column in ("category", "tags", "tracker"):
        return getattr(torrent, column)
    return ""
