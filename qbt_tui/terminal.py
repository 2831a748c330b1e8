"""
Terminal plumbing: key input and the window title.

Keys are read from stdin in cbreak mode through the event loop's reader
callback and decoded into names such as ``"up"``, ``"enter"`` or ``"f5"``;
printable characters are passed through unchanged.
"""

import asyncio
import os
import re
import sys
import termios
import tty
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .formatting import format_bytes, format_speed
from .models import Torrent, is_active, is_downloading, is_paused, is_uploading


TITLE_VARIABLES = (
    "dl_speed", "up_speed", "server_url",
    "active_torrents", "total_torrents",
    "dl_torrents", "up_torrents", "paused_torrents",
    "session_downloaded", "session_uploaded",
)

_PLACEHOLDER = re.compile(r"\{[^}]+\}")


@dataclass
class TitleData:
    dl_speed: int = 0
    up_speed: int = 0
    session_downloaded: int = 0
    session_uploaded: int = 0
    server_url: str = ""
    active_torrents: int = 0
    total_torrents: int = 0
    dl_torrents: int = 0
    up_torrents: int = 0
    paused_torrents: int = 0


def validate_template(template: str) -> None:
    """Raise ValueError if ``template`` uses a variable we cannot fill in."""
    if not template:
        return
    valid = {f"{{{name}}}" for name in TITLE_VARIABLES}
    for match in _PLACEHOLDER.findall(template):
        if match not in valid:
            raise ValueError(
                f"unknown variable: {match} (valid variables: {', '.join(sorted(valid))})"
            )


def render_title(template: str, data: TitleData) -> str:
    if not template:
        raise ValueError("template is empty")

    values = {
        "dl_speed": format_speed(data.dl_speed),
        "up_speed": format_speed(data.up_speed),
        "session_downloaded": format_bytes(data.session_downloaded),
        "session_uploaded": format_bytes(data.session_uploaded),
        "server_url": data.server_url,
        "active_torrents": str(data.active_torrents),
        "total_torrents": str(data.total_torrents),
        "dl_torrents": str(data.dl_torrents),
        "up_torrents": str(data.up_torrents),
        "paused_torrents": str(data.paused_torrents),
    }
    result = template
    for name, value in values.items():
        result = result.replace(f"{{{name}}}", value)
    return result


def title_escape(title: str) -> str:
    """OSC 0 sequence setting both the icon name and the window title."""
    return f"\033]0;{title}\007"


def torrent_counts(records: Iterable[Torrent]) -> Tuple[int, int, int, int]:
    """Return (active, downloading, uploading, paused) counts."""
    active = downloading = uploading = paused = 0
    for torrent in records:
        if is_active(torrent.state):
            active += 1
        if is_downloading(torrent.state):
            downloading += 1
        if is_uploading(torrent.state):
            uploading += 1
        if is_paused(torrent.state):
            paused += 1
    return active, downloading, uploading, paused


# Key decoding

ESCAPE_SEQUENCES = {
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1b[C": "right",
    "\x1b[D": "left",
    "\x1b[H": "home",
    "\x1b[F": "end",
    "\x1b[1~": "home",
    "\x1b[4~": "end",
    "\x1b[5~": "pgup",
    "\x1b[6~": "pgdown",
    "\x1b[3~": "delete",
    "\x1b[15~": "f5",
    "\x1bOA": "up",
    "\x1bOB": "down",
    "\x1bOC": "right",
    "\x1bOD": "left",
    "\x1bOH": "home",
    "\x1bOF": "end",
}

CONTROL_KEYS = {
    "\r": "enter",
    "\n": "enter",
    "\t": "tab",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x03": "ctrl+c",
}

_CSI = re.compile(r"\x1b\[[0-9;]*[~A-Za-z]|\x1bO[A-Za-z]")


def decode_keys(data: str) -> List[str]:
    """
    Split a chunk read from the terminal into key names.

    Unknown escape sequences are dropped; a lone ESC is the ``"esc"`` key.
    """
    keys = []
    i = 0
    while i < len(data):
        ch = data[i]
        if ch == "\x1b":
            match = _CSI.match(data, i)
            if match:
                name = ESCAPE_SEQUENCES.get(match.group())
                if name:
                    keys.append(name)
                i = match.end()
                continue
            keys.append("esc")
        elif ch in CONTROL_KEYS:
            keys.append(CONTROL_KEYS[ch])
        elif ch.isprintable():
            keys.append(ch)
        i += 1
    return keys


class KeyReader:
    """
    Puts stdin into cbreak mode and feeds decoded keys into an asyncio queue.

    Use as a context manager so the terminal mode is always restored.
    """

    def __init__(self, stream=None):
        self.stream = stream or sys.stdin
        self.queue: asyncio.Queue = asyncio.Queue()
        self._old = None
        self._loop = None

    def __enter__(self):
        fd = self.stream.fileno()
        self._old = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(fd, self._on_readable)
        return self

    def __exit__(self, exc_type, exc, tb):
        fd = self.stream.fileno()
        if self._loop is not None:
            self._loop.remove_reader(fd)
        if self._old is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, self._old)
        return False

    def _on_readable(self):
        data = os.read(self.stream.fileno(), 1024).decode("utf-8", errors="ignore")
        for key in decode_keys(data):
            self.queue.put_nowait(key)

    async def get(self) -> str:
        return await self.queue.get()
