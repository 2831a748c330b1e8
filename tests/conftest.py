import asyncio
import io
from typing import List, Optional

import pytest
from rich.console import Console

from qbt_tui.config import Config
from qbt_tui.gateway import Gateway
from qbt_tui.layout import DEFAULT_VISIBLE_COLUMNS
from qbt_tui.models import RecordDetail, SyncResponse, Torrent


class FakeGateway(Gateway):
    """
    In-memory gateway.

    ``responses`` is consumed by fetch_delta in order; an exception in the
    list is raised instead of returned. Once it runs dry an empty delta one
    cursor ahead is returned, or for cursor 0 the last full snapshot served
    (an empty one if none was). Setting ``fetch_gate`` / ``detail_gate`` to an
    asyncio.Event holds the matching calls until the event is set.
    """

    def __init__(self):
        self.responses: List = []
        self.cursors: List[int] = []
        self.details = {}
        self.detail_requests: List[str] = []
        self.calls: List[tuple] = []
        self.fetch_gate: Optional[asyncio.Event] = None
        self.detail_gate: Optional[asyncio.Event] = None
        self.login_error = None
        self.control_error = None
        self.logins = 0
        self.last_snapshot: Optional[SyncResponse] = None
        self.closed = False

    async def login(self):
        self.logins += 1
        if self.login_error is not None:
            raise self.login_error

    async def fetch_delta(self, cursor):
        self.cursors.append(cursor)
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if not self.responses:
            if cursor == 0:
                return self.last_snapshot or SyncResponse(rid=1, full_update=True)
            return SyncResponse(rid=cursor + 1)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if item.full_update:
            self.last_snapshot = item
        return item

    async def fetch_record_detail(self, info_hash):
        self.detail_requests.append(info_hash)
        if self.detail_gate is not None:
            await self.detail_gate.wait()
        item = self.details.get(info_hash, RecordDetail(hash=info_hash))
        if isinstance(item, Exception):
            raise item
        return item

    async def _control(self, *call):
        self.calls.append(call)
        if self.control_error is not None:
            raise self.control_error

    async def pause(self, hashes):
        await self._control("pause", hashes)

    async def resume(self, hashes):
        await self._control("resume", hashes)

    async def delete(self, hashes, delete_files=False):
        await self._control("delete", hashes, delete_files)

    async def set_location(self, hashes, location):
        await self._control("set_location", hashes, location)

    async def add_torrent_file(self, path):
        await self._control("add_torrent_file", path)

    async def add_torrent_url(self, url):
        await self._control("add_torrent_url", url)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def make_torrent():
    """Factory for records; the name defaults to the hash."""
    def factory(info_hash, **fields):
        fields.setdefault("name", info_hash)
        return Torrent(hash=info_hash, **fields)
    return factory


@pytest.fixture
def config(tmp_path):
    """A valid configuration independent of the environment."""
    config = Config()
    config.SERVER_URL = "http://qbt.test"
    config.SERVER_USERNAME = ""
    config.SERVER_PASSWORD = ""
    config.REFRESH_INTERVAL = 3
    config.REQUEST_TIMEOUT = 10.0
    config.COLUMNS = list(DEFAULT_VISIBLE_COLUMNS)
    config.DEFAULT_SORT_COLUMN = "name"
    config.DEFAULT_SORT_DIRECTION = "asc"
    config.TERMINAL_TITLE_ENABLED = False
    config.TERMINAL_TITLE_TEMPLATE = "qbt {active_torrents}/{total_torrents}"
    config.DEBUG_ENABLED = False
    config.DEBUG_LOG_FILE = ""
    config.STATE_DIR = str(tmp_path)
    return config


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, height=30, force_terminal=False)
