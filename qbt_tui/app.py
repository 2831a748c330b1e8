"""
The interactive application.

App wires the gateway, the sync reconciler, the torrent table and the detail
view together on one asyncio event loop. Gateway calls run in tasks; their
results come back through ``on_gateway_response`` / ``on_gateway_error``,
which are the only places the shared state is changed. A refresh requested
while one is in flight is remembered and runs once the current one finishes.
"""

import asyncio
import signal
from datetime import datetime
from typing import Awaitable, List, Optional

from loguru import logger
from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from .config import Config
from .details import TABS, DetailView
from .errors import AuthenticationError, GatewayError
from .filters import FilterPanel, unique_categories, unique_tags, unique_trackers
from .formatting import format_bytes, format_speed
from .gateway import Gateway
from .layout import SEPARATOR, fit
from .models import STATE_DOWNLOADING, STATE_ERROR, STATE_PAUSED, STATE_UPLOADING
from .sync import SyncReconciler
from .table import TorrentTable
from .terminal import TitleData, render_title, title_escape, torrent_counts


# Lines around the table: title bar, status banner, footer
CHROME_LINES = 3

HELP = "p pause  r resume  d delete  enter details  / search  f filter  x clear  C columns  R refresh  q quit"

STATE_STYLES = [
    (STATE_DOWNLOADING, "green"),
    (STATE_UPLOADING, "cyan"),
    (STATE_PAUSED, "yellow"),
    (STATE_ERROR, "red"),
]

BANNER_STYLES = {
    "info": "green",
    "error": "yellow",
    "auth": "bold red",
}


def state_style(state: str) -> str:
    for states, style in STATE_STYLES:
        if state in states:
            return style
    return ""


class App:
    def __init__(self, gateway: Gateway, config: Config, console: Optional[Console] = None, log=logger):
        self.gateway = gateway
        self.config = config
        self.console = console or Console()
        self.log = log.bind(component="app")

        self.reconciler = SyncReconciler(log=log)
        self.table = TorrentTable(log=log)
        self.table.load_preferences(config.preferences())
        self.details = DetailView(gateway, on_change=self.invalidate, log=log)
        self.filter_panel = FilterPanel()

        self.mode = "table"
        self.search_text = ""
        self.delete_files = False
        self.banner: Optional[str] = None
        self.banner_kind = "info"
        self.last_update: Optional[datetime] = None
        self.running = True
        self.control_refresh_delay = 0.5

        self.needs_login = self.has_credentials
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_pending = False
        self._control_tasks = set()
        self._redraw = asyncio.Event()
        self._title = ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.config.SERVER_USERNAME)

    def invalidate(self) -> None:
        self._redraw.set()

    def set_banner(self, message: Optional[str], kind: str = "info") -> None:
        self.banner = message
        self.banner_kind = kind
        self.invalidate()

    # Refreshing

    def on_refresh_tick(self) -> Optional[asyncio.Task]:
        if self.details.is_open:
            self.details.refresh()
        return self.request_refresh()

    def request_refresh(self) -> Optional[asyncio.Task]:
        """Start a torrent refresh, or remember the request if one is running."""
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_pending = True
            return None
        self._refresh_task = asyncio.create_task(self._refresh())
        self._refresh_task.add_done_callback(self._on_refresh_done)
        return self._refresh_task

    def _on_refresh_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or not self.running:
            return
        if self._refresh_pending:
            self._refresh_pending = False
            self.request_refresh()

    async def wait_for_refresh(self) -> None:
        """Wait until no refresh is running or queued."""
        while self._refresh_task is not None and not self._refresh_task.done():
            await asyncio.wait([self._refresh_task])

    async def _refresh(self) -> None:
        try:
            if self.needs_login:
                await self.gateway.login()
                self.needs_login = False
            response = await self.gateway.fetch_delta(self.reconciler.fetch_cursor)
        except GatewayError as e:
            self.on_gateway_error(e)
            return
        self.on_gateway_response(response)

    def on_gateway_response(self, response) -> None:
        changed = self.reconciler.apply(response)
        if changed:
            self.table.set_records(self.reconciler.records())
            self.last_update = datetime.now()
            if self.banner_kind != "info":
                self.set_banner(None)
            self.update_title()
        elif self.reconciler.resync:
            # Stale response: fetch the full snapshot right away
            self._refresh_pending = True
        self.invalidate()

    def on_gateway_error(self, error: GatewayError) -> None:
        if isinstance(error, AuthenticationError):
            self.log.warning(f"Authentication failed: {error}")
            if self.has_credentials:
                self.needs_login = True
                self.set_banner("Authentication failed, logging in again", "auth")
            else:
                self.set_banner("Authentication required: set QBT_SERVER_USERNAME and QBT_SERVER_PASSWORD", "auth")
        elif error.transient:
            self.log.warning(f"Transient gateway error: {error}")
            self.set_banner(f"Connection problem: {error}", "error")
        else:
            self.log.error(f"Gateway error: {error}")
            self.set_banner(f"Error: {error}", "error")

    # Controls

    def run_control(self, description: str, call: Awaitable) -> asyncio.Task:
        task = asyncio.create_task(self._control(description, call))
        self._control_tasks.add(task)
        task.add_done_callback(self._control_tasks.discard)
        return task

    async def _control(self, description: str, call: Awaitable) -> None:
        try:
            await call
        except GatewayError as e:
            self.on_gateway_error(e)
            return
        self.log.info(description)
        self.set_banner(description, "info")
        await asyncio.sleep(self.control_refresh_delay)
        self.request_refresh()

    async def wait_for_controls(self) -> None:
        if self._control_tasks:
            await asyncio.wait(list(self._control_tasks))

    def _selected_hashes(self) -> List[str]:
        if self.details.is_open:
            return [self.details.info_hash]
        selected = self.table.selected
        return [selected.hash] if selected else []

    def pause_selected(self) -> Optional[asyncio.Task]:
        hashes = self._selected_hashes()
        if not hashes:
            return None
        return self.run_control(f"Paused {self._describe(hashes)}", self.gateway.pause(hashes))

    def resume_selected(self) -> Optional[asyncio.Task]:
        hashes = self._selected_hashes()
        if not hashes:
            return None
        return self.run_control(f"Resumed {self._describe(hashes)}", self.gateway.resume(hashes))

    def delete_selected(self) -> Optional[asyncio.Task]:
        hashes = self._selected_hashes()
        if not hashes:
            return None
        what = "with files" if self.delete_files else "keeping files"
        return self.run_control(
            f"Deleted {self._describe(hashes)} ({what})",
            self.gateway.delete(hashes, self.delete_files),
        )

    def _describe(self, hashes: List[str]) -> str:
        if len(hashes) == 1:
            torrent = self.reconciler.get(hashes[0])
            if torrent is not None:
                return torrent.name
        return f"{len(hashes)} torrent(s)"

    def quit(self) -> None:
        self.running = False
        self.invalidate()

    # Keys

    def on_key(self, key: str) -> bool:
        handled = self._dispatch(key)
        if handled:
            self.invalidate()
        return handled

    def _dispatch(self, key: str) -> bool:
        if key == "ctrl+c":
            self.quit()
            return True
        if self.mode == "search":
            return self._on_search_key(key)
        if self.mode == "confirm_delete":
            return self._on_confirm_key(key)
        if self.mode == "filter":
            return self._on_filter_key(key)
        if self.table.show_column_config:
            return self.table.on_key(key)

        if key == "q":
            self.quit()
        elif key == "p":
            self.pause_selected()
        elif key == "r":
            self.resume_selected()
        elif key == "d":
            if not self._selected_hashes():
                return False
            self.delete_files = False
            self.mode = "confirm_delete"
        elif key in ("f5", "R"):
            self.request_refresh()
        elif self.mode == "details":
            return self._on_details_key(key)
        elif key == "enter":
            selected = self.table.selected
            if selected is None:
                return False
            self.mode = "details"
            self.details.open(selected.hash)
        elif key == "/":
            self.mode = "search"
        elif key == "f":
            self.open_filter()
        elif key == "x":
            self.search_text = ""
            self.table.clear_filter()
        else:
            return self.table.on_key(key)
        return True

    def _on_details_key(self, key: str) -> bool:
        if key in ("esc", "backspace"):
            self.details.close()
            self.mode = "table"
            return True
        return self.details.on_key(key)

    def _on_search_key(self, key: str) -> bool:
        if key in ("enter", "esc"):
            if key == "esc":
                self.search_text = ""
                self.table.set_search("")
            self.mode = "table"
        elif key == "backspace":
            self.search_text = self.search_text[:-1]
            self.table.set_search(self.search_text)
        elif len(key) == 1:
            self.search_text += key
            self.table.set_search(self.search_text)
        else:
            return False
        return True

    def open_filter(self) -> None:
        records = self.reconciler.records()
        categories = sorted(set(unique_categories(records)) | set(self.reconciler.categories))
        tags = sorted(set(unique_tags(records)) | set(self.reconciler.tags))
        self.filter_panel.set_available_options(categories, unique_trackers(records), tags)
        self.filter_panel.open(self.table.criteria)
        self.mode = "filter"

    def _on_filter_key(self, key: str) -> bool:
        if not self.filter_panel.on_key(key):
            return False
        self.table.set_filter(self.filter_panel.criteria.copy())
        self.search_text = self.table.criteria.search
        if not self.filter_panel.is_open:
            self.mode = "table"
        return True

    def _on_confirm_key(self, key: str) -> bool:
        if key == "y":
            self.delete_selected()
            self._leave_confirm()
        elif key == "f":
            self.delete_files = not self.delete_files
        elif key in ("n", "esc", "q"):
            self._leave_confirm()
        else:
            return False
        return True

    def _leave_confirm(self) -> None:
        self.delete_files = False
        self.mode = "details" if self.details.is_open else "table"

    # Terminal title

    def title_data(self) -> TitleData:
        records = self.reconciler.records()
        active, downloading, uploading, paused = torrent_counts(records)
        server = self.reconciler.server_state
        return TitleData(
            dl_speed=server.dl_info_speed,
            up_speed=server.up_info_speed,
            session_downloaded=server.dl_info_data,
            session_uploaded=server.up_info_data,
            server_url=self.config.SERVER_URL,
            active_torrents=active,
            total_torrents=len(records),
            dl_torrents=downloading,
            up_torrents=uploading,
            paused_torrents=paused,
        )

    def update_title(self) -> None:
        if not self.config.TERMINAL_TITLE_ENABLED or not self.config.TERMINAL_TITLE_TEMPLATE:
            return
        title = render_title(self.config.TERMINAL_TITLE_TEMPLATE, self.title_data())
        if title != self._title:
            self._title = title
            self.console.file.write(title_escape(title))
            self.console.file.flush()

    # Rendering

    def render(self) -> Group:
        width, height = self.console.size
        self.table.set_size(width, max(2, height - CHROME_LINES))

        lines = [self._render_title_bar(width)]
        if self.mode == "details" or (self.mode == "confirm_delete" and self.details.is_open):
            lines.extend(self._render_details(width, height - CHROME_LINES))
        elif self.table.show_column_config:
            lines.append(Text("Columns (press key to toggle, C or esc to close)", style="bold"))
            lines.extend(Text(line) for line in self.table.column_config_lines())
        elif self.mode == "filter":
            lines.extend(self._render_filter(width, height - CHROME_LINES))
        else:
            lines.extend(self._render_table())

        lines.append(self._render_banner(width))
        lines.append(self._render_footer(width))
        return Group(*lines)

    def _render_title_bar(self, width: int) -> Text:
        server = self.reconciler.server_state
        records = self.reconciler.records()
        active = torrent_counts(records)[0]
        updated = self.last_update.strftime("%H:%M:%S") if self.last_update else "never"
        text = (
            f"qbt-tui  {self.config.SERVER_URL}  "
            f"↓ {format_speed(server.dl_info_speed)}  ↑ {format_speed(server.up_info_speed)}  "
            f"{active}/{len(records)} active  free {format_bytes(server.free_space_on_disk)}  "
            f"updated {updated}"
        )
        return Text(fit(text, width), style="bold reverse")

    def _render_table(self) -> List[Text]:
        view = self.table.current_view()
        if view.total == 0:
            message = "No torrents match the current filter" if not self.table.criteria.is_empty() else "No torrents"
            return [Text(SEPARATOR.join(view.header), style="bold underline"), Text(message, style="dim")]

        lines = [Text(SEPARATOR.join(view.header), style="bold underline")]
        for position, (cells, info_hash) in enumerate(zip(view.rows, view.row_hashes)):
            torrent = self.reconciler.get(info_hash)
            row = Text()
            for i, (column, cell) in enumerate(zip(view.columns, cells)):
                if i:
                    row.append(SEPARATOR)
                style = state_style(torrent.state) if column.key == "status" and torrent else ""
                row.append(cell, style=style)
            if position == view.selected_row:
                row.stylize("reverse")
            lines.append(row)
        return lines

    def _render_details(self, width: int, height: int) -> List[Text]:
        torrent = self.reconciler.get(self.details.info_hash) if self.details.info_hash else None
        name = torrent.name if torrent else self.details.info_hash or ""
        tabs = Text()
        for i, tab in enumerate(TABS):
            tabs.append(f" {i + 1} {tab.capitalize()} ", style="reverse" if i == self.details.tab else "")
        lines = [Text(fit(name, width), style="bold"), tabs]
        body = self.details.lines()[:max(0, height - 2)]
        lines.extend(Text(fit(line, width)) for line in body)
        return lines

    def _render_filter(self, width: int, height: int) -> List[Text]:
        panel = self.filter_panel
        title = "Filters" if panel.mode is None else f"Filter by {panel.mode}"
        body = panel.lines()
        # Keep the cursor on screen in long lists
        start = max(0, panel.cursor - (height - 2)) if panel.mode else 0
        lines = [Text(fit(title, width), style="bold")]
        lines.extend(Text(fit(line, width)) for line in body[start:start + max(0, height - 1)])
        return lines

    def _render_banner(self, width: int) -> Text:
        if self.mode == "search":
            return Text(fit(f"Search: {self.search_text}_", width), style="bold")
        if self.mode == "confirm_delete":
            files = "and its files " if self.delete_files else ""
            names = self._describe(self._selected_hashes())
            return Text(
                fit(f"Delete {names} {files}? y confirm, f toggle files, n cancel", width),
                style="bold red",
            )
        if self.banner:
            return Text(fit(self.banner, width), style=BANNER_STYLES.get(self.banner_kind, ""))
        return Text("")

    def _render_footer(self, width: int) -> Text:
        if self.mode == "filter":
            if self.filter_panel.mode is None:
                hint = "s states  c category  t trackers  g tags  x clear all  enter/esc close"
            else:
                hint = "j/k move  space toggle  a all  n none  enter done  esc cancel"
            return Text(fit(hint, width), style="dim")
        if self.mode == "details":
            return Text(fit("tab/1-4 switch tab  p pause  r resume  d delete  esc back  q quit", width), style="dim")
        shortcuts = self.table.key_map.shortcuts()
        sort_help = " ".join(f"{i}:{title}" for i, title in shortcuts.items())
        return Text(fit(f"{HELP}  sort {sort_help}", width), style="dim")

    # Main loop

    async def _ticker(self) -> None:
        while self.running:
            self.on_refresh_tick()
            await asyncio.sleep(self.config.REFRESH_INTERVAL)

    async def _read_keys(self, keys) -> None:
        while self.running:
            key = await keys.get()
            self.log.debug(f"Key {key!r}")
            self.on_key(key)

    async def run(self, keys) -> None:
        """Run until the user quits. ``keys`` provides ``await keys.get()``."""
        self.log.info(f"Starting, server {self.config.SERVER_URL}, refresh every {self.config.REFRESH_INTERVAL}s")
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGWINCH, self.invalidate)

        ticker = asyncio.create_task(self._ticker())
        reader = asyncio.create_task(self._read_keys(keys))
        try:
            with Live(self.render(), console=self.console, screen=True, auto_refresh=False) as live:
                while self.running:
                    await self._redraw.wait()
                    self._redraw.clear()
                    live.update(self.render(), refresh=True)
        finally:
            loop.remove_signal_handler(signal.SIGWINCH)
            for task in (ticker, reader, self._refresh_task, *self._control_tasks):
                if task is not None:
                    task.cancel()
            self.details.close()
            await self.gateway.close()
            self.log.info(f"Stopped, table preferences {self.table.preferences()}")
