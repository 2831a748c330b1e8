"""
Command-line entry point for qbt-tui.

Without a command the interactive table is started. The ``add`` and ``move``
commands run a single control operation against the server and exit.

Usage:
    qbt-tui --url http://localhost:8080
    qbt-tui add <file.torrent | url | magnet> [...]
    qbt-tui move <info_hash> [<info_hash> ...] --location /downloads/done
"""

import argparse
import asyncio
import os
import sys

from . import __version__
from .app import App
from .config import Config, ConfigError
from .errors import GatewayError
from .gateway import QBittorrentGateway
from .layout import COLUMN_KEYS
from .logger import setup_logging
from .terminal import KeyReader


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qbt-tui",
        description="Terminal client for qBittorrent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Settings are read from QBT_* environment variables (and a .env file);
command line flags take precedence.

Examples:
  %(prog)s --url http://localhost:8080 --username admin --password secret
  %(prog)s --columns name,size,progress,eta --sort-column eta
  %(prog)s add ~/Downloads/debian.iso.torrent "magnet:?xt=urn:btih:..."
  %(prog)s move 8c4e... --location /data/complete
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--url", help="qBittorrent Web UI URL")
    parser.add_argument("--username", help="Web UI username")
    parser.add_argument("--password", help="Web UI password")
    parser.add_argument("--refresh-interval", type=int, help="Seconds between refreshes")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--columns", help=f"Comma separated columns ({', '.join(COLUMN_KEYS)})")
    parser.add_argument("--sort-column", help="Initial sort column")
    parser.add_argument("--sort-direction", choices=["asc", "desc"], help="Initial sort direction")
    parser.add_argument("--debug", action="store_true", help="Write a debug log")
    parser.add_argument("--log-file", help="Debug log path")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    add_parser = subparsers.add_parser("add", help="Add torrents from files, URLs or magnet links")
    add_parser.add_argument("sources", nargs="+", help="Torrent file paths, URLs or magnet links")

    move_parser = subparsers.add_parser("move", help="Move torrent data to a new location")
    move_parser.add_argument("hashes", nargs="+", help="Info hashes")
    move_parser.add_argument("--location", required=True, help="New save path")

    return parser


def build_config(args) -> Config:
    """Environment settings overridden by flags, validated."""
    config = Config()
    if args.url:
        config.SERVER_URL = args.url
    if args.username is not None:
        config.SERVER_USERNAME = args.username
    if args.password is not None:
        config.SERVER_PASSWORD = args.password
    if args.refresh_interval is not None:
        config.REFRESH_INTERVAL = args.refresh_interval
    if args.timeout is not None:
        config.REQUEST_TIMEOUT = args.timeout
    if args.columns:
        config.COLUMNS = [key.strip() for key in args.columns.split(",") if key.strip()]
    if args.sort_column:
        config.DEFAULT_SORT_COLUMN = args.sort_column
    if args.sort_direction:
        config.DEFAULT_SORT_DIRECTION = args.sort_direction
    if args.debug:
        config.DEBUG_ENABLED = True
    if args.log_file:
        config.DEBUG_LOG_FILE = args.log_file
    return config.validate()


def make_gateway(config: Config, log) -> QBittorrentGateway:
    return QBittorrentGateway(
        config.SERVER_URL,
        config.SERVER_USERNAME,
        config.SERVER_PASSWORD,
        timeout=config.REQUEST_TIMEOUT,
        log=log,
    )


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://", "magnet:"))


async def add_torrents(gateway, sources) -> int:
    failures = 0
    for source in sources:
        try:
            if is_url(source):
                await gateway.add_torrent_url(source)
            else:
                await gateway.add_torrent_file(os.path.expanduser(source))
            print(f"Added: {source}")
        except GatewayError as e:
            print(f"Failed to add {source}: {e}", file=sys.stderr)
            failures += 1
    return 1 if failures else 0


async def run_command(args, config: Config, log) -> int:
    gateway = make_gateway(config, log)
    try:
        if config.SERVER_USERNAME:
            await gateway.login()
        if args.command == "add":
            return await add_torrents(gateway, args.sources)
        if args.command == "move":
            await gateway.set_location(args.hashes, args.location)
            print(f"Moved {len(args.hashes)} torrent(s) to {args.location}")
            return 0
    except GatewayError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await gateway.close()
    return 0


async def run_tui(config: Config, log) -> None:
    app = App(make_gateway(config, log), config, log=log)
    with KeyReader() as keys:
        await app.run(keys)


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    log = setup_logging(config)

    if args.command:
        return asyncio.run(run_command(args, config, log))

    if not sys.stdin.isatty():
        print("Error: the interactive interface needs a terminal", file=sys.stderr)
        return 2

    try:
        asyncio.run(run_tui(config, log))
    except KeyboardInterrupt:
        log.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
