"""
qbt-tui - a terminal client for qBittorrent.

Mirrors the server's torrent list through incremental sync/maindata updates
and renders it as a responsive, sortable and filterable table.
"""

from .config import Config
from .gateway import Gateway, QBittorrentGateway
from .sync import SyncReconciler

__version__ = "0.1.0"
__all__ = ["Config", "Gateway", "QBittorrentGateway", "SyncReconciler"]
