"""
Data models mirroring the qBittorrent Web API v2 payloads.

Torrent is the canonical record kept by the sync engine. PartialTorrent is
the delta form sent by /api/v2/sync/maindata: every field is optional and
pydantic's fields-set bookkeeping records which ones were actually present
in the JSON, so "unchanged" is never confused with "zero".
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field


# Raw qBittorrent state tags
STATE_DOWNLOADING = {"downloading", "metaDL", "forcedDL", "allocating"}
STATE_UPLOADING = {"uploading", "forcedUP", "stalledUP"}
STATE_PAUSED = {"pausedDL", "pausedUP", "stoppedUP", "stoppedDL"}
STATE_QUEUED = {"queuedDL", "queuedUP", "queuedForChecking"}
STATE_STALLED = {"stalledDL", "stalledUP"}
STATE_CHECKING = {"checkingDL", "checkingUP", "checkingResumeData", "queuedForChecking"}
STATE_ERROR = {"error", "missingFiles"}


def is_downloading(state: str) -> bool:
    return state in STATE_DOWNLOADING


def is_uploading(state: str) -> bool:
    return state in STATE_UPLOADING


def is_paused(state: str) -> bool:
    return state in STATE_PAUSED


def is_active(state: str) -> bool:
    return is_downloading(state) or is_uploading(state)


class Torrent(BaseModel):
    """A torrent as last reported by the server."""
    model_config = ConfigDict(frozen=True)

    hash: str = ""
    name: str = ""
    size: int = 0
    progress: float = 0.0
    dlspeed: int = 0
    upspeed: int = 0
    priority: int = 0
    num_seeds: int = 0
    num_leechs: int = 0
    num_complete: int = 0
    num_incomplete: int = 0
    ratio: float = 0.0
    eta: int = 0
    state: str = ""
    category: str = ""
    tags: str = ""
    added_on: int = 0
    completion_on: int = 0
    tracker: str = ""
    save_path: str = ""
    downloaded: int = 0
    uploaded: int = 0
    amount_left: int = 0
    time_active: int = 0
    auto_tmm: bool = False
    total_size: int = 0
    max_ratio: float = 0.0
    max_seeding_time: int = 0
    seeding_time_limit: int = 0


class PartialTorrent(BaseModel):
    """Changed fields of a torrent; anything not sent stays as it was."""

    hash: Optional[str] = None
    name: Optional[str] = None
    size: Optional[int] = None
    progress: Optional[float] = None
    dlspeed: Optional[int] = None
    upspeed: Optional[int] = None
    priority: Optional[int] = None
    num_seeds: Optional[int] = None
    num_leechs: Optional[int] = None
    num_complete: Optional[int] = None
    num_incomplete: Optional[int] = None
    ratio: Optional[float] = None
    eta: Optional[int] = None
    state: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[str] = None
    added_on: Optional[int] = None
    completion_on: Optional[int] = None
    tracker: Optional[str] = None
    save_path: Optional[str] = None
    downloaded: Optional[int] = None
    uploaded: Optional[int] = None
    amount_left: Optional[int] = None
    time_active: Optional[int] = None
    auto_tmm: Optional[bool] = None
    total_size: Optional[int] = None
    max_ratio: Optional[float] = None
    max_seeding_time: Optional[int] = None
    seeding_time_limit: Optional[int] = None

    def present_fields(self) -> Dict[str, object]:
        """Fields present in the payload. An explicit null counts as absent."""
        return self.model_dump(exclude_unset=True, exclude_none=True)

    def apply_to(self, torrent: Torrent) -> Torrent:
        """Return a copy of ``torrent`` with every present field overwritten."""
        return torrent.model_copy(update=self.present_fields())

    def to_torrent(self) -> Torrent:
        """Promote to a full record, absent fields taking their zero value."""
        return Torrent(**self.present_fields())


class Category(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = ""
    save_path: str = Field("", alias="savePath")
    download_path: str = ""


class ServerState(BaseModel):
    """Global transfer counters; deltas carry only the counters that moved."""
    model_config = ConfigDict(frozen=True)

    connection_status: str = ""
    dht_nodes: int = 0
    dl_info_speed: int = 0
    up_info_speed: int = 0
    dl_info_data: int = 0
    up_info_data: int = 0
    free_space_on_disk: int = 0


class SyncResponse(BaseModel):
    """One /api/v2/sync/maindata response, either a full snapshot or a delta."""

    rid: int = 0
    full_update: bool = False
    torrents: Dict[str, PartialTorrent] = Field(default_factory=dict)
    torrents_removed: List[str] = Field(default_factory=list)
    categories: Dict[str, Category] = Field(default_factory=dict)
    categories_removed: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    tags_removed: List[str] = Field(default_factory=list)
    server_state: Optional[Dict[str, object]] = None


# Detail sub-resources

class TorrentProperties(BaseModel):
    save_path: str = ""
    creation_date: int = 0
    piece_size: int = 0
    comment: str = ""
    total_wasted: int = 0
    total_uploaded: int = 0
    total_uploaded_session: int = 0
    total_downloaded: int = 0
    total_downloaded_session: int = 0
    up_limit: int = 0
    dl_limit: int = 0
    time_elapsed: int = 0
    seeding_time: int = 0
    nb_connections: int = 0
    nb_connections_limit: int = 0
    share_ratio: float = 0.0
    addition_date: int = 0
    completion_date: int = 0
    created_by: str = ""
    dl_speed_avg: int = 0
    dl_speed: int = 0
    eta: int = 0
    last_seen: int = 0
    peers: int = 0
    peers_total: int = 0
    pieces_have: int = 0
    pieces_num: int = 0
    reannounce: int = 0
    seeds: int = 0
    seeds_total: int = 0
    total_size: int = 0
    up_speed_avg: int = 0
    up_speed: int = 0


class Tracker(BaseModel):
    url: str = ""
    status: int = 0
    # DHT, PeX and LSD pseudo-trackers report an empty tier
    tier: Union[int, str] = 0
    num_peers: int = 0
    num_seeds: int = 0
    num_leeches: int = 0
    num_downloaded: int = 0
    msg: str = ""


class Peer(BaseModel):
    ip: str = ""
    port: int = 0
    country: str = ""
    connection: str = ""
    flags: str = ""
    client: str = ""
    progress: float = 0.0
    dl_speed: int = 0
    up_speed: int = 0
    downloaded: int = 0
    uploaded: int = 0
    relevance: float = 0.0
    files: str = ""


class TorrentFile(BaseModel):
    index: int = 0
    name: str = ""
    size: int = 0
    progress: float = 0.0
    priority: int = 0
    is_seed: bool = False
    piece_range: List[int] = Field(default_factory=list)
    availability: float = 0.0


class RecordDetail(BaseModel):
    """Everything the detail view shows for one torrent."""

    hash: str
    properties: TorrentProperties = Field(default_factory=TorrentProperties)
    trackers: List[Tracker] = Field(default_factory=list)
    peers: Dict[str, Peer] = Field(default_factory=dict)
    files: List[TorrentFile] = Field(default_factory=list)


@dataclass
class CanonicalState:
    """The in-memory mirror of the server, replaced wholesale on every merge."""
    cursor: int = 0
    records: Dict[str, Torrent] = field(default_factory=dict)
    categories: Dict[str, Category] = field(default_factory=dict)
    tags: Set[str] = field(default_factory=set)
    server_state: ServerState = field(default_factory=ServerState)
