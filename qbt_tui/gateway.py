"""
Access to the qBittorrent Web API v2.

Gateway is the capability interface the rest of the application talks to;
QBittorrentGateway implements it over an httpx.AsyncClient that keeps the
SID session cookie. Every failure is raised as one of the GatewayError
subclasses so the event loop can classify it.
"""

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from .errors import (
    AuthenticationError,
    InvalidRequestError,
    NetworkError,
    RequestTimeout,
    ServerError,
    classify_status,
)
from .models import Peer, RecordDetail, SyncResponse, TorrentFile, TorrentProperties, Tracker


class Gateway(ABC):
    """Abstract interface to a torrent server."""

    @abstractmethod
    async def login(self) -> None:
        """Authenticate and keep the session for later requests."""
        pass

    @abstractmethod
    async def fetch_delta(self, cursor: int) -> SyncResponse:
        """
        Fetch changes since ``cursor``.

        Args:
            cursor: Response id of the last merged response, 0 for everything

        Returns:
            A full snapshot when the server cannot produce a delta from
            ``cursor``, otherwise the changed fields only.
        """
        pass

    async def fetch_snapshot(self) -> SyncResponse:
        """Fetch the full server state."""
        return await self.fetch_delta(0)

    @abstractmethod
    async def fetch_record_detail(self, info_hash: str) -> RecordDetail:
        """Fetch properties, trackers, peers and files of one torrent."""
        pass

    @abstractmethod
    async def pause(self, hashes: List[str]) -> None:
        pass

    @abstractmethod
    async def resume(self, hashes: List[str]) -> None:
        pass

    @abstractmethod
    async def delete(self, hashes: List[str], delete_files: bool = False) -> None:
        """Remove torrents, optionally with their downloaded data."""
        pass

    @abstractmethod
    async def set_location(self, hashes: List[str], location: str) -> None:
        pass

    @abstractmethod
    async def add_torrent_file(self, path: str) -> None:
        pass

    @abstractmethod
    async def add_torrent_url(self, url: str) -> None:
        """Add a torrent from an HTTP(S) URL or a magnet link."""
        pass

    async def close(self) -> None:
        pass


class QBittorrentGateway(Gateway):
    """Gateway implementation for the qBittorrent Web API."""

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log=logger,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.log = log.bind(component="gateway")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Referer": self.base_url},
            transport=transport,
        )

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, endpoint, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeout(f"{endpoint} request timed out", cause=e) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{endpoint} request failed", cause=e) from e

        self.log.debug(f"{method} {endpoint} -> {response.status_code}")
        if response.status_code != 200:
            raise classify_status(response.status_code, response.text.strip())
        return response

    async def _get_json(self, endpoint: str, params: Optional[dict] = None) -> Any:
        response = await self._request("GET", endpoint, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise ServerError(f"failed to decode {endpoint} response", cause=e) from e

    async def _post(self, endpoint: str, data: dict, **kwargs) -> httpx.Response:
        return await self._request("POST", endpoint, data=data, **kwargs)

    async def login(self) -> None:
        response = await self._post(
            "/api/v2/auth/login",
            {"username": self.username, "password": self.password},
        )
        if response.text.strip() == "Fails.":
            raise AuthenticationError("invalid username or password")
        if "SID" not in self.client.cookies:
            raise ServerError("no SID cookie received")
        self.log.info(f"Logged in to {self.base_url}")

    async def fetch_delta(self, cursor: int) -> SyncResponse:
        data = await self._get_json("/api/v2/sync/maindata", params={"rid": cursor})
        try:
            return SyncResponse.model_validate(data)
        except ValidationError as e:
            raise ServerError("malformed sync response", cause=e) from e

    async def fetch_record_detail(self, info_hash: str) -> RecordDetail:
        params = {"hash": info_hash}
        properties, trackers, peers, files = await asyncio.gather(
            self._get_json("/api/v2/torrents/properties", params),
            self._get_json("/api/v2/torrents/trackers", params),
            self._get_json("/api/v2/sync/torrentPeers", {"hash": info_hash, "rid": 0}),
            self._get_json("/api/v2/torrents/files", params),
        )
        try:
            return RecordDetail(
                hash=info_hash,
                properties=TorrentProperties.model_validate(properties),
                trackers=[Tracker.model_validate(t) for t in trackers or []],
                peers={
                    key: Peer.model_validate(p)
                    for key, p in ((peers or {}).get("peers") or {}).items()
                },
                files=[TorrentFile.model_validate(f) for f in files or []],
            )
        except (ValidationError, AttributeError, TypeError) as e:
            raise ServerError(f"malformed detail response for {info_hash}", cause=e) from e

    async def pause(self, hashes: List[str]) -> None:
        await self._post("/api/v2/torrents/stop", {"hashes": "|".join(hashes)})
        self.log.info(f"Paused {len(hashes)} torrent(s)")

    async def resume(self, hashes: List[str]) -> None:
        await self._post("/api/v2/torrents/start", {"hashes": "|".join(hashes)})
        self.log.info(f"Resumed {len(hashes)} torrent(s)")

    async def delete(self, hashes: List[str], delete_files: bool = False) -> None:
        await self._post(
            "/api/v2/torrents/delete",
            {"hashes": "|".join(hashes), "deleteFiles": "true" if delete_files else "false"},
        )
        self.log.info(f"Deleted {len(hashes)} torrent(s) delete_files={delete_files}")

    async def set_location(self, hashes: List[str], location: str) -> None:
        if not location:
            raise InvalidRequestError("location must not be empty")
        await self._post(
            "/api/v2/torrents/setLocation",
            {"hashes": "|".join(hashes), "location": location},
        )
        self.log.info(f"Moved {len(hashes)} torrent(s) to {location}")

    async def add_torrent_file(self, path: str) -> None:
        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise InvalidRequestError(f"cannot read torrent file {path}", cause=e) from e

        response = await self._request(
            "POST",
            "/api/v2/torrents/add",
            files={"torrents": (os.path.basename(path), content, "application/x-bittorrent")},
        )
        if response.text.strip() == "Fails.":
            raise InvalidRequestError(f"server rejected torrent file {path}")
        self.log.info(f"Added torrent file {path}")

    async def add_torrent_url(self, url: str) -> None:
        response = await self._post("/api/v2/torrents/add", {"urls": url})
        if response.text.strip() == "Fails.":
            raise InvalidRequestError(f"server rejected torrent url {url}")
        self.log.info(f"Added torrent url {url}")

    async def close(self) -> None:
        await self.client.aclose()
