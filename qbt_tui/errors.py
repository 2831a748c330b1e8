"""
Error taxonomy for the gateway and the sync engine.

Gateway errors are classified so the event loop can decide what to show:
transient failures (network, timeout, server) only annotate the status line
and are retried by the next refresh tick, authentication failures ask for a
new login. Sync errors never leave the reconciler as fatal conditions.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for failures talking to the qBittorrent Web API."""

    kind = "unknown"
    transient = False

    def __init__(self, message: str, status_code: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.cause = cause

    def __str__(self):
        if self.cause is not None:
            return f"{self.kind} error: {self.message} (caused by: {self.cause})"
        return f"{self.kind} error: {self.message}"


class AuthenticationError(GatewayError):
    kind = "authentication"


class NetworkError(GatewayError):
    kind = "network"
    transient = True


class RequestTimeout(GatewayError):
    kind = "timeout"
    transient = True


class ServerError(GatewayError):
    kind = "server"
    transient = True


class InvalidRequestError(GatewayError):
    kind = "validation"


def classify_status(status_code: int, message: str = "") -> GatewayError:
    """Map a non-200 HTTP status to the matching gateway error."""
    if status_code in (401, 403):
        return AuthenticationError(message or "authentication failed", status_code)
    if status_code == 400:
        return InvalidRequestError(message or "invalid request", status_code)
    if 500 <= status_code < 600:
        return ServerError(message or "server error", status_code)
    return GatewayError(message or f"unexpected status code: {status_code}", status_code)


class SyncError(Exception):
    """Base class for problems detected while merging server responses."""


class StaleCursorError(SyncError):
    """A response is not newer than the state it would be merged into."""

    def __init__(self, current: int, received: int):
        super().__init__(f"stale response cursor {received} (state is at {current})")
        self.current = current
        self.received = received


class MalformedDeltaError(SyncError):
    """A single delta entry could not be applied; the rest of the delta still is."""

    def __init__(self, info_hash: str, reason: str):
        super().__init__(f"{reason}: {info_hash}")
        self.info_hash = info_hash
        self.reason = reason
