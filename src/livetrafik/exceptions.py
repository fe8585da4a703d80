"""Custom exception hierarchy for livetrafik."""

from __future__ import annotations


class LivetrafikError(Exception):
    """Base exception for all livetrafik errors."""


class RelayConfigError(LivetrafikError):
    """Invalid or missing configuration."""


class RelayProtocolError(LivetrafikError):
    """Upstream frame could not be decoded as a Phoenix envelope."""

    def __init__(self, message: str, *, frame: str = "") -> None:
        self.frame = frame
        super().__init__(message)


class RelayTransportError(LivetrafikError):
    """Websocket-level failure (connect refused, handshake rejected, DNS)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)
