from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class BseError(Exception):
    """
    Base class for every failure surfaced by the BSE client.
    Keeps a small, human-readable summary plus optional structured details.
    """
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        if not self.details:
            return self.message
        return f"{self.message} | details={self.details}"


class NetworkError(BseError):
    """Connection failure or server-side HTTP error. Safe to retry."""


class NetworkTimeout(NetworkError):
    """The transport gave up waiting for the server."""


class InvalidResponse(BseError):
    """A response arrived but cannot be used (empty body, bad JSON, 4xx)."""


class MalformedPayload(InvalidResponse):
    """Tabular text that does not have the expected header/data shape."""


class ArchiveError(BseError):
    """Downloaded bytes are not a readable archive, or the archive is empty."""
