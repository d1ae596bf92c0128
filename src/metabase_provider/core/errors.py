from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TransportError(Exception):
    """Remote call failure with context (auth, network, bad status or payload)."""
    status: int
    url: str
    body: str = ""
    message: str = ""

    def __str__(self) -> str:  # pragma: no cover (simple formatting)
        base = f"TransportError(status={self.status}, url={self.url})"
        if self.message:
            base += f": {self.message}"
        if self.body:
            base += f" body={self.body[:200]}"
        return base


@dataclass
class NotFoundError(TransportError):
    """The remote resource does not exist (HTTP 404)."""

    def __str__(self) -> str:  # pragma: no cover (simple formatting)
        return f"not found: {self.url}"

