"""Sessions, their registry and the connectivity prober."""

from __future__ import annotations

from sshdeck.core.prober import ConnectivityProber
from sshdeck.core.registry import SessionRegistry
from sshdeck.core.session import Session
from sshdeck.core.stream import ShellStream, StreamHub

__all__ = [
    "ConnectivityProber",
    "Session",
    "SessionRegistry",
    "ShellStream",
    "StreamHub",
]
