# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Session-id addressed facade returning plain dict results.

Every method accepts ids or configs and returns a JSON-ready dict with
camelCase keys; nothing raises past this boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from sshdeck.core.prober import ConnectivityProber
from sshdeck.core.registry import SessionRegistry
from sshdeck.errors import NoActiveConnection, SSHError
from sshdeck.models import (
    CommandResult,
    ConnectionConfig,
    ListingResult,
    OperationResult,
    ProbeResult,
    SessionEvent,
    SessionEventKind,
)
from sshdeck.settings import Settings

if TYPE_CHECKING:
    from pathlib import Path

    from sshdeck.core.session import Session
    from sshdeck.core.stream import ShellStream

log = structlog.get_logger()


class SSHService:
    """Boundary surface over one registry and one prober."""

    def __init__(
        self,
        settings: Settings | None = None,
        registry: SessionRegistry | None = None,
        prober: ConnectivityProber | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._registry = registry if registry is not None else SessionRegistry(self._settings)
        self._prober = prober if prober is not None else ConnectivityProber(self._settings)
        self._streams: dict[str, list[ShellStream]] = {}

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def __aenter__(self) -> SSHService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # -- connection ------------------------------------------------------------

    async def probe(self, config: ConnectionConfig | dict[str, Any]) -> dict[str, Any]:
        try:
            parsed = _parse_config(config)
        except SSHError as e:
            return ProbeResult(reachable=False, error=e.message, error_type=e.kind).to_dict()
        return (await self._prober.test(parsed)).to_dict()

    async def connect(self, config: ConnectionConfig | dict[str, Any]) -> dict[str, Any]:
        try:
            parsed = _parse_config(config)
        except SSHError as e:
            return OperationResult.failed(e).to_dict()
        return (await self._registry.create(parsed)).to_dict()

    async def disconnect(self, session_id: str) -> dict[str, Any]:
        self._close_streams(session_id)
        return OperationResult(success=await self._registry.disconnect(session_id)).to_dict()

    def list_sessions(self) -> list[str]:
        return self._registry.list()

    def status(self, session_id: str) -> dict[str, Any]:
        session = self._registry.get(session_id)
        if session is None:
            return OperationResult.failed(NoActiveConnection()).to_dict()
        return {"success": True, **session.get_status().to_dict()}

    async def shutdown(self) -> None:
        """Close every subscription and session."""
        for session_id in list(self._streams):
            self._close_streams(session_id)
        await self._registry.disconnect_all()

    # -- shell -----------------------------------------------------------------

    def write(self, session_id: str, data: bytes | str) -> dict[str, Any]:
        session = self._registry.get(session_id)
        if session is None:
            return OperationResult.failed(NoActiveConnection()).to_dict()
        if not session.write_to_shell(data):
            return OperationResult.failed(NoActiveConnection("Shell is not ready")).to_dict()
        return OperationResult(success=True).to_dict()

    def resize(self, session_id: str, cols: int, rows: int) -> dict[str, Any]:
        session = self._registry.get(session_id)
        if session is None:
            return OperationResult.failed(NoActiveConnection()).to_dict()
        if not session.resize_terminal(cols, rows):
            return OperationResult.failed(NoActiveConnection("Shell is not ready")).to_dict()
        return OperationResult(success=True).to_dict()

    def subscribe(self, session_id: str, maxsize: int | None = None) -> ShellStream | None:
        """Subscribe to a session's shell output; None for unknown ids."""
        session = self._registry.get(session_id)
        if session is None:
            return None
        if session_id not in self._streams:
            session.add_listener(self._on_session_event)
        stream = session.subscribe(maxsize)
        self._streams.setdefault(session_id, []).append(stream)
        return stream

    def subscription_count(self, session_id: str) -> int:
        return len(self._streams.get(session_id, []))

    def unsubscribe(self, session_id: str, stream: ShellStream | None = None) -> None:
        """Close one subscription, or every subscription of the session."""
        if stream is None:
            self._close_streams(session_id)
            return
        stream.close()
        streams = self._streams.get(session_id, [])
        if stream in streams:
            streams.remove(stream)
        if not streams:
            self._close_streams(session_id)

    def _close_streams(self, session_id: str) -> None:
        session = self._registry.get(session_id)
        if session is not None:
            session.remove_listener(self._on_session_event)
        for stream in self._streams.pop(session_id, []):
            stream.close()

    def _on_session_event(self, event: SessionEvent) -> None:
        # Streams stay open so consumers can drain buffered output.
        if event.kind in (SessionEventKind.END, SessionEventKind.CLOSE):
            self._streams.pop(event.session_id, None)

    # -- exec / sftp -----------------------------------------------------------

    async def execute(self, session_id: str, command: str, timeout: float | None = None) -> dict[str, Any]:
        session = self._require(session_id)
        if session is None:
            return CommandResult.failed(NoActiveConnection()).to_dict()
        return (await session.execute_command(command, timeout=timeout)).to_dict()

    async def download(
        self,
        session_id: str,
        remote_path: str,
        local_path: str | Path | None = None,
    ) -> dict[str, Any]:
        session = self._require(session_id)
        if session is None:
            return CommandResult.failed(NoActiveConnection()).to_dict()
        return (await session.download_file(remote_path, local_path)).to_dict()

    async def upload(self, session_id: str, local_path: str | Path, remote_path: str) -> dict[str, Any]:
        session = self._require(session_id)
        if session is None:
            return CommandResult.failed(NoActiveConnection()).to_dict()
        return (await session.upload_file(local_path, remote_path)).to_dict()

    async def list_directory(self, session_id: str, remote_path: str = ".") -> dict[str, Any]:
        session = self._require(session_id)
        if session is None:
            return ListingResult.failed(NoActiveConnection(), path=remote_path).to_dict()
        return (await session.list_directory(remote_path)).to_dict()

    def _require(self, session_id: str) -> Session | None:
        session = self._registry.get(session_id)
        if session is None:
            log.debug("session_not_found", session_id=session_id)
        return session


def _parse_config(config: ConnectionConfig | dict[str, Any]) -> ConnectionConfig:
    if isinstance(config, ConnectionConfig):
        return config
    try:
        return ConnectionConfig.model_validate(config)
    except ValidationError as e:
        raise SSHError(f"Invalid connection configuration: {e}") from e
