# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""One live SSH transport and the channels multiplexed over it."""

from __future__ import annotations

import asyncio
import contextlib
import stat
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

import asyncssh
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from sshdeck.constants import DEFAULT_READ_CHUNK
from sshdeck.core.stream import ShellStream, StreamHub
from sshdeck.errors import (
    ChannelError,
    CommandFailed,
    CommandTimeout,
    NoActiveConnection,
    SSHError,
    TransferError,
)
from sshdeck.logging import get_logger
from sshdeck.models import (
    CommandResult,
    ConnectionConfig,
    ListingResult,
    RemoteEntry,
    SessionEvent,
    SessionEventKind,
    SessionState,
    SessionStatus,
)
from sshdeck.paths import default_download_target
from sshdeck.settings import Settings
from sshdeck.transport.negotiator import NegotiatedTransport

logger = get_logger(__name__)

T = TypeVar("T")


class Session(BaseModel):
    """Owns one SSH transport plus its shell, exec and SFTP channels.

    The shell channel lives as long as the session. Exec and SFTP channels
    are opened per call and closed before the call returns. Public
    operations report failure through their return value and never raise.
    """

    session_id: str
    config: ConnectionConfig
    transport: NegotiatedTransport
    settings: Settings = Field(default_factory=Settings)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(arbitrary_types_allowed=True)

    _state: SessionState = PrivateAttr(default=SessionState.CONNECTING)
    _end_reason: str | None = PrivateAttr(default=None)
    _shell: Any = PrivateAttr(default=None)
    _shell_ready: bool = PrivateAttr(default=False)
    _reader_task: asyncio.Task[None] | None = PrivateAttr(default=None)
    _hub: StreamHub = PrivateAttr()
    _drain_task: asyncio.Task[None] | None = PrivateAttr(default=None)
    _listeners: list[Callable[[SessionEvent], None]] = PrivateAttr(default_factory=list)

    def model_post_init(self, __context: Any) -> None:
        """Create the stream hub and watch the transport for loss."""
        self._hub = StreamHub(self.session_id, self.settings.stream_queue_size)
        self.transport.observer.on_lost(self._on_transport_lost)

    # -- state -----------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def shell_ready(self) -> bool:
        return self._shell_ready

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    def is_transport_connected(self) -> bool:
        """Gate for exec and SFTP: the transport is up, shell state aside."""
        return self._state == SessionState.READY and not self.transport.observer.lost

    def is_connection_active(self) -> bool:
        """Gate for shell writes and resizes: transport up and shell set up."""
        return self.is_transport_connected() and self._shell_ready and self._shell is not None

    def get_status(self) -> SessionStatus:
        return SessionStatus(
            session_id=self.session_id,
            target=self.config.target,
            state=self._state,
            shell_ready=self._shell_ready,
            suite=self.transport.suite,
            created_at=self.created_at,
        )

    # -- events ----------------------------------------------------------------

    def add_listener(self, callback: Callable[[SessionEvent], None]) -> None:
        """Register a lifecycle listener (ready, shell_ready, error, end, close...)."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[SessionEvent], None]) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(callback)

    def subscribe(self, maxsize: int | None = None) -> ShellStream:
        """Subscribe to raw shell output. Close the stream to unsubscribe."""
        return self._hub.subscribe(maxsize)

    def _emit(self, kind: SessionEventKind, message: str = "") -> None:
        event = SessionEvent(session_id=self.session_id, kind=kind, message=message)
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception as exc:
                logger.warning(
                    "session_listener_failed",
                    session_id=self.session_id,
                    event_kind=str(kind),
                    error=str(exc),
                )

    # -- lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Mark the transport ready and open the interactive shell.

        A shell that fails to open is reported as an ``error`` event; the
        session stays ready with ``shell_ready`` False.
        """
        if self.is_terminal:
            return
        self._state = SessionState.READY
        self._emit(SessionEventKind.READY)
        await self._open_shell()

    async def _open_shell(self) -> None:
        settings = self.settings
        try:
            process = await self.transport.connection.create_process(
                term_type=settings.term_type,
                term_size=(settings.term_cols, settings.term_rows),
                encoding=None,
            )
        except (asyncssh.Error, OSError) as e:
            logger.warning("shell_open_failed", session_id=self.session_id, error=str(e))
            self._emit(SessionEventKind.ERROR, f"Failed to start shell: {e}")
            return

        if self.is_terminal:
            process.close()
            return

        self._shell = process
        self._shell_ready = True
        self._reader_task = asyncio.create_task(self._pump_shell(process))
        logger.info("shell_ready", session_id=self.session_id, term=settings.term_type)
        self._emit(SessionEventKind.SHELL_READY)

    async def _pump_shell(self, process: Any) -> None:
        try:
            while True:
                chunk = await process.stdout.read(DEFAULT_READ_CHUNK)
                if not chunk:
                    break
                await self._hub.publish(chunk)
        except (asyncssh.Error, OSError) as e:
            logger.warning("shell_read_failed", session_id=self.session_id, error=str(e))
            self._emit(SessionEventKind.ERROR, f"Shell stream error: {e}")
        finally:
            self._shell_ready = False
            self._hub.finish(self._end_reason or "shell_closed")
            if not self.is_terminal:
                logger.info("shell_closed", session_id=self.session_id)
                self._emit(SessionEventKind.SHELL_CLOSED)

    def _on_transport_lost(self, exc: Exception | None) -> None:
        if self.is_terminal:
            return
        self._state = SessionState.ERRORED if exc else SessionState.ENDED
        self._end_reason = "connection_lost"
        self._shell_ready = False

        if exc:
            logger.warning("ssh_connection_lost", session_id=self.session_id, error=str(exc))
            self._emit(SessionEventKind.ERROR, str(exc))
        else:
            logger.info("ssh_connection_ended", session_id=self.session_id)

        # A running reader drains what was already received, then finishes the hub.
        reader = self._reader_task
        if reader is None or reader.done():
            self._hub.finish(self._end_reason)
        else:
            self._drain_task = asyncio.create_task(self._drain_shell(reader))

        if not exc:
            self._emit(SessionEventKind.END)
        self._emit(SessionEventKind.CLOSE)

    async def _drain_shell(self, reader: asyncio.Task[None]) -> None:
        """Give the reader a bounded window to flush, then end every stream."""
        done, _ = await asyncio.wait({reader}, timeout=self.settings.shell_drain_timeout_s)
        if done:
            return
        logger.warning("shell_drain_timeout", session_id=self.session_id, timeout_s=self.settings.shell_drain_timeout_s)
        self._hub.finish(self._end_reason or "connection_lost")
        reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reader

    async def disconnect(self) -> None:
        """Close the shell channel, then the transport. Idempotent."""
        if self.is_terminal:
            return
        self._state = SessionState.ENDED
        self._end_reason = "disconnected"
        self._shell_ready = False

        shell, self._shell = self._shell, None
        if shell is not None:
            shell.close()

        task, self._reader_task = self._reader_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._hub.finish(self._end_reason)

        connection = self.transport.connection
        connection.close()
        with contextlib.suppress(asyncssh.Error, OSError):
            await connection.wait_closed()

        logger.info("session_disconnected", session_id=self.session_id, target=self.config.target)
        self._emit(SessionEventKind.END)
        self._emit(SessionEventKind.CLOSE)

    # -- shell -----------------------------------------------------------------

    def write_to_shell(self, data: bytes | str) -> bool:
        """Write raw bytes to the shell. False means nothing was delivered."""
        if not self.is_connection_active():
            return False
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        try:
            self._shell.stdin.write(payload)
        except (asyncssh.Error, OSError) as e:
            logger.warning("shell_write_failed", session_id=self.session_id, error=str(e))
            return False
        return True

    def resize_terminal(self, cols: int, rows: int) -> bool:
        """Propagate a window-size change to the remote pty."""
        if cols <= 0 or rows <= 0 or not self.is_connection_active():
            return False
        try:
            self._shell.change_terminal_size(cols, rows)
        except (asyncssh.Error, OSError) as e:
            logger.warning("shell_resize_failed", session_id=self.session_id, error=str(e))
            return False
        logger.debug("shell_resized", session_id=self.session_id, cols=cols, rows=rows)
        return True

    # -- exec ------------------------------------------------------------------

    async def execute_command(self, command: str, timeout: float | None = None) -> CommandResult:
        """Run ``command`` on a dedicated exec channel.

        Args:
            command: Remote command line
            timeout: Seconds before the channel is forcibly closed
                (defaults to ``settings.command_timeout_s``)

        Returns:
            Success with stdout on exit code 0; otherwise failure carrying
            stderr (or the exit code) plus any stdout captured.
        """
        if not self.is_transport_connected():
            return CommandResult.failed(NoActiveConnection())

        timeout = timeout if timeout is not None else self.settings.command_timeout_s
        connection = self.transport.connection

        try:
            process = await connection.create_process(command, encoding="utf-8", errors="replace")
        except (asyncssh.Error, OSError) as e:
            return CommandResult.failed(ChannelError(str(e)))

        try:
            completed = await asyncio.wait_for(process.wait(), timeout=timeout)
        except TimeoutError:
            process.close()
            logger.warning("command_timeout", session_id=self.session_id, timeout_s=timeout)
            return CommandResult.failed(CommandTimeout(f"Command timeout after {timeout:g}s"))
        except (asyncssh.Error, OSError) as e:
            process.close()
            return CommandResult.failed(self._channel_failure(e))

        stdout = completed.stdout or ""
        stderr = completed.stderr or ""
        code = completed.exit_status

        if code == 0:
            return CommandResult(success=True, output=stdout)
        if code is None and self.is_terminal:
            return CommandResult.failed(
                NoActiveConnection("Session disconnected while the command was running"), output=stdout
            )

        if stderr:
            message = stderr
        elif code is None and completed.exit_signal:
            message = f"Command terminated by signal {completed.exit_signal[0]}"
        else:
            message = f"Command exited with code {code}"
        return CommandResult.failed(CommandFailed(message), output=stdout)

    def _channel_failure(self, exc: Exception) -> SSHError:
        if self.is_terminal:
            return NoActiveConnection("Session disconnected while the operation was running")
        return ChannelError(str(exc))

    # -- sftp ------------------------------------------------------------------

    async def _with_sftp(self, action: str, operation: Callable[[Any], Awaitable[T]]) -> T:
        """Run ``operation`` on a fresh SFTP channel, closing it afterwards.

        Raises:
            TransferError: Subsystem could not start or the operation failed
        """
        try:
            sftp = await self.transport.connection.start_sftp_client()
        except (asyncssh.Error, OSError) as e:
            raise TransferError(f"SFTP error: {e}") from e

        try:
            return await operation(sftp)
        except (asyncssh.Error, OSError) as e:
            if self.is_terminal:
                raise NoActiveConnection("Session disconnected during transfer") from e
            raise TransferError(f"{action} failed: {e}") from e
        finally:
            sftp.exit()
            with contextlib.suppress(asyncssh.Error, OSError):
                await sftp.wait_closed()

    async def download_file(self, remote_path: str, local_path: str | Path | None = None) -> CommandResult:
        """Fetch a remote file.

        Args:
            remote_path: Remote file path
            local_path: Local destination (defaults to the downloads
                directory plus the remote base name)
        """
        if not self.is_transport_connected():
            return CommandResult.failed(NoActiveConnection())

        try:
            if local_path is None:
                target = default_download_target(remote_path, self.settings.downloads_dir)
                target.parent.mkdir(parents=True, exist_ok=True)
            else:
                target = Path(local_path).expanduser()
        except (ValueError, OSError) as e:
            return CommandResult.failed(TransferError(f"Download failed: {e}"))

        async def _get(sftp: Any) -> None:
            await sftp.get(remote_path, str(target))

        try:
            await self._with_sftp("Download", _get)
        except SSHError as e:
            logger.warning("download_failed", session_id=self.session_id, remote_path=remote_path, error=e.message)
            return CommandResult.failed(e)

        logger.info("download_complete", session_id=self.session_id, remote_path=remote_path, local_path=str(target))
        return CommandResult(success=True, output=f"File downloaded to {target}")

    async def upload_file(self, local_path: str | Path, remote_path: str) -> CommandResult:
        """Send a local file to ``remote_path``."""
        if not self.is_transport_connected():
            return CommandResult.failed(NoActiveConnection())

        source = Path(local_path).expanduser()

        async def _put(sftp: Any) -> None:
            await sftp.put(str(source), remote_path)

        try:
            await self._with_sftp("Upload", _put)
        except SSHError as e:
            logger.warning("upload_failed", session_id=self.session_id, remote_path=remote_path, error=e.message)
            return CommandResult.failed(e)

        logger.info("upload_complete", session_id=self.session_id, local_path=str(source), remote_path=remote_path)
        return CommandResult(success=True, output=f"File uploaded to {remote_path}")

    async def list_directory(self, remote_path: str = ".") -> ListingResult:
        """List a remote directory, excluding ``.`` and ``..``."""
        if not self.is_transport_connected():
            return ListingResult.failed(NoActiveConnection(), path=remote_path)

        async def _readdir(sftp: Any) -> list[Any]:
            return await sftp.readdir(remote_path)

        try:
            names = await self._with_sftp("Listing", _readdir)
        except SSHError as e:
            return ListingResult.failed(e, path=remote_path)

        entries = [_remote_entry(name) for name in names]
        entries = sorted((e for e in entries if e.name not in (".", "..")), key=lambda e: e.name)
        return ListingResult(success=True, path=remote_path, entries=entries)


def _remote_entry(name: Any) -> RemoteEntry:
    filename = name.filename
    if isinstance(filename, bytes):
        filename = filename.decode("utf-8", errors="replace")

    attrs = name.attrs
    mode = attrs.permissions or 0
    if stat.S_ISLNK(mode):
        kind = "symlink"
    elif stat.S_ISDIR(mode):
        kind = "directory"
    elif stat.S_ISREG(mode):
        kind = "file"
    else:
        kind = "other"

    modified = datetime.fromtimestamp(attrs.mtime, tz=UTC) if attrs.mtime is not None else None
    return RemoteEntry(
        name=filename,
        kind=kind,
        size=attrs.size or 0,
        permissions=stat.filemode(mode) if mode else "",
        modified=modified,
        hidden=filename.startswith("."),
    )
