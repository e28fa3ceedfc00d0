# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Concurrent registry of live SSH sessions."""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING, Any

import structlog

from sshdeck.constants import SESSION_ID_PREFIX
from sshdeck.core.session import Session
from sshdeck.errors import RegistryFull, SSHError, translate_error
from sshdeck.models import ConnectResult, SessionEvent, SessionEventKind, SessionStatus
from sshdeck.settings import Settings
from sshdeck.transport.negotiator import ConnectionNegotiator

if TYPE_CHECKING:
    from sshdeck.models import ConnectionConfig

log = structlog.get_logger()


def new_session_id() -> str:
    """Generate a session id: prefix, epoch milliseconds, random suffix."""
    return f"{SESSION_ID_PREFIX}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class SessionRegistry:
    """Maps session ids to live sessions.

    A session is present only while its transport is usable. Sessions whose
    transport ends or errors are evicted without any caller action.

    Usage:
        async with SessionRegistry() as registry:
            result = await registry.create(config)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        negotiator: ConnectionNegotiator | None = None,
    ) -> None:
        """Initialize session registry.

        Args:
            settings: Settings shared with every session
            negotiator: Connection negotiator (defaults to one built from settings)
        """
        self._settings = settings or Settings()
        self._negotiator = negotiator if negotiator is not None else ConnectionNegotiator(self._settings)
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> SessionRegistry:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect_all()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    async def create(self, config: ConnectionConfig) -> ConnectResult:
        """Negotiate a transport, start its session and register it.

        Args:
            config: Connection configuration

        Returns:
            ConnectResult with the new session id, or the categorized failure.
            Nothing is registered on failure.
        """
        async with self._lock:
            if len(self._sessions) >= self._settings.max_sessions:
                return ConnectResult.failed(RegistryFull(f"Max sessions ({self._settings.max_sessions}) reached"))

        # Negotiation runs without the lock so connects proceed in parallel.
        try:
            transport = await self._negotiator.negotiate(config)
        except SSHError as e:
            log.warning("session_create_failed", target=config.target, error_type=e.kind)
            return ConnectResult.failed(e)
        except Exception as e:
            error = translate_error(e, config)
            log.warning("session_create_failed", target=config.target, error_type=error.kind, error=str(e))
            return ConnectResult.failed(error)

        session = Session(
            session_id=new_session_id(),
            config=config,
            transport=transport,
            settings=self._settings,
        )
        session.add_listener(self._on_session_event)

        async with self._lock:
            if len(self._sessions) >= self._settings.max_sessions:
                await session.disconnect()
                return ConnectResult.failed(RegistryFull(f"Max sessions ({self._settings.max_sessions}) reached"))
            self._sessions[session.session_id] = session

        await session.start()

        if session.is_terminal:
            self._evict(session.session_id)
            log.warning("session_lost_during_start", session_id=session.session_id, target=config.target)
            return ConnectResult.failed(
                translate_error(
                    transport.observer.lost_exc or ConnectionResetError("Connection closed during setup"),
                    config,
                )
            )

        log.info(
            "session_created",
            session_id=session.session_id,
            target=config.target,
            suite=transport.suite,
            shell_ready=session.shell_ready,
        )
        return ConnectResult(success=True, session_id=session.session_id)

    def get(self, session_id: str) -> Session | None:
        """Look up a live session. Unknown and evicted ids yield None."""
        return self._sessions.get(session_id)

    def list(self) -> list[str]:
        """Registered session ids, in insertion order."""
        return [*self._sessions]

    def statuses(self) -> list[SessionStatus]:
        """Snapshot of every registered session's status."""
        return [session.get_status() for session in [*self._sessions.values()]]

    async def disconnect(self, session_id: str) -> bool:
        """Close and remove a session.

        Returns:
            True if the id named a registered session
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        await session.disconnect()
        log.info("session_closed", session_id=session_id)
        return True

    async def disconnect_all(self) -> None:
        """Close every session."""
        session_ids = list(self._sessions.keys())
        for session_id in session_ids:
            try:
                await self.disconnect(session_id)
            except Exception as e:
                log.warning("session_close_failed", session_id=session_id, error=str(e))
        self._sessions.clear()

    def _on_session_event(self, event: SessionEvent) -> None:
        if event.kind in (SessionEventKind.END, SessionEventKind.CLOSE):
            self._evict(event.session_id)

    def _evict(self, session_id: str) -> None:
        # Runs on the event loop thread with no await, so the pop is atomic.
        if self._sessions.pop(session_id, None) is not None:
            log.info("session_evicted", session_id=session_id)
