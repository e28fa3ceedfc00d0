# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Transport negotiation with algorithm-compatibility fallback."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import asyncssh
import structlog
from pydantic import BaseModel, ConfigDict

from sshdeck.errors import AlgorithmNegotiationFailure, translate_error
from sshdeck.paths import default_key_paths
from sshdeck.settings import Settings
from sshdeck.transport.algorithms import FALLBACK_SUITE, PRIMARY_SUITE, AlgorithmSuite
from sshdeck.transport.credentials import resolve_credentials

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sshdeck.models import ConnectionConfig
    from sshdeck.transport.credentials import Credentials

    Connector = Callable[..., Awaitable[tuple[Any, "TransportObserver"]]]

log = structlog.get_logger()

PREFERRED_AUTH = "publickey,keyboard-interactive,password"


class TransportObserver(asyncssh.SSHClient):
    """Client-side protocol hooks for one transport.

    Records loss of the underlying connection and forwards it to whoever
    owns the transport.
    """

    def __init__(self) -> None:
        self.lost = False
        self.lost_exc: Exception | None = None
        self._callbacks: list[Callable[[Exception | None], None]] = []

    def on_lost(self, callback: Callable[[Exception | None], None]) -> None:
        """Register a loss callback; fires immediately if already lost."""
        if self.lost:
            callback(self.lost_exc)
            return
        self._callbacks.append(callback)

    def connection_lost(self, exc: Exception | None) -> None:
        self.lost = True
        self.lost_exc = exc
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(exc)


class NegotiatedTransport(BaseModel):
    """A connected, authenticated transport and the suite tier that worked."""

    connection: Any
    observer: TransportObserver
    suite: str

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ConnectionNegotiator:
    """Opens authenticated transports for connection configurations."""

    def __init__(self, settings: Settings | None = None, *, connector: Connector | None = None) -> None:
        """Initialize negotiator.

        Args:
            settings: Timeouts, keep-alive and key discovery settings
            connector: Transport factory with the signature of
                ``asyncssh.create_connection`` (tests inject fakes here)
        """
        self._settings = settings or Settings()
        self._connector = connector if connector is not None else asyncssh.create_connection

    async def negotiate(self, config: ConnectionConfig) -> NegotiatedTransport:
        """Connect and authenticate, falling back to the legacy suite if needed.

        The fallback attempt runs on a fresh transport; the failed one is
        discarded.

        Args:
            config: Connection configuration

        Returns:
            NegotiatedTransport for the first successful attempt

        Raises:
            SSHError: Subclass describing why the connection failed. When the
                fallback also fails, its error is the one raised.
        """
        credentials = resolve_credentials(config, default_key_paths(self._settings.ssh_dir))
        options = self._base_options(config, credentials)

        log.info(
            "ssh_connecting",
            target=config.target,
            auth_type=str(config.auth_type) if config.auth_type else None,
            key_source=credentials.key_source,
        )

        try:
            return await self._attempt(config, options, PRIMARY_SUITE)
        except AlgorithmNegotiationFailure as e:
            log.info("negotiation_fallback", target=config.target, error=e.message)

        return await self._attempt(config, options, FALLBACK_SUITE)

    async def _attempt(
        self,
        config: ConnectionConfig,
        options: dict[str, Any],
        suite: AlgorithmSuite,
    ) -> NegotiatedTransport:
        try:
            connection, observer = await asyncio.wait_for(
                self._connector(
                    TransportObserver,
                    config.host,
                    config.port,
                    **options,
                    **suite.to_options(),
                ),
                timeout=self._settings.ready_timeout_s,
            )
        except (asyncssh.Error, OSError, ValueError) as e:
            error = translate_error(e, config)
            log.warning("ssh_connect_failed", target=config.target, suite=suite.name, error_type=error.kind)
            raise error from e

        log.info("ssh_connected", target=config.target, suite=suite.name)
        return NegotiatedTransport(connection=connection, observer=observer, suite=suite.name)

    def _base_options(self, config: ConnectionConfig, credentials: Credentials) -> dict[str, Any]:
        settings = self._settings
        return {
            "username": config.username,
            **credentials.to_options(),
            "known_hosts": None,
            "config": None,
            "gss_host": None,
            "preferred_auth": PREFERRED_AUTH,
            "connect_timeout": settings.ready_timeout_s,
            "login_timeout": settings.ready_timeout_s,
            "keepalive_interval": settings.keepalive_interval_s,
            "keepalive_count_max": settings.keepalive_count_max,
        }
