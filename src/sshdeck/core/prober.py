# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Reachability checks that never create a session."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import asyncssh
import structlog

from sshdeck.errors import translate_error
from sshdeck.models import ProbeResult
from sshdeck.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sshdeck.models import ConnectionConfig

log = structlog.get_logger()

# Deliberately wrong; a rejection proves the SSH service answered.
PROBE_PASSWORD = "dummy-password-for-test"


class ConnectivityProber:
    """Checks whether a host's SSH service answers, without logging in."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        connector: Callable[..., Awaitable[Any]] | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._connector = connector if connector is not None else asyncssh.connect

    async def test(self, config: ConnectionConfig) -> ProbeResult:
        """Attempt a throwaway login with an invalid password.

        Args:
            config: Connection configuration (credentials are ignored)

        Returns:
            ProbeResult; ``reachable`` is True when the server answered, even
            if it rejected the credential.
        """
        timeout = self._settings.probe_timeout_s
        connection = None
        try:
            connection = await asyncio.wait_for(
                self._connector(
                    config.host,
                    config.port,
                    username=config.username,
                    password=PROBE_PASSWORD,
                    client_keys=None,
                    agent_path=None,
                    known_hosts=None,
                    config=None,
                    gss_host=None,
                    preferred_auth="password",
                    connect_timeout=timeout,
                    login_timeout=timeout,
                ),
                timeout=timeout,
            )
        except asyncssh.PermissionDenied:
            log.info("probe_reachable", target=config.target, auth="rejected")
            return ProbeResult(reachable=True, error="Server reachable but authentication failed")
        except (asyncssh.Error, OSError, ValueError) as e:
            error = translate_error(e, config)
            log.info("probe_unreachable", target=config.target, error_type=error.kind)
            return ProbeResult(reachable=False, error=error.message, error_type=error.kind)
        finally:
            if connection is not None:
                connection.close()
                with contextlib.suppress(asyncssh.Error, OSError):
                    await connection.wait_closed()

        # The server accepted the throwaway password.
        log.info("probe_reachable", target=config.target, auth="accepted")
        return ProbeResult(reachable=True, auth_methods=["connection-successful"])
