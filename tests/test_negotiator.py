# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for ConnectionNegotiator."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import asyncssh
import pytest

from sshdeck.errors import (
    AlgorithmNegotiationFailure,
    AuthenticationError,
    ConnectionRefused,
    ConnectionTimeout,
    NoAuthenticationMethod,
)
from sshdeck.transport.algorithms import FALLBACK_SUITE, PRIMARY_SUITE
from sshdeck.transport.negotiator import ConnectionNegotiator, TransportObserver

from .fakes import FakeConnector, make_config

if TYPE_CHECKING:
    from sshdeck.settings import Settings


@pytest.mark.asyncio
async def test_negotiate_uses_primary_suite(settings: Settings) -> None:
    connector = FakeConnector()
    negotiator = ConnectionNegotiator(settings, connector=connector)

    transport = await negotiator.negotiate(make_config())

    assert transport.suite == PRIMARY_SUITE.name
    assert isinstance(transport.observer, TransportObserver)
    assert len(connector.calls) == 1
    call = connector.calls[0]
    assert call["host"] == "10.0.0.5"
    assert call["port"] == 22
    assert call["username"] == "deploy"
    assert call["password"] == "hunter2"
    assert call["kex_algs"][0] == "curve25519-sha256"


@pytest.mark.asyncio
async def test_negotiate_passes_timeouts_and_keepalive(settings: Settings) -> None:
    connector = FakeConnector()
    negotiator = ConnectionNegotiator(settings, connector=connector)

    await negotiator.negotiate(make_config())

    call = connector.calls[0]
    assert call["connect_timeout"] == settings.ready_timeout_s
    assert call["login_timeout"] == settings.ready_timeout_s
    assert call["keepalive_interval"] == settings.keepalive_interval_s
    assert call["keepalive_count_max"] == 3
    assert call["known_hosts"] is None
    assert call["config"] is None


@pytest.mark.asyncio
async def test_algorithm_failure_triggers_one_fallback(settings: Settings) -> None:
    connector = FakeConnector([asyncssh.KeyExchangeFailed("No matching encryption algorithm")])
    negotiator = ConnectionNegotiator(settings, connector=connector)

    transport = await negotiator.negotiate(make_config())

    assert transport.suite == FALLBACK_SUITE.name
    assert len(connector.calls) == 2
    primary, fallback = connector.calls
    assert not set(primary["kex_algs"]) & set(fallback["kex_algs"])
    assert not set(primary["encryption_algs"]) & set(fallback["encryption_algs"])
    # Fresh handle: the only connection ever created is the fallback one.
    assert len(connector.connections) == 1


@pytest.mark.asyncio
async def test_fallback_error_is_reported(settings: Settings) -> None:
    connector = FakeConnector(
        [
            asyncssh.KeyExchangeFailed("primary rejected"),
            asyncssh.PermissionDenied("Permission denied"),
        ]
    )
    negotiator = ConnectionNegotiator(settings, connector=connector)

    with pytest.raises(AuthenticationError):
        await negotiator.negotiate(make_config())

    assert len(connector.calls) == 2


@pytest.mark.asyncio
async def test_fallback_algorithm_failure_surfaces(settings: Settings) -> None:
    connector = FakeConnector(
        [
            asyncssh.KeyExchangeFailed("primary rejected"),
            asyncssh.KeyExchangeFailed("fallback rejected"),
        ]
    )
    negotiator = ConnectionNegotiator(settings, connector=connector)

    with pytest.raises(AlgorithmNegotiationFailure, match="fallback rejected"):
        await negotiator.negotiate(make_config())


@pytest.mark.asyncio
async def test_non_algorithm_errors_do_not_fall_back(settings: Settings) -> None:
    connector = FakeConnector([ConnectionRefusedError(111, "Connection refused")])
    negotiator = ConnectionNegotiator(settings, connector=connector)

    with pytest.raises(ConnectionRefused):
        await negotiator.negotiate(make_config())

    assert len(connector.calls) == 1


@pytest.mark.asyncio
async def test_ready_timeout(settings: Settings) -> None:
    settings.ready_timeout_s = 0.05

    async def _hang(*args: Any, **kwargs: Any) -> Any:
        await asyncio.sleep(10)

    negotiator = ConnectionNegotiator(settings, connector=_hang)

    with pytest.raises(ConnectionTimeout):
        await negotiator.negotiate(make_config())


@pytest.mark.asyncio
async def test_no_credentials_never_connects(settings: Settings) -> None:
    connector = FakeConnector()
    negotiator = ConnectionNegotiator(settings, connector=connector)

    with pytest.raises(NoAuthenticationMethod):
        await negotiator.negotiate(make_config(auth_type=None, password=None))

    assert connector.calls == []


def test_observer_reports_loss_to_late_subscribers() -> None:
    observer = TransportObserver()
    seen: list[Exception | None] = []

    error = ConnectionResetError("reset")
    observer.connection_lost(error)
    observer.on_lost(seen.append)

    assert observer.lost
    assert seen == [error]
