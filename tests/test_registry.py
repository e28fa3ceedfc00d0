# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Tests for SessionRegistry."""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

import asyncssh
import pytest

from sshdeck.core.registry import SessionRegistry, new_session_id
from sshdeck.transport.negotiator import ConnectionNegotiator

from .fakes import FakeConnector, make_config

if TYPE_CHECKING:
    from sshdeck.settings import Settings


def _registry(settings: Settings, connector: FakeConnector) -> SessionRegistry:
    return SessionRegistry(settings, ConnectionNegotiator(settings, connector=connector))


def test_session_id_format() -> None:
    first, second = new_session_id(), new_session_id()

    assert re.fullmatch(r"ssh_\d{13}_[0-9a-f]{9}", first)
    assert first != second


@pytest.mark.asyncio
async def test_create_registers_session(settings: Settings) -> None:
    registry = _registry(settings, FakeConnector())

    result = await registry.create(make_config())

    assert result.success
    assert result.session_id in registry.list()
    session = registry.get(result.session_id)
    assert session is not None
    assert session.is_connection_active()

    await registry.disconnect_all()


@pytest.mark.asyncio
async def test_failed_create_registers_nothing(settings: Settings) -> None:
    registry = _registry(settings, FakeConnector([asyncssh.PermissionDenied("Permission denied")]))

    result = await registry.create(make_config())

    assert not result.success
    assert result.error_type == "AuthenticationError"
    assert result.session_id is None
    assert registry.list() == []


@pytest.mark.asyncio
async def test_list_in_insertion_order(settings: Settings) -> None:
    registry = _registry(settings, FakeConnector())

    ids = [(await registry.create(make_config(host=f"10.0.0.{n}"))).session_id for n in range(1, 4)]

    assert registry.list() == ids

    await registry.disconnect_all()


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(settings: Settings) -> None:
    registry = _registry(settings, FakeConnector())
    session_id = (await registry.create(make_config())).session_id

    assert await registry.disconnect(session_id) is True
    assert await registry.disconnect(session_id) is False
    assert session_id not in registry.list()


@pytest.mark.asyncio
async def test_remote_close_evicts_automatically(settings: Settings) -> None:
    connector = FakeConnector()
    registry = _registry(settings, connector)
    session_id = (await registry.create(make_config())).session_id

    connector.connections[0].drop()

    assert registry.get(session_id) is None
    assert await registry.disconnect(session_id) is False


@pytest.mark.asyncio
async def test_transport_error_evicts(settings: Settings) -> None:
    connector = FakeConnector()
    registry = _registry(settings, connector)
    session_id = (await registry.create(make_config())).session_id

    connector.connections[0].drop(asyncssh.ConnectionLost("Keepalive timeout"))

    assert session_id not in registry


@pytest.mark.asyncio
async def test_concurrent_creates_are_independent(settings: Settings) -> None:
    connector = FakeConnector()
    registry = _registry(settings, connector)

    first, second = await asyncio.gather(
        registry.create(make_config(host="10.0.0.1")),
        registry.create(make_config(host="10.0.0.2")),
    )

    assert first.session_id != second.session_id
    assert len(registry) == 2

    await registry.disconnect(first.session_id)

    other = registry.get(second.session_id)
    assert other is not None
    assert other.write_to_shell(b"uptime\n")

    await registry.disconnect_all()


@pytest.mark.asyncio
async def test_registry_full(settings: Settings) -> None:
    settings.max_sessions = 1
    registry = _registry(settings, FakeConnector())
    await registry.create(make_config())

    result = await registry.create(make_config(host="10.0.0.9"))

    assert not result.success
    assert result.error_type == "RegistryFull"
    assert len(registry) == 1

    await registry.disconnect_all()


@pytest.mark.asyncio
async def test_disconnect_all_clears(settings: Settings) -> None:
    connector = FakeConnector()
    async with _registry(settings, connector) as registry:
        await registry.create(make_config(host="10.0.0.1"))
        await registry.create(make_config(host="10.0.0.2"))

    assert registry.list() == []
    assert all(c.closed for c in connector.connections)


@pytest.mark.asyncio
async def test_statuses(settings: Settings) -> None:
    registry = _registry(settings, FakeConnector())
    session_id = (await registry.create(make_config())).session_id

    [status] = registry.statuses()

    assert status.session_id == session_id
    assert status.shell_ready

    await registry.disconnect_all()
