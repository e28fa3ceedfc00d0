# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from sshdeck.settings import Settings

from .fakes import FakeConnection, make_config

if TYPE_CHECKING:
    from pathlib import Path

    from sshdeck.models import ConnectionConfig


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer SSHDECK_* variables out of the tests."""
    for name in (
        "SSHDECK_PASSWORD",
        "SSHDECK_LOG_LEVEL",
        "SSHDECK_LOG_FORMAT",
        "SSHDECK_SSH_DIR",
        "SSHDECK_DOWNLOADS_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def ssh_dir(tmp_path: Path) -> Path:
    """Empty key directory so real ~/.ssh keys are never picked up."""
    path = tmp_path / "ssh"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path, ssh_dir: Path) -> Settings:
    """Settings with short timeouts and temp directories."""
    return Settings(
        ssh_dir=ssh_dir,
        downloads_dir=tmp_path / "downloads",
        ready_timeout_s=5.0,
        command_timeout_s=2.0,
        probe_timeout_s=2.0,
        keepalive_interval_s=0,
    )


@pytest.fixture
def config() -> ConnectionConfig:
    """Password configuration for a fake host."""
    return make_config()


@pytest.fixture
def connection() -> FakeConnection:
    """Fake asyncssh connection."""
    return FakeConnection()
