# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Filesystem path helpers."""

from __future__ import annotations

import posixpath
from pathlib import Path

from platformdirs import user_downloads_dir

from sshdeck.constants import DEFAULT_KEY_NAMES


def default_ssh_dir() -> Path:
    """Get the directory searched for default private keys."""
    return Path.home() / ".ssh"


def default_downloads_dir() -> Path:
    """Get the directory downloads land in when no local path is given."""
    return Path(user_downloads_dir())


def expand_home(path: str | Path) -> Path:
    """Expand a leading ``~`` to the user's home directory."""
    return Path(path).expanduser()


def default_key_paths(ssh_dir: Path | None = None) -> list[Path]:
    """Conventional private key locations, in probe order."""
    base = ssh_dir if ssh_dir is not None else default_ssh_dir()
    return [base / name for name in DEFAULT_KEY_NAMES]


def default_download_target(remote_path: str, downloads_dir: Path | None = None) -> Path:
    """Build the local target for a download without an explicit local path.

    Args:
        remote_path: Remote POSIX path of the file
        downloads_dir: Directory to place the file in (defaults to user downloads)

    Returns:
        ``downloads_dir / basename(remote_path)``

    Raises:
        ValueError: If the remote path has no file name component
    """
    name = posixpath.basename(remote_path.rstrip("/"))
    if not name:
        raise ValueError(f"Cannot derive a file name from remote path {remote_path!r}")
    base = downloads_dir if downloads_dir is not None else default_downloads_dir()
    return base / name
