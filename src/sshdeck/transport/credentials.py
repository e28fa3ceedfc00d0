# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Resolve authentication material for a connection attempt."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import asyncssh

from sshdeck.errors import KeyReadError, NoAuthenticationMethod
from sshdeck.logging import get_logger
from sshdeck.models import AuthType
from sshdeck.paths import expand_home

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from sshdeck.models import ConnectionConfig

logger = get_logger(__name__)


@dataclass
class Credentials:
    """Authentication material handed to the transport."""

    password: str | None = None
    client_keys: list[asyncssh.SSHKey] = field(default_factory=list)
    key_source: str | None = None

    def __repr__(self) -> str:
        return (
            f"Credentials(password={'***' if self.password else None}, "
            f"keys={len(self.client_keys)}, key_source={self.key_source!r})"
        )

    def to_options(self) -> dict[str, Any]:
        # client_keys=None disables asyncssh's own key discovery; discovery is ours.
        return {
            "password": self.password,
            "client_keys": list(self.client_keys) or None,
            "agent_path": None,
        }


def load_private_key(path: str | Path, passphrase: str | None = None) -> asyncssh.SSHKey:
    """Read a private key file, expanding a leading ``~``.

    Raises:
        KeyReadError: If the file is unreadable or not a usable key
    """
    key_path = expand_home(path)
    try:
        return asyncssh.read_private_key(key_path, passphrase)
    except (OSError, asyncssh.KeyImportError) as e:
        raise KeyReadError(f"Failed to read private key: {e}") from e


def discover_default_key(key_paths: Sequence[Path]) -> tuple[asyncssh.SSHKey, Path] | None:
    """Return the first conventional key that can be read, if any.

    Best-effort: unreadable, missing and passphrase-protected keys are skipped.
    """
    for path in key_paths:
        try:
            key = asyncssh.read_private_key(path)
        except (OSError, asyncssh.KeyImportError):
            continue
        logger.debug("default_key_found", path=str(path))
        return key, path
    return None


def resolve_credentials(config: ConnectionConfig, key_paths: Sequence[Path]) -> Credentials:
    """Choose authentication material for ``config``.

    The declared ``auth_type`` is advisory: a password login also carries a
    discovered default key so public-key auth is tried first.

    Args:
        config: Connection configuration
        key_paths: Default key locations, probed in order

    Returns:
        Credentials with at least one usable method

    Raises:
        KeyReadError: Explicit key unreadable and no password to fall back to
        NoAuthenticationMethod: No password and no key could be found
    """
    password = config.secret_password()

    if config.auth_type == AuthType.PASSWORD and password:
        credentials = Credentials(password=password)
        _attach_default_key(credentials, key_paths)
        return credentials

    if config.auth_type == AuthType.PRIVATE_KEY and config.private_key_path:
        try:
            key = load_private_key(config.private_key_path, passphrase=password)
        except KeyReadError as e:
            if not password:
                raise
            logger.warning("private_key_unreadable_using_password", target=config.target, error=e.message)
            return Credentials(password=password)
        return Credentials(client_keys=[key], key_source=config.private_key_path)

    credentials = Credentials(password=password)
    _attach_default_key(credentials, key_paths)
    if not credentials.client_keys and not password:
        raise NoAuthenticationMethod(
            "No authentication method available. Please provide password or private key."
        )
    return credentials


def _attach_default_key(credentials: Credentials, key_paths: Sequence[Path]) -> None:
    found = discover_default_key(key_paths)
    if found is None:
        return
    key, path = found
    credentials.client_keys.append(key)
    credentials.key_source = str(path)
