# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exception hierarchy for SSH session operations."""

from __future__ import annotations

import socket
from typing import TYPE_CHECKING

import asyncssh

if TYPE_CHECKING:
    from sshdeck.models import ConnectionConfig


class SSHError(Exception):
    """Base exception for SSH session operations."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class AuthenticationError(SSHError):
    """Server rejected the supplied credentials."""

    pass


class ConnectionTimeout(SSHError):
    """No response within the connect bound."""

    pass


class ConnectionRefused(SSHError):
    """Nothing is listening on the target port."""

    pass


class HostUnresolvable(SSHError):
    """Host name did not resolve."""

    pass


class AlgorithmNegotiationFailure(SSHError):
    """Server and client share no key exchange, cipher or MAC algorithm."""

    pass


class KeyReadError(SSHError):
    """Private key file could not be read or parsed."""

    pass


class NoAuthenticationMethod(SSHError):
    """Neither a password nor a usable private key is available."""

    pass


class CommandTimeout(SSHError):
    """Remote command did not exit within the exec bound."""

    pass


class CommandFailed(SSHError):
    """Remote command exited with a nonzero status."""

    pass


class TransferError(SSHError):
    """SFTP subsystem or file transfer failure."""

    pass


class ChannelError(SSHError):
    """A channel could not be opened over a live transport."""

    pass


class NoActiveConnection(SSHError):
    """Operation addressed an unknown or dead session."""

    def __init__(self, message: str = "No active SSH connection found") -> None:
        super().__init__(message)


class RegistryFull(SSHError):
    """Session limit reached."""

    pass


def _auth_message(config: ConnectionConfig) -> str:
    return (
        "Authentication failed. Please check:\n"
        "• Username and password are correct\n"
        "• Server allows password authentication (PasswordAuthentication yes in sshd_config)\n"
        "• Account is not locked or disabled\n"
        f"• Try connecting with: ssh {config.username}@{config.host} -p {config.port}"
    )


def _timeout_message(config: ConnectionConfig) -> str:
    return (
        "Connection timeout. Please check:\n"
        f"• Server is accessible at {config.host}:{config.port}\n"
        "• Firewall allows SSH connections\n"
        "• SSH service is running on the server"
    )


def _refused_message(config: ConnectionConfig) -> str:
    return (
        "Connection refused. Please check:\n"
        "• SSH service is running: sudo systemctl status sshd\n"
        f"• Correct port ({config.port}) is being used\n"
        "• Server firewall allows connections"
    )


def _unresolvable_message(config: ConnectionConfig) -> str:
    return (
        f"Cannot resolve hostname {config.host}. Please check:\n"
        "• IP address or hostname is correct\n"
        "• DNS resolution is working\n"
        "• Network connectivity"
    )


def _algorithm_message(config: ConnectionConfig, raw: str) -> str:
    return (
        f"SSH algorithm negotiation failed: {raw}\n"
        "This usually happens with older or restricted SSH servers. Please check:\n"
        "• Server SSH configuration allows compatible encryption algorithms\n"
        "• Server is not using very old or very new SSH versions\n"
        f"• Try connecting with standard SSH client: ssh {config.username}@{config.host} -p {config.port}"
    )


def translate_error(exc: BaseException, config: ConnectionConfig) -> SSHError:
    """Map a transport-level exception to the session error taxonomy.

    Args:
        exc: Exception raised while connecting or authenticating
        config: Configuration of the failed attempt (used in guidance text)

    Returns:
        SSHError subclass carrying a cause-specific message
    """
    if isinstance(exc, SSHError):
        return exc

    raw = str(exc) or type(exc).__name__

    if isinstance(exc, asyncssh.PermissionDenied):
        return AuthenticationError(_auth_message(config))
    if isinstance(exc, asyncssh.KeyExchangeFailed):
        return AlgorithmNegotiationFailure(_algorithm_message(config, raw))
    # TimeoutError, ConnectionRefusedError and gaierror are all OSErrors; test them first.
    if isinstance(exc, TimeoutError):
        return ConnectionTimeout(_timeout_message(config))
    if isinstance(exc, asyncssh.DisconnectError) and "timeout" in raw.lower():
        return ConnectionTimeout(_timeout_message(config))
    if isinstance(exc, ConnectionRefusedError):
        return ConnectionRefused(_refused_message(config))
    if isinstance(exc, socket.gaierror):
        return HostUnresolvable(_unresolvable_message(config))
    return SSHError(raw)
