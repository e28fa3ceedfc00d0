# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Shared constants for sshdeck."""

from __future__ import annotations

# Default terminal settings
DEFAULT_TERM = "xterm-256color"
DEFAULT_COLS = 80
DEFAULT_ROWS = 24

# Default timeouts
DEFAULT_READY_TIMEOUT_S = 30.0
DEFAULT_COMMAND_TIMEOUT_S = 30.0
DEFAULT_PROBE_TIMEOUT_S = 10.0

# Transport keep-alive
DEFAULT_KEEPALIVE_INTERVAL_S = 10.0
DEFAULT_KEEPALIVE_COUNT_MAX = 3

# Shell reader
DEFAULT_READ_CHUNK = 65536
DEFAULT_STREAM_QUEUE_SIZE = 256
# Time a reader gets to deliver buffered output after the transport drops
DEFAULT_SHELL_DRAIN_TIMEOUT_S = 2.0

# Session limits
DEFAULT_MAX_SESSIONS = 64
DEFAULT_SSH_PORT = 22

# Conventional private key names, probed in this order
DEFAULT_KEY_NAMES = ("id_rsa", "id_ed25519", "id_ecdsa")

SESSION_ID_PREFIX = "ssh"

# Log record keys whose values are never written out
REDACTED_LOG_KEYS = frozenset({"password", "passphrase", "private_key", "client_keys"})
