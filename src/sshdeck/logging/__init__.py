# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Logging layer for SSH sessions."""

from __future__ import annotations

from sshdeck.logging.config import configure_logging, get_logger, redact_secrets

__all__ = ["configure_logging", "get_logger", "redact_secrets"]
