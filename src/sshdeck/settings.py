# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Application settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sshdeck.constants import (
    DEFAULT_COLS,
    DEFAULT_COMMAND_TIMEOUT_S,
    DEFAULT_KEEPALIVE_COUNT_MAX,
    DEFAULT_KEEPALIVE_INTERVAL_S,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_PROBE_TIMEOUT_S,
    DEFAULT_READY_TIMEOUT_S,
    DEFAULT_ROWS,
    DEFAULT_SHELL_DRAIN_TIMEOUT_S,
    DEFAULT_STREAM_QUEUE_SIZE,
    DEFAULT_TERM,
)
from sshdeck.paths import default_downloads_dir, default_ssh_dir


class Settings(BaseSettings):
    log_level: str = "WARNING"
    log_format: Literal["console", "json"] = "console"

    ready_timeout_s: float = Field(default=DEFAULT_READY_TIMEOUT_S, gt=0)
    keepalive_interval_s: float = Field(default=DEFAULT_KEEPALIVE_INTERVAL_S, ge=0)
    keepalive_count_max: int = Field(default=DEFAULT_KEEPALIVE_COUNT_MAX, ge=1)
    command_timeout_s: float = Field(default=DEFAULT_COMMAND_TIMEOUT_S, gt=0)
    probe_timeout_s: float = Field(default=DEFAULT_PROBE_TIMEOUT_S, gt=0)

    term_type: str = DEFAULT_TERM
    term_cols: int = Field(default=DEFAULT_COLS, gt=0)
    term_rows: int = Field(default=DEFAULT_ROWS, gt=0)

    ssh_dir: Path = Field(default_factory=default_ssh_dir)
    downloads_dir: Path = Field(default_factory=default_downloads_dir)

    max_sessions: int = Field(default=DEFAULT_MAX_SESSIONS, ge=1)
    stream_queue_size: int = Field(default=DEFAULT_STREAM_QUEUE_SIZE, ge=1)
    shell_drain_timeout_s: float = Field(default=DEFAULT_SHELL_DRAIN_TIMEOUT_S, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="SSHDECK_",
        extra="ignore",
    )
