# Copyright (c) 2025-2026 provide.io llc
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Connection configuration, session state and operation results."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel

from sshdeck.constants import DEFAULT_SSH_PORT

if TYPE_CHECKING:
    from sshdeck.errors import SSHError


class AuthType(StrEnum):
    PASSWORD = "password"
    PRIVATE_KEY = "privateKey"


class ConnectionConfig(BaseModel):
    """Where and how to connect. Immutable once created.

    ``password`` doubles as the passphrase of an encrypted private key when
    ``auth_type`` is ``privateKey``.
    """

    host: str = Field(min_length=1)
    port: int = Field(default=DEFAULT_SSH_PORT, ge=1, le=65535)
    username: str = Field(min_length=1)
    auth_type: AuthType | None = None
    password: SecretStr | None = None
    private_key_path: str | None = None

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"

    def secret_password(self) -> str | None:
        """Return the plain password, or None when unset or empty."""
        if self.password is None:
            return None
        return self.password.get_secret_value() or None


class SessionState(StrEnum):
    CONNECTING = "connecting"
    READY = "ready"
    ENDED = "ended"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.ENDED, SessionState.ERRORED)


class SessionEventKind(StrEnum):
    READY = "ready"
    SHELL_READY = "shell_ready"
    SHELL_CLOSED = "shell_closed"
    ERROR = "error"
    END = "end"
    CLOSE = "close"


class SessionEvent(BaseModel):
    """Lifecycle notification delivered to session listeners."""

    session_id: str
    kind: SessionEventKind
    message: str = ""


class _BoundaryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Dump with camelCase keys, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OperationResult(_BoundaryModel):
    success: bool
    error: str | None = None
    error_type: str | None = None

    @classmethod
    def failed(cls, exc: SSHError, **fields: Any) -> OperationResult:
        return cls(success=False, error=exc.message, error_type=exc.kind, **fields)


class ConnectResult(OperationResult):
    session_id: str | None = None


class CommandResult(OperationResult):
    output: str | None = None


class RemoteEntry(_BoundaryModel):
    name: str
    kind: Literal["file", "directory", "symlink", "other"]
    size: int = 0
    permissions: str = ""
    modified: datetime | None = None
    hidden: bool = False


class ListingResult(OperationResult):
    path: str | None = None
    entries: list[RemoteEntry] = Field(default_factory=list)


class ProbeResult(_BoundaryModel):
    reachable: bool
    auth_methods: list[str] = Field(default_factory=list)
    error: str | None = None
    error_type: str | None = None


class SessionStatus(_BoundaryModel):
    session_id: str
    target: str
    state: SessionState
    shell_ready: bool
    suite: str | None = None
    created_at: datetime
