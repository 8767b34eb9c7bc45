"""
Error taxonomy shared by the executor, builder, cluster client and handlers.

Handlers raise these; only the dispatcher turns them into tool results.
"""

from __future__ import annotations

import enum


class ToolFailure(Exception):
    """Base class for every failure a tool call can report."""


class ValidationError(ToolFailure):
    """Malformed or missing tool argument. Never reaches a handler."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid argument '{field}': {message}")


class InvalidParameter(ValidationError):
    """A value failed the builder's allow-list check before interpolation."""


class UnsupportedValueError(ToolFailure):
    """Enum-like domain value outside the supported set."""


class NotFoundError(ToolFailure):
    """Unknown tool or missing cluster resource."""


class ProtectedNamespaceError(ToolFailure):
    """Write attempted against a namespace on the blocklist."""


class ConfigError(Exception):
    """Invalid startup configuration."""


class ErrorKind(str, enum.Enum):
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    CONNECTION_FAILURE = "connection_failure"


class ExecutionError(ToolFailure):
    """A command or cluster API call failed."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        raw: str = "",
        exit_code: int | None = None,
        stdout: str = "",
    ):
        self.kind = kind
        self.raw = raw
        self.exit_code = exit_code
        self.stdout = stdout
        super().__init__(message)

    @property
    def not_found(self) -> bool:
        return "NotFound" in self.raw or "not found" in self.raw

    @property
    def already_exists(self) -> bool:
        return "AlreadyExists" in self.raw or "already exists" in self.raw
