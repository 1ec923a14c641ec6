"""acp-traces error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Proxy
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Proxy (3xxx)
    PROXY_SPAWN_FAILED = 3001
    PROXY_STDIO_UNAVAILABLE = 3002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class AcpTracesError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'PROXY_SPAWN_FAILED')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(AcpTracesError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class ProxyError(AcpTracesError):
    """Errors raised while setting up the stdio proxy."""

    @classmethod
    def spawn_failed(cls, command: list[str], reason: str) -> "ProxyError":
        return cls(
            code=ErrorCode.PROXY_SPAWN_FAILED,
            message=f"Failed to spawn agent '{' '.join(command) or '<empty>'}': {reason}",
            details={"command": command, "reason": reason},
        )

    @classmethod
    def stdio_unavailable(cls, stream: str, reason: str) -> "ProxyError":
        return cls(
            code=ErrorCode.PROXY_STDIO_UNAVAILABLE,
            message=f"Cannot attach to {stream}: {reason}",
            details={"stream": stream, "reason": reason},
        )


class InternalError(AcpTracesError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
