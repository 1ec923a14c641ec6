"""Core module exports."""

from acp_traces.core.errors import (
    AcpTracesError,
    ConfigError,
    ErrorCode,
    InternalError,
    ProxyError,
)
from acp_traces.core.logging import (
    clear_session_id,
    configure_logging,
    get_session_id,
    set_session_id,
)
from acp_traces.core.telemetry import Telemetry, init_telemetry

__all__ = [
    # Errors
    "AcpTracesError",
    "ConfigError",
    "ErrorCode",
    "InternalError",
    "ProxyError",
    # Logging
    "clear_session_id",
    "configure_logging",
    "get_session_id",
    "set_session_id",
    # Telemetry
    "Telemetry",
    "init_telemetry",
]
