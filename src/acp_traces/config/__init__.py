"""Config module exports."""

from acp_traces.config.loader import load_config
from acp_traces.config.models import (
    AcpTracesConfig,
    LoggingConfig,
    ProxyConfig,
    TelemetryConfig,
)

__all__ = [
    "load_config",
    "AcpTracesConfig",
    "LoggingConfig",
    "ProxyConfig",
    "TelemetryConfig",
]
