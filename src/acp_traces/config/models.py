"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config() (CLI options)
2. Environment variables (ACP_TRACES__SECTION__KEY)
3. YAML config file (--config PATH or ~/.config/acp-traces/config.yaml)
4. Built-in defaults (this file)

Environment Variable Format:
    ACP_TRACES__<SECTION>__<KEY>=<VALUE>

Examples:
    ACP_TRACES__LOGGING__LEVEL=DEBUG
    ACP_TRACES__TELEMETRY__RECORD_CONTENT=true
    ACP_TRACES__PROXY__DRAIN_TIMEOUT_SEC=5
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
OtlpProtocol = Literal["grpc", "http"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v == "stderr":
            return v
        if v == "stdout":
            raise ValueError("stdout carries protocol traffic and cannot receive logs")
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        ACP_TRACES__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. Raised by -v on the command line.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class TelemetryConfig(BaseModel):
    """OpenTelemetry export configuration.

    Env vars:
        ACP_TRACES__TELEMETRY__ENABLED: Enable/disable export
        ACP_TRACES__TELEMETRY__OTLP_ENDPOINT: OTLP collector endpoint
        ACP_TRACES__TELEMETRY__OTLP_PROTOCOL: grpc or http
        ACP_TRACES__TELEMETRY__SERVICE_NAME: Service name for traces
        ACP_TRACES__TELEMETRY__RECORD_CONTENT: Record prompt/output/tool payloads

    Note: Also respects standard OTEL_* env vars for endpoint, protocol and service name.
    """

    enabled: bool = Field(
        default=True,
        description="Export spans and metrics. When false, spans are built but never exported.",
    )
    otlp_endpoint: str = Field(
        default="http://localhost:4317",
        description="OTLP collector endpoint.",
    )
    otlp_protocol: OtlpProtocol = Field(
        default="grpc",
        description="OTLP transport: grpc or http (protobuf over HTTP).",
    )
    service_name: str = Field(
        default="acp-agent",
        description="Service name for traces/metrics.",
    )
    record_content: bool = Field(
        default=False,
        description="Record prompts, agent output and tool payloads as span attributes. "
        "SECURITY RISK: Exports potentially sensitive source code and conversation text.",
    )
    metric_export_interval_ms: int = Field(
        default=60000,
        description="Interval between periodic metric exports. Metrics are also flushed at exit.",
    )

    @field_validator("otlp_protocol", mode="before")
    @classmethod
    def normalize_protocol(cls, v: object) -> object:
        if isinstance(v, str) and v.lower() in ("http", "http/protobuf"):
            return "http"
        return v

    @field_validator("metric_export_interval_ms")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Export interval must be positive, got {v}")
        return v


class ProxyConfig(BaseModel):
    """Stdio proxy configuration.

    Env vars:
        ACP_TRACES__PROXY__STREAM_LIMIT_BYTES: Max length of a single protocol line
        ACP_TRACES__PROXY__DRAIN_TIMEOUT_SEC: Wait for agent output after it exits
    """

    stream_limit_bytes: int = Field(
        default=16 * 1024 * 1024,
        description="Max bytes buffered for one line. ACP lines carry whole file contents, "
        "so this is far above the asyncio default of 64 KiB.",
    )
    drain_timeout_sec: float = Field(
        default=2.0,
        description="How long to keep forwarding agent output after the agent exits.",
    )

    @field_validator("stream_limit_bytes")
    @classmethod
    def validate_limit(cls, v: int) -> int:
        if v < 1024:
            raise ValueError(f"Stream limit must be at least 1024 bytes, got {v}")
        return v


class AcpTracesConfig(BaseModel):
    """Root configuration for acp-traces.

    All settings can be configured via:
    1. Environment variables: ACP_TRACES__SECTION__KEY
    2. YAML config file
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
