"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (ACP_TRACES__SECTION__KEY)
3. YAML config file (explicit path, else ~/.config/acp-traces/config.yaml)
4. Built-in defaults (lowest priority)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from acp_traces.config.models import (
    AcpTracesConfig,
    LoggingConfig,
    ProxyConfig,
    TelemetryConfig,
)
from acp_traces.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/acp-traces/config.yaml").expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source."""

    class AcpTracesSettings(BaseSettings):
        """Root config. Env vars: ACP_TRACES__LOGGING__LEVEL, ACP_TRACES__TELEMETRY__..., etc."""

        model_config = SettingsConfigDict(
            env_prefix="ACP_TRACES__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        telemetry: TelemetryConfig = TelemetryConfig()
        proxy: ProxyConfig = ProxyConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml file
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return AcpTracesSettings


def load_config(config_path: Path | None = None, **kwargs: Any) -> AcpTracesConfig:
    """Load config: defaults < yaml file < env vars < kwargs.

    Args:
        config_path: Explicit YAML config file. Defaults to the global config
                     file, which is optional.
        **kwargs: Override values per section, e.g. telemetry={"record_content": True}.

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax, missing explicit file, or validation errors.
    """
    if config_path is not None and not config_path.exists():
        raise ConfigError.parse_error(str(config_path), "file does not exist")
    yaml_config = _load_yaml(config_path or GLOBAL_CONFIG_PATH)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return AcpTracesConfig.model_validate(settings.model_dump())
