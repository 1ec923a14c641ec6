"""Tests for the acp-traces command line."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from acp_traces.cli.main import _overrides, cli
from acp_traces.config.models import AcpTracesConfig
from acp_traces.core.errors import ProxyError

runner = CliRunner()


@pytest.fixture
def isolated_config(tmp_path: Path) -> Iterator[None]:
    """No global config file, no ACP_TRACES__ env vars, logging left alone."""
    env = {k: v for k, v in os.environ.items() if not k.upper().startswith("ACP_TRACES__")}
    with patch("acp_traces.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "absent.yaml"), patch.dict(
        os.environ, env, clear=True
    ), patch("acp_traces.cli.main.configure_logging"):
        yield


@pytest.fixture
def run_proxy() -> Iterator[AsyncMock]:
    with patch("acp_traces.cli.main.run_proxy", new_callable=AsyncMock) as mock:
        mock.return_value = 0
        yield mock


class TestOverrides:
    def test_given_no_options_when_built_then_empty(self) -> None:
        assert _overrides(None, None, None, False, 0) == {}

    def test_given_all_options_when_built_then_sectioned(self) -> None:
        overrides = _overrides("http://c:4318", "http", "svc", True, 2)

        assert overrides == {
            "telemetry": {
                "otlp_endpoint": "http://c:4318",
                "otlp_protocol": "http",
                "service_name": "svc",
                "record_content": True,
            },
            "logging": {"level": "DEBUG"},
        }


@pytest.mark.usefixtures("isolated_config")
class TestCli:
    def test_given_command_when_run_then_exit_code_propagated(
        self, run_proxy: AsyncMock
    ) -> None:
        # Given
        run_proxy.return_value = 7

        # When
        result = runner.invoke(cli, ["my-agent"])

        # Then
        assert result.exit_code == 7
        command, config = run_proxy.call_args.args
        assert command == ["my-agent"]
        assert isinstance(config, AcpTracesConfig)

    def test_given_agent_flags_after_command_when_run_then_passed_through(
        self, run_proxy: AsyncMock
    ) -> None:
        result = runner.invoke(
            cli, ["--service-name", "svc", "my-agent", "--acp", "-v", "--record-content"]
        )

        assert result.exit_code == 0
        command, config = run_proxy.call_args.args
        assert command == ["my-agent", "--acp", "-v", "--record-content"]
        assert config.telemetry.service_name == "svc"
        assert config.telemetry.record_content is False
        assert config.logging.level == "WARNING"

    def test_given_proxy_options_when_run_then_config_overridden(
        self, run_proxy: AsyncMock
    ) -> None:
        # When
        result = runner.invoke(
            cli,
            [
                "--otlp-endpoint",
                "http://collector:4318",
                "--otlp-protocol",
                "http",
                "--record-content",
                "-vv",
                "agent",
            ],
        )

        # Then
        assert result.exit_code == 0
        _, config = run_proxy.call_args.args
        assert config.telemetry.otlp_endpoint == "http://collector:4318"
        assert config.telemetry.otlp_protocol == "http"
        assert config.telemetry.record_content is True
        assert config.logging.level == "DEBUG"

    def test_given_config_file_when_run_then_loaded(
        self, tmp_path: Path, run_proxy: AsyncMock
    ) -> None:
        cfg = tmp_path / "acp.yaml"
        cfg.write_text("telemetry:\n  service_name: from-file\n  enabled: false\n")

        result = runner.invoke(cli, ["--config", str(cfg), "agent"])

        assert result.exit_code == 0
        _, config = run_proxy.call_args.args
        assert config.telemetry.service_name == "from-file"
        assert config.telemetry.enabled is False

    def test_given_invalid_config_file_when_run_then_error_exit(
        self, tmp_path: Path, run_proxy: AsyncMock
    ) -> None:
        cfg = tmp_path / "bad.yaml"
        cfg.write_text("proxy:\n  stream_limit_bytes: 1\n")

        result = runner.invoke(cli, ["--config", str(cfg), "agent"])

        assert result.exit_code == 1
        assert "CONFIG_INVALID_VALUE" in result.output
        run_proxy.assert_not_called()

    def test_given_no_command_when_run_then_usage_error(self, run_proxy: AsyncMock) -> None:
        result = runner.invoke(cli, [])

        assert result.exit_code == 2
        run_proxy.assert_not_called()

    def test_given_bad_protocol_when_run_then_usage_error(self, run_proxy: AsyncMock) -> None:
        result = runner.invoke(cli, ["--otlp-protocol", "http/json", "agent"])

        assert result.exit_code == 2
        run_proxy.assert_not_called()

    def test_given_spawn_failure_when_run_then_error_exit(self, run_proxy: AsyncMock) -> None:
        run_proxy.side_effect = ProxyError.spawn_failed(["missing"], "No such file or directory")

        result = runner.invoke(cli, ["missing"])

        assert result.exit_code == 1
        assert "Failed to spawn agent 'missing'" in result.output
