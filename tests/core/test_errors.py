"""Tests for the error types and codes."""

import pytest

from acp_traces.core.errors import (
    AcpTracesError,
    ConfigError,
    ErrorCode,
    InternalError,
    ProxyError,
)


class TestErrorCodes:
    """Error code ranges."""

    @pytest.mark.parametrize(
        ("code", "low", "high"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000, 2999),
            (ErrorCode.CONFIG_INVALID_VALUE, 2000, 2999),
            (ErrorCode.PROXY_SPAWN_FAILED, 3000, 3999),
            (ErrorCode.PROXY_STDIO_UNAVAILABLE, 3000, 3999),
            (ErrorCode.INTERNAL_ERROR, 9000, 9999),
        ],
    )
    def test_given_code_when_checked_then_in_category_range(
        self, code: ErrorCode, low: int, high: int
    ) -> None:
        assert low <= code.value <= high

    def test_given_codes_when_listed_then_values_unique(self) -> None:
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))


class TestAcpTracesError:
    """Base error behaviour."""

    def test_given_error_when_str_then_includes_code_and_name(self) -> None:
        # Given
        error = AcpTracesError(code=ErrorCode.INTERNAL_ERROR, message="boom")

        # When
        text = str(error)

        # Then
        assert text == "[9001] INTERNAL_ERROR: boom"

    def test_given_error_when_to_dict_then_structured(self) -> None:
        # Given
        error = AcpTracesError(
            code=ErrorCode.CONFIG_PARSE_ERROR, message="bad", details={"path": "/x"}
        )

        # When
        data = error.to_dict()

        # Then
        assert data == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "bad",
            "details": {"path": "/x"},
        }

    def test_given_error_when_raised_then_catchable_as_exception(self) -> None:
        with pytest.raises(AcpTracesError) as exc_info:
            raise InternalError.unexpected("oops")
        assert exc_info.value.error_name == "INTERNAL_ERROR"


class TestConfigError:
    """ConfigError factories."""

    def test_given_parse_failure_when_created_then_has_path(self) -> None:
        error = ConfigError.parse_error("/etc/cfg.yaml", "bad indent")

        assert error.code == ErrorCode.CONFIG_PARSE_ERROR
        assert "/etc/cfg.yaml" in error.message
        assert error.details == {"path": "/etc/cfg.yaml", "reason": "bad indent"}

    def test_given_invalid_value_when_created_then_value_stringified(self) -> None:
        error = ConfigError.invalid_value("proxy.stream_limit_bytes", 12, "too small")

        assert error.code == ErrorCode.CONFIG_INVALID_VALUE
        assert error.details["value"] == "12"
        assert "proxy.stream_limit_bytes" in error.message


class TestProxyError:
    """ProxyError factories."""

    def test_given_command_when_spawn_failed_then_message_names_command(self) -> None:
        error = ProxyError.spawn_failed(["my-agent", "--acp"], "No such file")

        assert error.code == ErrorCode.PROXY_SPAWN_FAILED
        assert error.message == "Failed to spawn agent 'my-agent --acp': No such file"
        assert error.details["command"] == ["my-agent", "--acp"]

    def test_given_empty_command_when_spawn_failed_then_placeholder(self) -> None:
        error = ProxyError.spawn_failed([], "no command given")

        assert "<empty>" in error.message

    def test_given_stream_when_stdio_unavailable_then_names_stream(self) -> None:
        error = ProxyError.stdio_unavailable("stdin", "not a pipe")

        assert error.code == ErrorCode.PROXY_STDIO_UNAVAILABLE
        assert error.details == {"stream": "stdin", "reason": "not a pipe"}


class TestInternalError:
    def test_given_details_when_unexpected_then_kept(self) -> None:
        error = InternalError.unexpected("no pipes", pid=42)

        assert error.message == "Internal error: no pipes"
        assert error.details == {"pid": 42}
