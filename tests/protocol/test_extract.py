"""Tests for ACP field extractors and value mappings."""

from __future__ import annotations

from typing import Any

import pytest

from acp_traces.protocol import extract


class TestSessionAndUpdate:
    def test_session_id_present(self) -> None:
        assert extract.extract_session_id({"sessionId": "s1"}) == "s1"

    @pytest.mark.parametrize("params", [None, {}, {"sessionId": 5}, "s1", [1]])
    def test_session_id_absent_or_wrong_type(self, params: Any) -> None:
        assert extract.extract_session_id(params) is None

    def test_update_type(self) -> None:
        params = {"sessionId": "s1", "update": {"sessionUpdate": "agent_message_chunk"}}

        assert extract.extract_update_type(params) == "agent_message_chunk"

    def test_chunk_text(self) -> None:
        params = {"update": {"content": {"type": "text", "text": "Hi"}}}

        assert extract.extract_chunk_text(params) == "Hi"

    def test_chunk_without_text(self) -> None:
        params = {"update": {"content": {"type": "image", "data": "..."}}}

        assert extract.extract_chunk_text(params) is None


class TestPromptText:
    def test_text_blocks_joined_with_newline(self) -> None:
        params = {
            "prompt": [
                {"type": "text", "text": "first"},
                {"type": "resource_link", "uri": "file:///x"},
                {"type": "text", "text": "second"},
            ]
        }

        assert extract.extract_prompt_text(params) == "first\nsecond"

    def test_no_text_blocks(self) -> None:
        assert extract.extract_prompt_text({"prompt": [{"type": "image"}]}) is None

    def test_prompt_not_a_list(self) -> None:
        assert extract.extract_prompt_text({"prompt": "hello"}) is None


class TestToolCallFields:
    def test_all_fields(self) -> None:
        params = {
            "sessionId": "s1",
            "update": {
                "sessionUpdate": "tool_call",
                "toolCallId": "call_1",
                "title": "Read file",
                "kind": "read",
                "status": "pending",
                "rawInput": {"path": "/a"},
                "rawOutput": {"content": "x"},
            },
        }

        assert extract.extract_tool_call_id(params) == "call_1"
        assert extract.extract_tool_call_title(params) == "Read file"
        assert extract.extract_tool_call_kind(params) == "read"
        assert extract.extract_tool_call_status(params) == "pending"
        assert extract.extract_tool_call_raw_input(params) == {"path": "/a"}
        assert extract.extract_tool_call_raw_output(params) == {"content": "x"}

    def test_missing_update(self) -> None:
        assert extract.extract_tool_call_id({"sessionId": "s1"}) is None
        assert extract.extract_tool_call_raw_input({"sessionId": "s1"}) is None


class TestInitializeFields:
    def test_agent_info_with_version(self) -> None:
        result = {"agentInfo": {"name": "my-agent", "version": "1.0.0"}}

        assert extract.extract_agent_info(result) == ("my-agent", "1.0.0")

    def test_agent_info_without_version(self) -> None:
        assert extract.extract_agent_info({"agentInfo": {"name": "a"}}) == ("a", None)

    def test_agent_info_without_name(self) -> None:
        assert extract.extract_agent_info({"agentInfo": {"version": "1"}}) is None

    def test_client_info(self) -> None:
        params = {"clientInfo": {"name": "zed", "version": "0.200.0"}}

        assert extract.extract_client_info(params) == ("zed", "0.200.0")

    def test_protocol_version_integer(self) -> None:
        assert extract.extract_protocol_version({"protocolVersion": 1}) == 1

    @pytest.mark.parametrize("value", [True, "1", 1.5, None])
    def test_protocol_version_rejects_non_integers(self, value: Any) -> None:
        assert extract.extract_protocol_version({"protocolVersion": value}) is None


class TestResponseFields:
    def test_stop_reason(self) -> None:
        assert extract.extract_stop_reason({"stopReason": "end_turn"}) == "end_turn"
        assert extract.extract_stop_reason(None) is None

    def test_error_code_numeric(self) -> None:
        assert extract.extract_error_code({"code": -32603, "message": "x"}) == "-32603"

    def test_error_code_missing(self) -> None:
        assert extract.extract_error_code({"message": "x"}) is None
        assert extract.extract_error_code("oops") is None


class TestMappings:
    @pytest.mark.parametrize(
        ("kind", "expected"),
        [
            ("read", "datastore"),
            ("search", "datastore"),
            ("fetch", "datastore"),
            ("edit", "extension"),
            ("execute", "extension"),
            ("other", "extension"),
        ],
    )
    def test_tool_kind_to_type(self, kind: str, expected: str) -> None:
        assert extract.map_tool_kind_to_type(kind) == expected

    @pytest.mark.parametrize(
        ("stop_reason", "expected"),
        [
            ("end_turn", "stop"),
            ("max_tokens", "length"),
            ("max_turn_requests", "length"),
            ("refusal", "content_filter"),
            ("cancelled", "cancelled"),
            ("something_new", "unknown"),
        ],
    )
    def test_stop_reason_to_finish_reason(self, stop_reason: str, expected: str) -> None:
        assert extract.map_stop_reason_to_finish_reason(stop_reason) == expected

    @pytest.mark.parametrize(
        "method",
        [
            "fs/read_text_file",
            "fs/write_text_file",
            "terminal/create",
            "terminal/write",
            "terminal/resize",
            "terminal/release",
        ],
    )
    def test_fs_terminal_methods(self, method: str) -> None:
        assert extract.is_fs_or_terminal_method(method) is True

    @pytest.mark.parametrize(
        "method", ["session/prompt", "terminal/output", "terminal/wait_for_exit", "fs/delete"]
    )
    def test_other_methods_not_fs_terminal(self, method: str) -> None:
        assert extract.is_fs_or_terminal_method(method) is False
