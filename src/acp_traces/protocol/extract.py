"""Field extractors and value mappings for ACP payloads.

Every extractor takes the `params` or `result` value of a message and returns
None when the path is missing or holds the wrong type. None of them raise.
"""

from __future__ import annotations

from typing import Any

FS_TERMINAL_METHODS = frozenset(
    {
        "fs/read_text_file",
        "fs/write_text_file",
        "terminal/create",
        "terminal/write",
        "terminal/resize",
        "terminal/release",
    }
)

DATASTORE_TOOL_KINDS = frozenset({"read", "search", "fetch"})

FALLBACK_FINISH_REASON = "unknown"

_FINISH_REASONS = {
    "end_turn": "stop",
    "max_tokens": "length",
    "max_turn_requests": "length",
    "refusal": "content_filter",
    "cancelled": "cancelled",
}


def _get(value: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _get_str(value: Any, *path: str) -> str | None:
    found = _get(value, *path)
    return found if isinstance(found, str) else None


def extract_session_id(params: Any) -> str | None:
    return _get_str(params, "sessionId")


def extract_prompt_text(params: Any) -> str | None:
    """Join the text blocks of a session/prompt request with newlines."""
    prompt = _get(params, "prompt")
    if not isinstance(prompt, list):
        return None
    texts = [
        block["text"]
        for block in prompt
        if isinstance(block, dict)
        and block.get("type") == "text"
        and isinstance(block.get("text"), str)
    ]
    if not texts:
        return None
    return "\n".join(texts)


def extract_update_type(params: Any) -> str | None:
    return _get_str(params, "update", "sessionUpdate")


def extract_chunk_text(params: Any) -> str | None:
    return _get_str(params, "update", "content", "text")


def extract_tool_call_id(params: Any) -> str | None:
    return _get_str(params, "update", "toolCallId")


def extract_tool_call_title(params: Any) -> str | None:
    return _get_str(params, "update", "title")


def extract_tool_call_kind(params: Any) -> str | None:
    return _get_str(params, "update", "kind")


def extract_tool_call_status(params: Any) -> str | None:
    return _get_str(params, "update", "status")


def extract_tool_call_raw_input(params: Any) -> Any:
    return _get(params, "update", "rawInput")


def extract_tool_call_raw_output(params: Any) -> Any:
    return _get(params, "update", "rawOutput")


def _extract_implementation(info: Any) -> tuple[str, str | None] | None:
    name = _get_str(info, "name")
    if name is None:
        return None
    return name, _get_str(info, "version")


def extract_agent_info(result: Any) -> tuple[str, str | None] | None:
    """Agent (name, version) from an initialize response."""
    return _extract_implementation(_get(result, "agentInfo"))


def extract_client_info(params: Any) -> tuple[str, str | None] | None:
    """Client (name, version) from an initialize request."""
    return _extract_implementation(_get(params, "clientInfo"))


def extract_stop_reason(result: Any) -> str | None:
    return _get_str(result, "stopReason")


def extract_protocol_version(result: Any) -> int | None:
    version = _get(result, "protocolVersion")
    # bool is an int subclass
    if isinstance(version, int) and not isinstance(version, bool):
        return version
    return None


def extract_error_code(error: Any) -> str | None:
    """The `code` of a JSON-RPC error object, as text."""
    code = _get(error, "code")
    if code is None:
        return None
    return str(code)


def map_tool_kind_to_type(kind: str) -> str:
    """Map an ACP tool kind to a gen_ai.tool.type value."""
    if kind in DATASTORE_TOOL_KINDS:
        return "datastore"
    return "extension"


def is_fs_or_terminal_method(method: str) -> bool:
    return method in FS_TERMINAL_METHODS


def map_stop_reason_to_finish_reason(stop_reason: str) -> str:
    """Map an ACP stop reason to a GenAI finish reason."""
    return _FINISH_REASONS.get(stop_reason, FALLBACK_FINISH_REASON)
