"""Classification of raw ACP lines into JSON-RPC messages."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class Direction(Enum):
    """Which way a line travelled through the proxy."""

    EDITOR_TO_AGENT = "editor_to_agent"
    AGENT_TO_EDITOR = "agent_to_editor"

    @property
    def opposite(self) -> Direction:
        if self is Direction.EDITOR_TO_AGENT:
            return Direction.AGENT_TO_EDITOR
        return Direction.EDITOR_TO_AGENT


@dataclass(frozen=True, slots=True)
class Request:
    id: Any
    method: str
    params: Any = None


@dataclass(frozen=True, slots=True)
class Response:
    id: Any
    result: Any = None
    error: Any = None


@dataclass(frozen=True, slots=True)
class Notification:
    method: str
    params: Any = None


Message = Request | Response | Notification


def canonical_id(request_id: Any) -> str:
    """Canonical text form of a JSON-RPC id, used as the correlation key.

    The peer echoes the id verbatim, so its JSON serialization identifies it
    regardless of whether it is a number or a string.
    """
    return json.dumps(request_id, sort_keys=True, separators=(",", ":"))


def parse(line: str) -> Message | None:
    """Classify one line of protocol traffic.

    Returns None for anything that is not a JSON object shaped like a
    request, response or notification. Never raises.
    """
    try:
        obj = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(obj, dict):
        return None

    # A non-string method is treated as absent
    method = obj.get("method")
    if isinstance(method, str):
        if "id" in obj:
            return Request(id=obj["id"], method=method, params=obj.get("params"))
        return Notification(method=method, params=obj.get("params"))

    if "id" in obj:
        return Response(id=obj["id"], result=obj.get("result"), error=obj.get("error"))

    return None
