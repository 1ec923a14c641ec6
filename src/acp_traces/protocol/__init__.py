"""ACP message classification and payload extraction."""

from acp_traces.protocol.messages import (
    Direction,
    Message,
    Notification,
    Request,
    Response,
    canonical_id,
    parse,
)

__all__ = [
    "Direction",
    "Message",
    "Notification",
    "Request",
    "Response",
    "canonical_id",
    "parse",
]
