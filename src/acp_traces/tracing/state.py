"""In-flight correlation state owned by the correlator."""

from __future__ import annotations

from dataclasses import dataclass, field

from opentelemetry.trace import Span, SpanContext

from acp_traces.protocol.messages import Direction

# (direction the request travelled in, canonical id)
RequestKey = tuple[Direction, str]


@dataclass
class PendingRequest:
    """A request waiting for its response.

    `span` is None for session/prompt: the prompt span lives on the session.
    """

    method: str
    start: float
    span: Span | None = None
    session_id: str | None = None


@dataclass
class ToolSpan:
    span: Span
    start: float


@dataclass
class SessionState:
    """Per-session tracking, kept across prompts until shutdown."""

    prompt_span: Span | None = None
    prompt_span_context: SpanContext | None = None
    prompt_request_key: RequestKey | None = None
    prompt_start: float | None = None
    first_chunk_time: float | None = None
    output_chunks: list[str] = field(default_factory=list)
    tool_spans: dict[str, ToolSpan] = field(default_factory=dict)

    @property
    def accumulated_output(self) -> str:
        return "".join(self.output_chunks)

    def begin_prompt(
        self, span: Span, request_key: RequestKey, start: float
    ) -> None:
        self.prompt_span = span
        self.prompt_span_context = span.get_span_context()
        self.prompt_request_key = request_key
        self.prompt_start = start
        self.first_chunk_time = None
        self.output_chunks.clear()


@dataclass
class Identity:
    """Agent and client identity learned from the initialize exchange."""

    agent_name: str | None = None
    agent_version: str | None = None
    client_name: str | None = None
    client_version: str | None = None
    protocol_version: int | None = None
