"""Span/session correlator.

Turns the tapped ACP traffic into spans and metrics:

    acp_session                          root, first initialize .. shutdown
    ├── initialize                       request .. response
    ├── session/new, authenticate, ...   request .. response
    └── invoke_agent <agent>             session/prompt request .. response
        ├── execute_tool <title>         tool_call .. terminal tool_call_update
        └── execute_tool fs/read_text_file   agent request .. editor response

Three lifetimes overlap here: request/response pairing (keyed by request id),
prompt streaming (keyed by session id) and tool calls (keyed by tool call id
within a session). The correlator is driven from a single task, so none of
this state is locked.

Parents are always given as a context built from the parent's SpanContext
captured when the parent started, never as a live span reference.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.trace import NonRecordingSpan, Span, SpanContext, SpanKind, Status, StatusCode
from opentelemetry.util.types import AttributeValue

from acp_traces.core.logging import clear_session_id, set_session_id
from acp_traces.protocol import extract
from acp_traces.protocol.messages import (
    Direction,
    Notification,
    Request,
    Response,
    canonical_id,
    parse,
)
from acp_traces.tracing import attributes as attr
from acp_traces.tracing.state import (
    Identity,
    PendingRequest,
    RequestKey,
    SessionState,
    ToolSpan,
)

if TYPE_CHECKING:
    from acp_traces.core.telemetry import Telemetry

logger = structlog.get_logger()

UNKNOWN_SESSION = "unknown"
UNKNOWN_TOOL_TITLE = "unknown tool"
DEFAULT_TOOL_KIND = "other"

SESSION_ENDED = "session ended unexpectedly"
NO_RESPONSE = "process exited before response"
PROMPT_SUPERSEDED = "superseded by a newer prompt"
TOOL_CALL_SUPERSEDED = "superseded by a reused tool call id"
REQUEST_SUPERSEDED = "superseded by a request with the same id"
TOOL_CALL_FAILED = "tool call failed"

_TERMINAL_TOOL_STATUSES = frozenset({"completed", "failed"})


def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _id_text(request_id: Any) -> str:
    if isinstance(request_id, str):
        return request_id
    return canonical_id(request_id)


def _fail(span: Span, description: str, error_type: str | None = None) -> None:
    span.set_status(Status(StatusCode.ERROR, description))
    if error_type is not None:
        span.set_attribute(attr.ERROR_TYPE, error_type)


def _fail_with_rpc_error(span: Span, error: Any) -> None:
    _fail(span, _json(error), extract.extract_error_code(error) or attr.ERROR_TYPE_OTHER)


def _text_messages(role: str, text: str, finish_reason: str | None = None) -> str:
    message: dict[str, Any] = {"role": role, "parts": [{"type": "text", "content": text}]}
    if finish_reason is not None:
        message["finish_reason"] = finish_reason
    return _json([message])


class Correlator:
    """Stateful span/session manager fed one protocol line at a time."""

    def __init__(
        self,
        telemetry: Telemetry,
        *,
        record_content: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._tracer = telemetry.tracer
        self._record_content = record_content
        self._clock = clock

        self._duration_histogram = telemetry.meter.create_histogram(
            attr.METRIC_OPERATION_DURATION,
            unit="s",
            description="GenAI operation duration",
        )
        self._ttft_histogram = telemetry.meter.create_histogram(
            attr.METRIC_TIME_TO_FIRST_TOKEN,
            unit="s",
            description="Time to generate first token",
        )

        self.identity = Identity()
        self.sessions: dict[str, SessionState] = {}
        self.pending: dict[RequestKey, PendingRequest] = {}
        self._root_span: Span | None = None
        self._root_span_context: SpanContext | None = None
        self._shut_down = False

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def process(self, direction: Direction, line: str) -> None:
        """Classify one tapped line and update spans accordingly."""
        if self._shut_down:
            logger.debug("line after shutdown ignored", direction=direction.value)
            return

        msg = parse(line)
        if msg is None:
            return

        try:
            if isinstance(msg, Request):
                self._handle_request(direction, msg)
            elif isinstance(msg, Response):
                self._handle_response(direction, msg)
            elif isinstance(msg, Notification):
                self._handle_notification(direction, msg)
        finally:
            clear_session_id()

    def shutdown(self) -> None:
        """End every span still open. The root span ends last."""
        if self._shut_down:
            return
        self._shut_down = True

        for session_id, session in self.sessions.items():
            if session.prompt_span is not None:
                logger.info("closing open prompt span", session_id=session_id)
                _fail(session.prompt_span, SESSION_ENDED)
                session.prompt_span.end()
                session.prompt_span = None
            for tool_call_id, tool in session.tool_spans.items():
                logger.info(
                    "closing open tool span", session_id=session_id, tool_call_id=tool_call_id
                )
                _fail(tool.span, SESSION_ENDED)
                tool.span.end()
            session.tool_spans.clear()
        self.sessions.clear()

        for key, pending in self.pending.items():
            if pending.span is not None:
                logger.info("closing unanswered request span", method=pending.method, id=key[1])
                _fail(pending.span, NO_RESPONSE)
                pending.span.end()
        self.pending.clear()

        if self._root_span is not None:
            self._root_span.end()
            self._root_span = None

    @property
    def root_span_context(self) -> SpanContext | None:
        return self._root_span_context

    # ------------------------------------------------------------------
    # Span helpers
    # ------------------------------------------------------------------

    def _root_context(self) -> otel_context.Context:
        if self._root_span_context is None:
            # Explicitly empty so nothing ambient becomes the parent
            return otel_context.Context()
        return trace.set_span_in_context(
            NonRecordingSpan(self._root_span_context), otel_context.Context()
        )

    def _session_context(self, session_id: str | None) -> otel_context.Context:
        """Parent context under the session's prompt span, else the root."""
        session = self.sessions.get(session_id) if session_id is not None else None
        if session is None or session.prompt_span_context is None:
            return self._root_context()
        return trace.set_span_in_context(
            NonRecordingSpan(session.prompt_span_context), otel_context.Context()
        )

    def _start_span(
        self,
        name: str,
        parent: otel_context.Context,
        kind: SpanKind,
        attributes: dict[str, AttributeValue],
    ) -> Span:
        return self._tracer.start_span(name, context=parent, kind=kind, attributes=attributes)

    def _ensure_root_span(self) -> None:
        if self._root_span is not None or self._root_span_context is not None:
            return
        self._root_span = self._start_span(
            attr.ROOT_SPAN_NAME,
            otel_context.Context(),
            SpanKind.INTERNAL,
            {
                attr.ACP_METHOD_NAME: "session",
                attr.NETWORK_TRANSPORT: attr.TRANSPORT_PIPE,
            },
        )
        self._root_span_context = self._root_span.get_span_context()

    def _track_pending(self, key: RequestKey, pending: PendingRequest) -> None:
        previous = self.pending.pop(key, None)
        if previous is not None:
            logger.warning("request id reused before response", method=previous.method, id=key[1])
            if previous.span is not None:
                _fail(previous.span, REQUEST_SUPERSEDED)
                previous.span.end()
        self.pending[key] = pending

    def _session(self, session_id: str) -> SessionState:
        session = self.sessions.get(session_id)
        if session is None:
            session = SessionState()
            self.sessions[session_id] = session
        return session

    def _record_duration(self, seconds: float, operation: str) -> None:
        self._duration_histogram.record(seconds, {attr.GEN_AI_OPERATION_NAME: operation})

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _handle_request(self, direction: Direction, req: Request) -> None:
        logger.debug("request", direction=direction.value, method=req.method)
        key: RequestKey = (direction, canonical_id(req.id))

        if req.method == "initialize":
            self._on_initialize_request(key, req)
        elif req.method == "session/prompt":
            self._on_prompt_request(key, req)
        elif extract.is_fs_or_terminal_method(req.method):
            self._on_fs_terminal_request(key, req)
        else:
            self._on_generic_request(key, req)

    def _on_initialize_request(self, key: RequestKey, req: Request) -> None:
        client = extract.extract_client_info(req.params)
        if client is not None:
            self.identity.client_name, self.identity.client_version = client

        self._ensure_root_span()
        span = self._start_span(
            "initialize",
            self._root_context(),
            SpanKind.INTERNAL,
            {
                attr.RPC_SYSTEM: "jsonrpc",
                attr.RPC_METHOD: "initialize",
                attr.ACP_METHOD_NAME: "initialize",
                attr.NETWORK_TRANSPORT: attr.TRANSPORT_PIPE,
            },
        )
        self._track_pending(key, PendingRequest(method=req.method, start=self._clock(), span=span))

    def _on_prompt_request(self, key: RequestKey, req: Request) -> None:
        session_id = extract.extract_session_id(req.params) or UNKNOWN_SESSION
        set_session_id(session_id)
        identity = self.identity

        attributes: dict[str, AttributeValue] = {
            attr.GEN_AI_OPERATION_NAME: attr.OPERATION_INVOKE_AGENT,
            attr.GEN_AI_CONVERSATION_ID: session_id,
            attr.ACP_METHOD_NAME: "session/prompt",
            attr.NETWORK_TRANSPORT: attr.TRANSPORT_PIPE,
        }
        if identity.agent_name is not None:
            attributes[attr.GEN_AI_PROVIDER_NAME] = f"acp.{identity.agent_name}"
            attributes[attr.GEN_AI_AGENT_NAME] = identity.agent_name
            attributes[attr.GEN_AI_AGENT_ID] = identity.agent_name
        if identity.agent_version is not None:
            attributes[attr.ACP_AGENT_VERSION] = identity.agent_version
        if identity.client_name is not None:
            attributes[attr.ACP_CLIENT_NAME] = identity.client_name
        if identity.client_version is not None:
            attributes[attr.ACP_CLIENT_VERSION] = identity.client_version
        if self._record_content:
            text = extract.extract_prompt_text(req.params)
            if text is not None:
                attributes[attr.GEN_AI_INPUT_MESSAGES] = _text_messages("user", text)

        span_name = attr.OPERATION_INVOKE_AGENT
        if identity.agent_name is not None:
            span_name = f"{span_name} {identity.agent_name}"

        session = self._session(session_id)
        if session.prompt_span is not None:
            logger.warning("prompt started while previous prompt still open")
            _fail(session.prompt_span, PROMPT_SUPERSEDED)
            session.prompt_span.end()
            session.prompt_span = None

        span = self._start_span(span_name, self._root_context(), SpanKind.CLIENT, attributes)
        now = self._clock()
        session.begin_prompt(span, key, now)
        self._track_pending(
            key, PendingRequest(method=req.method, start=now, session_id=session_id)
        )

    def _on_fs_terminal_request(self, key: RequestKey, req: Request) -> None:
        session_id = extract.extract_session_id(req.params)
        attributes: dict[str, AttributeValue] = {
            attr.GEN_AI_OPERATION_NAME: attr.OPERATION_EXECUTE_TOOL,
            attr.GEN_AI_TOOL_NAME: req.method,
            attr.GEN_AI_TOOL_CALL_ID: _id_text(req.id),
            attr.GEN_AI_TOOL_TYPE: "function",
            attr.ACP_METHOD_NAME: req.method,
            attr.NETWORK_TRANSPORT: attr.TRANSPORT_PIPE,
        }
        if session_id is not None:
            set_session_id(session_id)
            attributes[attr.GEN_AI_CONVERSATION_ID] = session_id
        if self._record_content:
            attributes[attr.GEN_AI_TOOL_CALL_ARGUMENTS] = _json(req.params)

        span = self._start_span(
            f"{attr.OPERATION_EXECUTE_TOOL} {req.method}",
            self._session_context(session_id),
            SpanKind.INTERNAL,
            attributes,
        )
        self._track_pending(
            key,
            PendingRequest(method=req.method, start=self._clock(), span=span, session_id=session_id),
        )

    def _on_generic_request(self, key: RequestKey, req: Request) -> None:
        span = self._start_span(
            req.method,
            self._root_context(),
            SpanKind.INTERNAL,
            {
                attr.RPC_SYSTEM: "jsonrpc",
                attr.RPC_METHOD: req.method,
                attr.ACP_METHOD_NAME: req.method,
                attr.NETWORK_TRANSPORT: attr.TRANSPORT_PIPE,
                attr.JSONRPC_REQUEST_ID: _id_text(req.id),
            },
        )
        self._track_pending(
            key,
            PendingRequest(
                method=req.method,
                start=self._clock(),
                span=span,
                session_id=extract.extract_session_id(req.params),
            ),
        )

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def _handle_response(self, direction: Direction, resp: Response) -> None:
        # A response travels opposite to the request it answers
        key: RequestKey = (direction.opposite, canonical_id(resp.id))
        pending = self.pending.pop(key, None)
        if pending is None:
            logger.debug("response to unknown id ignored", direction=direction.value)
            return

        logger.debug("response", method=pending.method, error=resp.error is not None)

        if pending.method == "initialize":
            self._on_initialize_response(pending, resp)
        elif pending.method == "session/prompt":
            self._on_prompt_response(key, pending, resp)
        elif extract.is_fs_or_terminal_method(pending.method):
            self._on_fs_terminal_response(pending, resp)
        elif pending.span is not None:
            if resp.error is not None:
                _fail(pending.span, _json(resp.error))
            pending.span.end()

    def _on_initialize_response(self, pending: PendingRequest, resp: Response) -> None:
        span = pending.span
        if span is None:
            return

        if resp.result is not None:
            agent = extract.extract_agent_info(resp.result)
            if agent is not None:
                self.identity.agent_name, self.identity.agent_version = agent
                span.set_attribute(attr.GEN_AI_AGENT_NAME, agent[0])
                span.set_attribute(attr.GEN_AI_AGENT_ID, agent[0])
            self.identity.protocol_version = extract.extract_protocol_version(resp.result)
            if self.identity.protocol_version is not None:
                span.set_attribute(attr.ACP_PROTOCOL_VERSION, self.identity.protocol_version)

        if resp.error is not None:
            _fail_with_rpc_error(span, resp.error)

        if self.identity.agent_name is not None and self._root_span is not None:
            self._root_span.set_attribute(attr.GEN_AI_AGENT_NAME, self.identity.agent_name)

        span.end()

    def _on_prompt_response(self, key: RequestKey, pending: PendingRequest, resp: Response) -> None:
        if pending.session_id is None:
            return
        set_session_id(pending.session_id)
        session = self.sessions.get(pending.session_id)
        if session is None or session.prompt_span is None:
            return
        if session.prompt_request_key != key:
            # This prompt's span was already ended when a newer prompt replaced it
            logger.debug("response for superseded prompt ignored")
            return

        span = session.prompt_span
        session.prompt_span = None
        session.prompt_request_key = None
        duration = self._clock() - pending.start

        output = session.accumulated_output
        stop_reason = extract.extract_stop_reason(resp.result)
        if stop_reason is not None:
            span.set_attribute(attr.GEN_AI_RESPONSE_FINISH_REASONS, [stop_reason])
            if self._record_content and output:
                finish = extract.map_stop_reason_to_finish_reason(stop_reason)
                span.set_attribute(
                    attr.GEN_AI_OUTPUT_MESSAGES, _text_messages("assistant", output, finish)
                )
        elif self._record_content and output:
            span.set_attribute(attr.GEN_AI_OUTPUT_MESSAGES, _text_messages("assistant", output))

        if session.first_chunk_time is not None and session.prompt_start is not None:
            ttft = session.first_chunk_time - session.prompt_start
            span.set_attribute(attr.ACP_TIME_TO_FIRST_TOKEN_MS, int(ttft * 1000))
            self._ttft_histogram.record(
                ttft, {attr.GEN_AI_OPERATION_NAME: attr.OPERATION_INVOKE_AGENT}
            )

        if resp.error is not None:
            _fail_with_rpc_error(span, resp.error)

        span.end()
        self._record_duration(duration, attr.OPERATION_INVOKE_AGENT)

    def _on_fs_terminal_response(self, pending: PendingRequest, resp: Response) -> None:
        span = pending.span
        if span is None:
            return
        if self._record_content and resp.result is not None:
            span.set_attribute(attr.GEN_AI_TOOL_CALL_RESULT, _json(resp.result))
        if resp.error is not None:
            _fail_with_rpc_error(span, resp.error)
        span.end()
        self._record_duration(self._clock() - pending.start, attr.OPERATION_EXECUTE_TOOL)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _handle_notification(self, direction: Direction, note: Notification) -> None:
        if note.method != "session/update":
            return

        session_id = extract.extract_session_id(note.params)
        update_type = extract.extract_update_type(note.params)
        if session_id is None or update_type is None:
            return

        set_session_id(session_id)
        logger.debug("notification", direction=direction.value, update=update_type)

        if update_type == "agent_message_chunk":
            self._on_message_chunk(session_id, note.params)
        elif update_type == "tool_call":
            self._on_tool_call(session_id, note.params)
        elif update_type == "tool_call_update":
            self._on_tool_call_update(session_id, note.params)

    def _on_message_chunk(self, session_id: str, params: Any) -> None:
        session = self.sessions.get(session_id)
        if session is None:
            return
        if session.first_chunk_time is None:
            session.first_chunk_time = self._clock()
        text = extract.extract_chunk_text(params)
        if text is not None:
            session.output_chunks.append(text)

    def _on_tool_call(self, session_id: str, params: Any) -> None:
        tool_call_id = extract.extract_tool_call_id(params)
        if tool_call_id is None:
            return
        title = extract.extract_tool_call_title(params) or UNKNOWN_TOOL_TITLE
        kind = extract.extract_tool_call_kind(params) or DEFAULT_TOOL_KIND

        attributes: dict[str, AttributeValue] = {
            attr.GEN_AI_OPERATION_NAME: attr.OPERATION_EXECUTE_TOOL,
            attr.GEN_AI_TOOL_NAME: title,
            attr.GEN_AI_TOOL_CALL_ID: tool_call_id,
            attr.GEN_AI_TOOL_TYPE: extract.map_tool_kind_to_type(kind),
            attr.GEN_AI_CONVERSATION_ID: session_id,
            attr.ACP_METHOD_NAME: "session/update",
            attr.ACP_TOOL_KIND: kind,
            attr.NETWORK_TRANSPORT: attr.TRANSPORT_PIPE,
        }
        if self._record_content:
            raw_input = extract.extract_tool_call_raw_input(params)
            if raw_input is not None:
                attributes[attr.GEN_AI_TOOL_CALL_ARGUMENTS] = _json(raw_input)

        parent = self._session_context(session_id)
        session = self._session(session_id)
        previous = session.tool_spans.pop(tool_call_id, None)
        if previous is not None:
            logger.warning("tool call id reused while open", tool_call_id=tool_call_id)
            _fail(previous.span, TOOL_CALL_SUPERSEDED)
            previous.span.end()

        span = self._start_span(
            f"{attr.OPERATION_EXECUTE_TOOL} {title}", parent, SpanKind.INTERNAL, attributes
        )
        session.tool_spans[tool_call_id] = ToolSpan(span=span, start=self._clock())

    def _on_tool_call_update(self, session_id: str, params: Any) -> None:
        tool_call_id = extract.extract_tool_call_id(params)
        if tool_call_id is None:
            return
        status = extract.extract_tool_call_status(params)
        if status not in _TERMINAL_TOOL_STATUSES:
            return

        session = self.sessions.get(session_id)
        if session is None:
            return
        tool = session.tool_spans.pop(tool_call_id, None)
        if tool is None:
            return

        if status == "failed":
            _fail(tool.span, TOOL_CALL_FAILED, attr.ERROR_TYPE_TOOL)
        if self._record_content:
            raw_output = extract.extract_tool_call_raw_output(params)
            if raw_output is not None:
                tool.span.set_attribute(attr.GEN_AI_TOOL_CALL_RESULT, _json(raw_output))
        tool.span.end()
        self._record_duration(self._clock() - tool.start, attr.OPERATION_EXECUTE_TOOL)
