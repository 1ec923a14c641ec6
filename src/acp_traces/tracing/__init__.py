"""Span and metric correlation for observed ACP traffic."""

from acp_traces.tracing.correlator import Correlator
from acp_traces.tracing.state import Identity, PendingRequest, SessionState

__all__ = [
    "Correlator",
    "Identity",
    "PendingRequest",
    "SessionState",
]
