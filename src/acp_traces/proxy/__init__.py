"""Stdio interception proxy."""

from acp_traces.proxy.runner import run_proxy
from acp_traces.proxy.tap import forward_lines

__all__ = ["forward_lines", "run_proxy"]
