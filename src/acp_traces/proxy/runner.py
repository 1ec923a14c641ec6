"""Proxy orchestration: spawn the agent, tap both directions, shut down cleanly.

Tasks running on one event loop:
- editor-to-agent: proxy stdin -> agent stdin
- agent-to-editor: agent stdout -> proxy stdout
- correlator: drains the tap queue into the Correlator
- agent-wait: waits for the agent process to exit

The run ends when the agent exits, the editor closes proxy stdin, or either
forwarder fails on I/O (in the last two cases the agent is killed). Agent
output still buffered in the pipe gets a bounded window to reach the editor.
Then the tap queue is closed, the correlator ends all open spans and the
telemetry sink is flushed, also when the run is cancelled.
"""

from __future__ import annotations

import asyncio
import contextlib
import sys

import structlog

from acp_traces.config.models import AcpTracesConfig, ProxyConfig
from acp_traces.core.errors import InternalError, ProxyError
from acp_traces.core.telemetry import Telemetry, init_telemetry
from acp_traces.protocol.messages import Direction
from acp_traces.proxy.tap import LineWriter, TapQueue, forward_lines
from acp_traces.tracing.correlator import Correlator

logger = structlog.get_logger()


async def consume(queue: TapQueue, correlator: Correlator) -> int:
    """Feed queued lines to the correlator until the end sentinel, then shut it down.

    Returns:
        Number of lines processed.
    """
    processed = 0
    while True:
        item = await queue.get()
        if item is None:
            break
        direction, line = item
        try:
            correlator.process(direction, line)
        except Exception:
            logger.exception("failed to correlate line", direction=direction.value)
        processed += 1

    correlator.shutdown()
    logger.debug("correlator drained", lines=processed)
    return processed


async def attach_stdio(limit: int) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Wrap the proxy's own stdin/stdout as asyncio streams.

    Raises:
        ProxyError: If stdin or stdout is not a pipe, socket or character device.
    """
    loop = asyncio.get_running_loop()

    reader = asyncio.StreamReader(limit=limit)
    try:
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    except (OSError, ValueError) as e:
        raise ProxyError.stdio_unavailable("stdin", str(e)) from e

    try:
        transport, protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout
        )
    except (OSError, ValueError) as e:
        raise ProxyError.stdio_unavailable("stdout", str(e)) from e
    writer = asyncio.StreamWriter(transport, protocol, None, loop)

    return reader, writer


async def spawn_agent(command: list[str], config: ProxyConfig) -> asyncio.subprocess.Process:
    """Start the agent with piped stdin/stdout; its stderr stays attached to ours.

    Raises:
        ProxyError: If the command is empty or cannot be executed.
    """
    if not command:
        raise ProxyError.spawn_failed(command, "no command given")
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            limit=config.stream_limit_bytes,
        )
    except OSError as e:
        raise ProxyError.spawn_failed(command, str(e)) from e

    logger.info("agent spawned", cmd=command[0], args=command[1:], pid=proc.pid)
    return proc


async def _stop_task(task: asyncio.Task[int], name: str) -> None:
    if not task.done():
        task.cancel()
    (outcome,) = await asyncio.gather(task, return_exceptions=True)
    if isinstance(outcome, asyncio.CancelledError):
        logger.debug("task cancelled", task=name)
    elif isinstance(outcome, BaseException):
        logger.warning("task failed", task=name, error=repr(outcome))


def _failed(task: asyncio.Task[int]) -> bool:
    return task.done() and not task.cancelled() and task.exception() is not None


def exit_code_of(returncode: int | None) -> int:
    """Agent exit status as the proxy's exit code; 0 when killed by a signal or unknown."""
    if returncode is None or returncode < 0:
        return 0
    return returncode


async def supervise(
    proc: asyncio.subprocess.Process,
    editor_in: asyncio.StreamReader,
    editor_out: LineWriter,
    correlator: Correlator,
    telemetry: Telemetry,
    config: ProxyConfig,
) -> int:
    """Run the forwarders and correlator until termination. Returns the exit code.

    Open spans are closed and the telemetry flushed on every way out,
    including cancellation.
    """
    if proc.stdin is None or proc.stdout is None:
        raise InternalError.unexpected("agent process has no stdio pipes", pid=proc.pid)

    queue: TapQueue = asyncio.Queue()
    editor_task = asyncio.create_task(
        forward_lines(editor_in, proc.stdin, Direction.EDITOR_TO_AGENT, queue),
        name="editor-to-agent",
    )
    agent_task = asyncio.create_task(
        forward_lines(proc.stdout, editor_out, Direction.AGENT_TO_EDITOR, queue),
        name="agent-to-editor",
    )
    consumer_task = asyncio.create_task(consume(queue, correlator), name="correlator")
    wait_task = asyncio.create_task(proc.wait(), name="agent-wait")

    try:
        watched = {wait_task, editor_task, agent_task}
        while True:
            await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
            if wait_task.done() or editor_task.done() or _failed(agent_task):
                break
            # Agent stdout reached EOF; the process may still be running
            watched.discard(agent_task)

        if wait_task.done():
            logger.info("agent exited", code=wait_task.result())
        elif _failed(agent_task):
            logger.warning(
                "editor output failed, stopping agent", error=repr(agent_task.exception())
            )
        elif _failed(editor_task):
            logger.warning(
                "agent input failed, stopping agent", error=repr(editor_task.exception())
            )
        else:
            logger.info("editor input closed, stopping agent")

        editor_task.cancel()
        if not wait_task.done():
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await wait_task

        # The agent's last writes may still sit in the pipe
        if not agent_task.done():
            await asyncio.wait({agent_task}, timeout=config.drain_timeout_sec)
    finally:
        await _stop_task(editor_task, "editor-to-agent")
        await _stop_task(agent_task, "agent-to-editor")
        if not wait_task.done():
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await asyncio.gather(wait_task, return_exceptions=True)

        queue.put_nowait(None)
        await consumer_task
        await asyncio.to_thread(telemetry.force_flush)

    code = exit_code_of(proc.returncode)
    logger.info("proxy finished", code=code)
    return code


async def run_proxy(
    command: list[str],
    config: AcpTracesConfig,
    *,
    telemetry: Telemetry | None = None,
    stdin: asyncio.StreamReader | None = None,
    stdout: LineWriter | None = None,
) -> int:
    """Proxy one agent process between the editor and the agent.

    Args:
        command: Agent executable and its arguments.
        config: Resolved configuration.
        telemetry: Telemetry sink to use. When None, one is built from
            config.telemetry after the agent has started, and shut down on return.
        stdin: Editor-side input stream. Defaults to the proxy's stdin.
        stdout: Editor-side output stream. Defaults to the proxy's stdout.

    Returns:
        Exit code for the proxy process (the agent's, or 0 if unavailable).

    Raises:
        ProxyError: If stdio cannot be attached or the agent cannot be spawned.
    """
    if stdin is None or stdout is None:
        default_in, default_out = await attach_stdio(config.proxy.stream_limit_bytes)
        if stdin is None:
            stdin = default_in
        if stdout is None:
            stdout = default_out

    proc = await spawn_agent(command, config.proxy)

    owns_telemetry = telemetry is None
    if telemetry is None:
        telemetry = init_telemetry(config.telemetry)

    correlator = Correlator(telemetry, record_content=config.telemetry.record_content)
    try:
        return await supervise(proc, stdin, stdout, correlator, telemetry, config.proxy)
    finally:
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
        if owns_telemetry:
            await asyncio.to_thread(telemetry.shutdown)
