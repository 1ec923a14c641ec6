"""Line-forwarding loops that copy protocol traffic onto the tap queue."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from acp_traces.protocol.messages import Direction

logger = structlog.get_logger()

# None is the end-of-stream sentinel for the consumer
TapItem = tuple[Direction, str] | None
TapQueue = asyncio.Queue[TapItem]


class LineWriter(Protocol):
    """The subset of asyncio.StreamWriter the forwarders use."""

    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


def _emit(queue: TapQueue, direction: Direction, data: bytes) -> None:
    text = data.decode("utf-8", errors="replace").rstrip()
    try:
        queue.put_nowait((direction, text))
    except asyncio.QueueFull:
        logger.debug("tap queue full, line skipped for telemetry", direction=direction.value)


async def forward_lines(
    reader: asyncio.StreamReader,
    writer: LineWriter,
    direction: Direction,
    queue: TapQueue,
) -> int:
    """Copy `reader` to `writer` line by line until end of stream.

    Each line is written and drained before its copy is queued. Lines longer
    than the reader's limit are forwarded in pieces and never queued. A final
    line without a trailing newline is forwarded and queued as is.

    Returns:
        Number of lines queued for correlation.

    Raises:
        OSError: When writing downstream fails.
    """
    queued = 0
    oversized = False

    while True:
        try:
            data = await reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            data = e.partial
            if not data:
                break
        except asyncio.LimitOverrunError as e:
            data = await reader.read(max(e.consumed, 1))
            writer.write(data)
            await writer.drain()
            if not oversized:
                logger.warning(
                    "line exceeds stream limit, forwarded without telemetry",
                    direction=direction.value,
                )
            oversized = True
            continue

        writer.write(data)
        await writer.drain()

        if oversized:
            # Tail of the oversized line
            oversized = False
            continue

        _emit(queue, direction, data)
        queued += 1

    logger.debug("stream closed", direction=direction.value, lines=queued)
    return queued
