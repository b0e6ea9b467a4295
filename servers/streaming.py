from __future__ import annotations

import logging
from queue import Empty, Full, Queue
from typing import Callable, Iterator, TypeVar

import grpc

from models.records import Reading
from services.generators import TelemetryGenerator

logger = logging.getLogger(__name__)

T = TypeVar("T")

STREAM_BUFFER_SIZE = 32


def pipe_generator(
    generator: TelemetryGenerator,
    context: grpc.ServicerContext,
    to_message: Callable[[Reading], T],
    buffer_size: int = STREAM_BUFFER_SIZE,
) -> Iterator[T]:
    """Yield generator readings into a response stream until the caller leaves.

    The generator is cancelled from the RPC termination callback and again
    when the handler exits, whichever comes first. Once ``buffer_size``
    readings are waiting for a slow peer, the oldest one is dropped.
    """
    readings: Queue[Reading] = Queue(maxsize=buffer_size)

    def offer(reading: Reading) -> bool:
        if not context.is_active():
            return False
        while True:
            try:
                readings.put_nowait(reading)
                return True
            except Full:
                try:
                    readings.get_nowait()
                except Empty:
                    pass

    handle = generator.start(offer)
    context.add_callback(handle.cancel)
    logger.info("Live stream opened", extra={"service": generator.name})
    try:
        while context.is_active() and not handle.cancelled:
            try:
                reading = readings.get(timeout=generator.period)
            except Empty:
                continue
            yield to_message(reading)
    finally:
        handle.cancel()
        logger.info("Live stream closed", extra={"service": generator.name})
