"""
The per-connection streaming loop.

A ``GenerationSession`` is created for one admitted connection.  It pulls
chunks from its content generator and writes them to a ``ChunkWriter``
until one of the following happens, checked in this order before every
chunk:

1. the time limit is set and the elapsed time has reached it;
2. the size limit is set and the bytes sent have reached it;
3. the writer reports that the client is no longer connected.

The session also ends when the generator is exhausted (the static variant
after its single chunk) or when a write fails.

Overshoot
---------
Limits are only checked *between* chunks, never in the middle of one.  A
session may therefore send up to one chunk beyond ``size_limit_bytes`` and
run up to one generation-and-write latency beyond ``time_limit_seconds``.
Callers must not assume an exact cutoff at the byte or second boundary.

Cooperative scheduling
----------------------
Generation is CPU-bound and fast, and runs inline on the event loop.  After
every written chunk the loop yields with ``asyncio.sleep(0)`` so that a
session whose writes complete immediately cannot starve the other
connections served by the same worker.
"""

import asyncio
import collections.abc
import enum
import time

import structlog

import honeypot.exceptions
from honeypot.generators.content_generator import ContentGenerator

logger = structlog.get_logger()


class TerminationReason(enum.StrEnum):
    """Why a streaming session stopped."""

    TIME_LIMIT = "time_limit"
    SIZE_LIMIT = "size_limit"
    CLIENT_DISCONNECTED = "client_disconnected"
    GENERATOR_EXHAUSTED = "generator_exhausted"
    TRANSPORT_ERROR = "transport_error"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


class ChunkWriter:
    """
    Destination of a session's chunks.

    Implementations raise ``honeypot.exceptions.TransportError`` from
    ``write`` when the chunk cannot be delivered, and report through
    ``is_writable`` whether a disconnect has already been observed.
    """

    @property
    def is_writable(self) -> bool:
        raise NotImplementedError

    async def write(self, chunk: bytes) -> None:
        raise NotImplementedError


class GenerationSession:
    """
    Streaming state of a single admitted connection.

    Attributes:
        started_at: Monotonic timestamp of session creation.
        bytes_sent: Cumulative number of body bytes successfully written.
        chunks_sent: Number of chunks successfully written.
        time_limit_seconds: Wall-clock ceiling, ``0`` for unlimited.
        size_limit_bytes: Byte ceiling, ``0`` for unlimited.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        time_limit_seconds: float = 0,
        size_limit_bytes: int = 0,
        prefix: bytes = b"",
        clock: collections.abc.Callable[[], float] = time.monotonic,
    ) -> None:
        self._generator = generator
        self._clock = clock
        self._prefix = prefix
        self.time_limit_seconds = time_limit_seconds
        self.size_limit_bytes = size_limit_bytes
        self.started_at = clock()
        self.bytes_sent = 0
        self.chunks_sent = 0

    @property
    def elapsed_seconds(self) -> float:
        """Return the time elapsed since the session was created."""
        return self._clock() - self.started_at

    def check_termination(self, writer: ChunkWriter) -> TerminationReason | None:
        """
        Return the reason the session must stop before its next chunk, or
        ``None`` when it may continue.
        """
        if self.time_limit_seconds and self.elapsed_seconds >= self.time_limit_seconds:
            return TerminationReason.TIME_LIMIT
        if self.size_limit_bytes and self.bytes_sent >= self.size_limit_bytes:
            return TerminationReason.SIZE_LIMIT
        if not writer.is_writable:
            return TerminationReason.CLIENT_DISCONNECTED
        return None

    async def stream_to(self, writer: ChunkWriter) -> TerminationReason:
        """
        Run the streaming loop until a termination condition is met.

        Every outcome, including a failed write, is a normal return; the
        reason is reported to the caller for logging and metrics.
        """
        while True:
            termination_reason = self.check_termination(writer)
            if termination_reason is not None:
                return termination_reason

            chunk = self._generator.next_chunk()
            if chunk is None:
                return TerminationReason.GENERATOR_EXHAUSTED

            if self.chunks_sent == 0 and self._prefix:
                chunk = self._prefix + chunk

            try:
                await writer.write(chunk)
            except honeypot.exceptions.TransportError as transport_error:
                logger.debug(
                    "stream_transport_error",
                    detail=transport_error.detail,
                    bytes_sent=self.bytes_sent,
                )
                return TerminationReason.TRANSPORT_ERROR

            self.bytes_sent += len(chunk)
            self.chunks_sent += 1

            await asyncio.sleep(0)
