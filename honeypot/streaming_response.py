"""
ASGI response that streams a ``GenerationSession`` to the client.

``HoneypotStreamingResponse`` owns the admission permit of its connection
and holds it, through a ``with`` block, around the entire response
lifecycle: sending the response head, running the session loop, finishing
the body, logging and metrics.  The permit is therefore released exactly
once whether the stream ends on a limit, on generator exhaustion, on a
client disconnect, on a failed write, or on an unexpected exception.

Disconnect detection
--------------------
While the session loop runs, a watcher task consumes ``receive()`` until
the server reports ``http.disconnect`` and then marks the writer as no
longer writable, so the loop stops before generating another chunk.  A
write that fails with ``OSError`` (uvicorn raises ``ClientDisconnected``,
an ``OSError`` subclass) is surfaced to the loop as ``TransportError``.

No ``Content-Length`` header is ever sent; the body length is unknown up
front and, for the infinite generators, unbounded.
"""

import asyncio
import contextlib
import typing

import starlette.background
import starlette.responses
import starlette.types
import structlog

import honeypot.admission_control
import honeypot.exceptions
import honeypot.metrics
from honeypot.streaming_session import ChunkWriter, GenerationSession, TerminationReason

logger = structlog.get_logger()


class AsgiChunkWriter(ChunkWriter):
    """``ChunkWriter`` that sends chunks as ASGI ``http.response.body`` messages."""

    def __init__(self, send: starlette.types.Send) -> None:
        self._send = send
        self._client_disconnected = False

    @property
    def is_writable(self) -> bool:
        return not self._client_disconnected

    def mark_disconnected(self) -> None:
        self._client_disconnected = True

    async def write(self, chunk: bytes) -> None:
        if self._client_disconnected:
            raise honeypot.exceptions.TransportError()
        try:
            await self._send({"type": "http.response.body", "body": chunk, "more_body": True})
        except OSError as send_error:
            self._client_disconnected = True
            raise honeypot.exceptions.TransportError(
                detail=f"Writing to the client failed: {send_error!r}",
            ) from send_error

    async def finish(self) -> None:
        """Send the final empty body message if the client is still there."""
        if self._client_disconnected:
            return
        try:
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        except OSError:
            self._client_disconnected = True


async def _watch_for_disconnect(receive: starlette.types.Receive, writer: AsgiChunkWriter) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            writer.mark_disconnected()
            return


async def _stop_disconnect_watcher(disconnect_watcher: asyncio.Task) -> None:
    """Cancel the watcher and collect its outcome."""
    disconnect_watcher.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await disconnect_watcher


class HoneypotStreamingResponse(starlette.responses.Response):
    """
    Stream the output of ``session`` while holding ``permit``.

    The permit must already have been acquired; this response releases it.
    """

    def __init__(
        self,
        session: GenerationSession,
        permit: honeypot.admission_control.AdmissionPermit,
        media_type: str | None = None,
        status_code: int = 200,
        headers: typing.Mapping[str, str] | None = None,
        metrics_collector: honeypot.metrics.StreamMetricsCollector | None = None,
        background: starlette.background.BackgroundTask | None = None,
    ) -> None:
        self.session = session
        self.permit = permit
        self.status_code = status_code
        self.media_type = media_type
        self.background = background
        self._metrics_collector = metrics_collector
        self.init_headers(headers)

    async def __call__(
        self,
        scope: starlette.types.Scope,
        receive: starlette.types.Receive,
        send: starlette.types.Send,
    ) -> None:
        with self.permit:
            writer = AsgiChunkWriter(send)

            try:
                await send(
                    {
                        "type": "http.response.start",
                        "status": self.status_code,
                        "headers": self.raw_headers,
                    }
                )
            except OSError:
                logger.debug("stream_aborted_before_start")
                return

            if scope.get("method") == "HEAD":
                await writer.finish()
                return

            if self._metrics_collector is not None:
                self._metrics_collector.record_session_started()

            disconnect_watcher = asyncio.create_task(_watch_for_disconnect(receive, writer))
            # Stays CANCELLED only if the task is cancelled mid-stream.
            termination_reason = TerminationReason.CANCELLED
            try:
                termination_reason = await self.session.stream_to(writer)
                if termination_reason is not TerminationReason.TRANSPORT_ERROR:
                    await writer.finish()
            except Exception:
                termination_reason = TerminationReason.INTERNAL_ERROR
                raise
            finally:
                self._record_stream_end(termination_reason)
                await _stop_disconnect_watcher(disconnect_watcher)

        if self.background is not None:
            await self.background()

    def _record_stream_end(self, termination_reason: TerminationReason) -> None:
        duration_seconds = self.session.elapsed_seconds
        bytes_sent = self.session.bytes_sent

        logger.info(
            "stream_ended",
            termination_reason=termination_reason.value,
            bytes_sent=bytes_sent,
            megabytes_sent=round(bytes_sent * 1e-6, 2),
            duration_seconds=round(duration_seconds, 3),
        )
        if self._metrics_collector is not None:
            self._metrics_collector.record_session_completed(
                termination_reason=termination_reason,
                bytes_sent=bytes_sent,
                duration_seconds=duration_seconds,
            )
