"""
In-memory stream metrics for operational monitoring.

Provides a thread-safe collector of honeypot stream statistics, exposed as
JSON by ``GET /metrics`` on the health-check listener.  The collector
records:

- how many streams were started and how each one ended (grouped by
  termination reason);
- how many connections were turned away by admission control or by the
  per-client rate limit;
- the total number of bytes fed to scrapers, and the largest and longest
  single streams seen so far.

Every snapshot carries two temporal metadata fields:

- ``service_started_at``: ISO 8601 UTC timestamp of when the collector was
  created, which coincides with application startup.
- ``collected_at``: ISO 8601 UTC timestamp of when the snapshot was taken.

The counters are plain integers and never grow with traffic, so the
collector's memory footprint is constant for the lifetime of the process.
"""

import datetime
import threading

import honeypot.streaming_session


class StreamMetricsCollector:
    """
    Thread-safe collector for honeypot stream metrics.

    Thread safety is achieved via a ``threading.Lock`` rather than an
    ``asyncio.Lock`` because the collector is also updated from the
    synchronous exit path of streaming responses.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions_started: int = 0
        self._sessions_completed: dict[str, int] = {
            termination_reason.value: 0 for termination_reason in honeypot.streaming_session.TerminationReason
        }
        self._admission_rejections: int = 0
        self._rate_limit_rejections: int = 0
        self._total_bytes_sent: int = 0
        self._largest_session_bytes: int = 0
        self._longest_session_seconds: float = 0.0
        self._service_started_at: str = _format_current_utc_timestamp()

    def record_session_started(self) -> None:
        """Record that an admitted stream began sending its body."""
        with self._lock:
            self._sessions_started += 1

    def record_session_completed(
        self,
        termination_reason: honeypot.streaming_session.TerminationReason,
        bytes_sent: int,
        duration_seconds: float,
    ) -> None:
        """
        Record a finished stream.

        Args:
            termination_reason: Why the stream stopped.
            bytes_sent: Body bytes successfully written to the client.
            duration_seconds: Time from session creation to termination.
        """
        with self._lock:
            self._sessions_completed[termination_reason.value] += 1
            self._total_bytes_sent += bytes_sent
            self._largest_session_bytes = max(self._largest_session_bytes, bytes_sent)
            self._longest_session_seconds = max(self._longest_session_seconds, duration_seconds)

    def record_admission_rejected(self) -> None:
        """Record a connection refused because the concurrency limit was reached."""
        with self._lock:
            self._admission_rejections += 1

    def record_rate_limit_rejected(self) -> None:
        """Record a connection refused by the per-client rate limit."""
        with self._lock:
            self._rate_limit_rejections += 1

    def snapshot(self) -> dict:
        """
        Return a point-in-time snapshot of all collected metrics, suitable
        for direct JSON serialisation.
        """
        with self._lock:
            return {
                "collected_at": _format_current_utc_timestamp(),
                "service_started_at": self._service_started_at,
                "sessions_started": self._sessions_started,
                "sessions_completed": dict(self._sessions_completed),
                "admission_rejections": self._admission_rejections,
                "rate_limit_rejections": self._rate_limit_rejections,
                "total_bytes_sent": self._total_bytes_sent,
                "largest_session_bytes": self._largest_session_bytes,
                "longest_session_seconds": round(self._longest_session_seconds, 3),
            }


def _format_current_utc_timestamp() -> str:
    """
    Return the current UTC time as an ISO 8601 string with microsecond
    precision and a ``Z`` suffix, e.g. ``"2026-02-23T14:32:10.123456Z"``.
    """
    return datetime.datetime.now(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
