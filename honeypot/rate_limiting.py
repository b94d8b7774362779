"""
Per-client rate limiting for bait routes.

Uses slowapi (backed by the ``limits`` library) to throttle how many
streams a single client address may open within a sliding period.  The
limit is configured as two numbers, ``rate_limit`` (requests) and
``rate_limit_period_seconds`` (window length), and a ``rate_limit`` of
``0`` disables rate limiting entirely.

The limit is a shared limit in the ``bait`` scope: one counter per client
address covers every bait path and method, so a scraper cannot reset its
budget by requesting a different URL.

Deferred-evaluation pattern
---------------------------
The ``slowapi.Limiter.shared_limit()`` decorator must be applied to the bait
handler at import time, before the configuration has been read.  The
actual limit therefore lives in a ``BaitRateLimitConfiguration`` instance,
a callable that slowapi invokes on every request to resolve the current
limit string.  ``configure()`` sets the values once during application
startup.  The same object answers ``is_disabled()``, which is passed to
slowapi as ``exempt_when`` so that a zero limit skips the limiter instead
of rejecting every request.

Client identity
---------------
Requests are keyed by ``honeypot.middleware.resolve_client_address``, so a
honeypot behind a reverse proxy limits the scraper rather than the proxy.

Distinction from admission control
-----------------------------------
- **Rate limiting** (this module) restricts how *often* a *single* client
  may connect.  Exceeding it yields HTTP 429 ``rate_limit_exceeded`` with
  ``Retry-After: retry_after_rate_limit_seconds``.
- **Admission control** (``admission_control.py``) limits the *total*
  number of concurrent streams across *all* clients.  Exceeding it yields
  HTTP 429 ``service_busy`` with ``Retry-After: retry_after_busy_seconds``.

Module-level singleton note
---------------------------
The configuration, the limiter and the decorator are module-level objects
because slowapi's decorator-based architecture requires them when the
route module is imported.  Every application created in the same process
shares them; test fixtures should call ``configure()`` and
``rate_limiter.reset()`` between tests.
"""

import fastapi
import fastapi.responses
import slowapi
import slowapi.errors
import structlog

import honeypot.middleware
import honeypot.models

logger = structlog.get_logger()


class BaitRateLimitConfiguration:
    """
    Holds the mutable per-client limit for bait routes.

    Instances are passed to ``slowapi.Limiter.shared_limit()`` both as the dynamic
    limit callable and, through ``is_disabled``, as the exemption check.
    """

    def __init__(self, rate_limit: int = 0, period_seconds: int = 300) -> None:
        self._rate_limit = rate_limit
        self._period_seconds = period_seconds

    def configure(self, rate_limit: int, period_seconds: int) -> None:
        """
        Set the per-client limit.

        Args:
            rate_limit: Requests allowed per period; ``0`` disables the
                limit.
            period_seconds: Length of the rate limit window in seconds.
        """
        self._rate_limit = rate_limit
        self._period_seconds = period_seconds

    @property
    def rate_limit(self) -> int:
        return self._rate_limit

    @property
    def period_seconds(self) -> int:
        return self._period_seconds

    def is_disabled(self) -> bool:
        """Return whether rate limiting is switched off."""
        return self._rate_limit <= 0

    def __call__(self) -> str:
        """
        Return the current limit in the ``limits`` library notation, for
        example ``"5 per 300 seconds"``.
        """
        # A disabled limiter is exempted before this string is parsed, but
        # the value must still be valid syntax.
        return f"{max(self._rate_limit, 1)} per {self._period_seconds} seconds"


def _rate_limit_key(request: fastapi.Request) -> str:
    return honeypot.middleware.resolve_client_address(request.scope)


bait_rate_limit_configuration = BaitRateLimitConfiguration()

rate_limiter = slowapi.Limiter(key_func=_rate_limit_key)

bait_rate_limit = rate_limiter.shared_limit(
    bait_rate_limit_configuration,
    scope="bait",
    exempt_when=bait_rate_limit_configuration.is_disabled,
)


async def rate_limit_exceeded_handler(
    request: fastapi.Request,
    rate_limit_exceeded_exception: slowapi.errors.RateLimitExceeded,
) -> fastapi.responses.JSONResponse:
    """
    Return a structured HTTP 429 JSON response when a client exceeds the
    per-client rate limit.

    No content generator is constructed for the rejected request.  The
    ``Retry-After`` header is populated from
    ``retry_after_rate_limit_seconds`` on ``app.state``.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    retry_after_seconds = getattr(request.app.state, "retry_after_rate_limit_seconds", 60)

    logger.warning(
        "rate_limit_exceeded",
        limit=str(rate_limit_exceeded_exception.detail),
    )
    metrics_collector = getattr(request.app.state, "metrics_collector", None)
    if metrics_collector is not None:
        metrics_collector.record_rate_limit_rejected()

    response = fastapi.responses.JSONResponse(
        status_code=429,
        content=honeypot.models.ErrorResponse(
            error=honeypot.models.ErrorDetail(
                code="rate_limit_exceeded",
                message=f"Rate limit exceeded: {rate_limit_exceeded_exception.detail}",
                correlation_id=correlation_id,
            ),
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after_seconds)
    return response
