"""
Centralised error-handling registration for the honeypot application.

Only a handful of conditions produce a response other than a generated
stream, and each one is mapped to a consistent JSON error body:

    - Concurrency limit reached           →  429 Too Many Requests (service_busy)
    - Per-client rate limit exceeded      →  429 Too Many Requests (rate_limit_exceeded,
                                             see ``rate_limiting.py``)
    - Path outside the bait routes        →  404 Not Found
    - Unexpected internal errors          →  500 Internal Server Error
                                             (see ``middleware.py``)

Starlette raises its own ``HTTPException`` (distinct from FastAPI's
``HTTPException``) for framework-level errors such as 404.  A handler for
``starlette.exceptions.HTTPException`` intercepts these and returns
structured JSON rather than the framework's default plain-text responses.
Every bait route accepts every bait method, so a 405 can only arise for an
exotic method on a bait path; it is reported the same way.
"""

import fastapi
import fastapi.responses
import starlette.exceptions
import structlog

import honeypot.exceptions
import honeypot.models

logger = structlog.get_logger()

_HTTP_STATUS_CODE_TO_ERROR_CODE: dict[int, str] = {
    404: "not_found",
    405: "method_not_allowed",
}

_HTTP_STATUS_CODE_TO_ERROR_MESSAGE: dict[int, str] = {
    404: "The requested resource does not exist.",
    405: "The HTTP method is not allowed for this resource.",
}


def _get_correlation_id(request: fastapi.Request) -> str:
    """
    Extract the correlation ID set by ``CorrelationIdMiddleware``, or
    ``"unknown"`` when the middleware has not run.
    """
    return getattr(request.state, "correlation_id", "unknown")


def _build_error_response(
    status_code: int,
    code: str,
    message: str,
    correlation_id: str,
) -> fastapi.responses.JSONResponse:
    """
    Build a consistent JSON error response.

    Args:
        status_code: The HTTP status code for the response.
        code: The machine-readable error code in ``snake_case`` format.
        message: A human-readable error description.
        correlation_id: The UUID v4 correlation identifier for this
            request.
    """
    error_response = honeypot.models.ErrorResponse(
        error=honeypot.models.ErrorDetail(
            code=code,
            message=message,
            correlation_id=correlation_id,
        ),
    )

    return fastapi.responses.JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(),
    )


def register_error_handlers(fastapi_application: fastapi.FastAPI) -> None:
    """
    Register the custom exception handlers on the given application.

    The catch-all handler for unexpected exceptions (HTTP 500) lives in
    ``CorrelationIdMiddleware`` rather than here.  Starlette routes
    ``Exception`` handlers to ``ServerErrorMiddleware``, which always
    re-raises after sending the response.  Handling it in the outermost
    middleware avoids this re-raise and fully contains the error.
    """

    @fastapi_application.exception_handler(
        honeypot.exceptions.AdmissionRejectedError,
    )
    async def handle_admission_rejected_error(
        request: fastapi.Request,
        rejection_error: honeypot.exceptions.AdmissionRejectedError,
    ) -> fastapi.responses.JSONResponse:
        """
        Return 429 Too Many Requests when every stream slot is taken.

        The rejection is decided before any content generator exists, so a
        refused scraper costs the honeypot one small JSON body.  The
        ``Retry-After`` header is populated from ``retry_after_busy_seconds``
        on ``app.state``.
        """
        admission_controller = getattr(request.app.state, "admission_controller", None)
        logger.info(
            "admission_rejected",
            active_sessions=(admission_controller.active_session_count if admission_controller else None),
            maximum_concurrency=(admission_controller.maximum_concurrency if admission_controller else None),
        )

        metrics_collector = getattr(request.app.state, "metrics_collector", None)
        if metrics_collector is not None:
            metrics_collector.record_admission_rejected()

        retry_after_seconds = getattr(request.app.state, "retry_after_busy_seconds", 30)

        response = _build_error_response(
            429,
            "service_busy",
            rejection_error.detail,
            _get_correlation_id(request),
        )
        response.headers["Retry-After"] = str(retry_after_seconds)

        return response

    @fastapi_application.exception_handler(
        starlette.exceptions.HTTPException,
    )
    async def handle_starlette_http_exception(
        request: fastapi.Request,
        http_exception: starlette.exceptions.HTTPException,
    ) -> fastapi.responses.JSONResponse:
        """
        Return structured JSON for framework-raised HTTP errors.

        Unmapped status codes fall back to ``"unexpected_error"`` so that
        every framework-originated error still produces valid JSON.
        """
        error_code = _HTTP_STATUS_CODE_TO_ERROR_CODE.get(
            http_exception.status_code,
            "unexpected_error",
        )
        error_message = _HTTP_STATUS_CODE_TO_ERROR_MESSAGE.get(
            http_exception.status_code,
            str(http_exception.detail),
        )

        logger.info(
            "http_not_bait_route" if http_exception.status_code == 404 else "http_framework_error",
            status_code=http_exception.status_code,
            error_code=error_code,
        )

        response = _build_error_response(
            http_exception.status_code,
            error_code,
            error_message,
            _get_correlation_id(request),
        )
        if http_exception.headers:
            response.headers.update(http_exception.headers)
        return response
