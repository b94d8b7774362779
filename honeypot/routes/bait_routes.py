"""
Route definitions for bait paths.

A bait route answers every request with an endless (or size-, time- or
file-bounded) stream of generated content.  With ``catch_all`` enabled a
single ``/{requested_path:path}`` route makes every path bait; otherwise
only the configured paths are registered and every other path falls
through to the JSON 404 handler.

Every bait route accepts ``DELETE``, ``GET``, ``HEAD``, ``OPTIONS``,
``PATCH``, ``POST``, ``PUT`` and ``TRACE``.  Request bodies are never read.

Request flow
------------
1. The per-client rate limit is checked (``rate_limiting.bait_rate_limit``).
2. One admission permit is requested without waiting.  When none is
   available ``AdmissionRejectedError`` is raised and mapped to HTTP 429;
   no content generator is ever built for a rejected request.
3. A fresh generator and ``GenerationSession`` are created for the
   connection.  If that fails, the permit is released before the error
   propagates.
4. Ownership of the permit passes to ``HoneypotStreamingResponse``, which
   releases it when the stream ends for any reason.
"""

import typing

import fastapi
import structlog

import honeypot.admission_control
import honeypot.dependencies
import honeypot.exceptions
import honeypot.metrics
import honeypot.rate_limiting
import honeypot.shared_model
import honeypot.stream_settings
import honeypot.streaming_response
import honeypot.streaming_session

logger = structlog.get_logger()

BAIT_METHODS: list[str] = ["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT", "TRACE"]

CATCH_ALL_PATH = "/{requested_path:path}"


@honeypot.rate_limiting.bait_rate_limit
async def serve_bait_stream(
    request: fastapi.Request,
    admission_controller: typing.Annotated[
        honeypot.admission_control.StreamAdmissionController,
        fastapi.Depends(honeypot.dependencies.get_admission_controller),
    ],
    shared_model: typing.Annotated[
        honeypot.shared_model.SharedModel,
        fastapi.Depends(honeypot.dependencies.get_shared_model),
    ],
    stream_settings: typing.Annotated[
        honeypot.stream_settings.StreamSettings,
        fastapi.Depends(honeypot.dependencies.get_stream_settings),
    ],
    metrics_collector: typing.Annotated[
        honeypot.metrics.StreamMetricsCollector | None,
        fastapi.Depends(honeypot.dependencies.get_metrics_collector),
    ],
) -> honeypot.streaming_response.HoneypotStreamingResponse:
    """
    Admit the connection and hand it a streaming response.
    """
    permit = admission_controller.try_acquire()
    if permit is None:
        raise honeypot.exceptions.AdmissionRejectedError()

    try:
        content_generator = honeypot.shared_model.create_generator(
            shared_model,
            stream_settings.chunk_size,
        )
        generation_session = honeypot.streaming_session.GenerationSession(
            content_generator,
            time_limit_seconds=stream_settings.time_limit_seconds,
            size_limit_bytes=stream_settings.size_limit_bytes,
            prefix=stream_settings.prefix,
        )
        bait_response = honeypot.streaming_response.HoneypotStreamingResponse(
            generation_session,
            permit,
            media_type=stream_settings.content_type,
            metrics_collector=metrics_collector,
        )
    except BaseException:
        permit.release()
        raise

    logger.debug(
        "stream_admitted",
        active_sessions=admission_controller.active_session_count,
    )

    return bait_response


def create_bait_router(routes: list[str], catch_all: bool) -> fastapi.APIRouter:
    """
    Build the router that registers ``serve_bait_stream`` on bait paths.

    Args:
        routes: Paths to serve when ``catch_all`` is off.  Ignored when
            ``catch_all`` is on.
        catch_all: Serve every path.
    """
    bait_router = fastapi.APIRouter()
    bait_paths = [CATCH_ALL_PATH] if catch_all else list(dict.fromkeys(routes))

    for bait_path in bait_paths:
        bait_router.add_api_route(
            bait_path,
            serve_bait_stream,
            methods=BAIT_METHODS,
            response_model=None,
            include_in_schema=False,
        )

    return bait_router
