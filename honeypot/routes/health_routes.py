"""
Route definitions for the health-check listener.

The health-check listener is a separate, optional server bound to
``health_port``.  It gives load balancers and operators a way to tell that
the honeypot is alive without being fed a stream themselves:

- ``GET /metrics`` returns a JSON snapshot of the stream metrics together
  with the current number of active streams and the concurrency limit.
- ``GET`` on any other path returns ``OK\\n`` as ``text/plain``.

Cache suppression policy
------------------------
Both endpoints include ``Cache-Control: no-store, no-cache`` and
``Pragma: no-cache`` so that intermediaries never serve a stale health
status or metrics snapshot.
"""

import typing

import fastapi
import fastapi.responses

health_router = fastapi.APIRouter(tags=["Health"])

_INFRASTRUCTURE_CACHE_SUPPRESSION_HEADERS: dict[str, str] = {
    "Cache-Control": "no-store, no-cache",
    "Pragma": "no-cache",
}


@health_router.get("/metrics", summary="Stream metrics")
async def get_metrics(request: fastapi.Request) -> fastapi.responses.JSONResponse:
    """
    Return a point-in-time snapshot of the stream metrics.

    ``active_sessions`` and ``maximum_concurrency`` are read from the
    admission controller at the time of the request rather than from the
    collector, so they are always current.
    """
    metrics_collector = getattr(request.app.state, "metrics_collector", None)
    content: dict[str, typing.Any] = metrics_collector.snapshot() if metrics_collector is not None else {}

    admission_controller = getattr(request.app.state, "admission_controller", None)
    if admission_controller is not None:
        content["active_sessions"] = admission_controller.active_session_count
        content["maximum_concurrency"] = admission_controller.maximum_concurrency

    return fastapi.responses.JSONResponse(
        content=content,
        headers=_INFRASTRUCTURE_CACHE_SUPPRESSION_HEADERS,
    )


@health_router.get("/{requested_path:path}", summary="Liveness check")
async def health_check(requested_path: str) -> fastapi.responses.PlainTextResponse:
    """
    Return ``OK`` whenever the process is running.
    """
    return fastapi.responses.PlainTextResponse(
        "OK\n",
        headers=_INFRASTRUCTURE_CACHE_SUPPRESSION_HEADERS,
    )
