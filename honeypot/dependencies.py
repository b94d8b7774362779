"""
FastAPI dependency injection providers.

Each function in this module retrieves a shared instance from the FastAPI
application state.  This pattern keeps route handlers decoupled from
startup construction and makes the application straightforward to test.
"""

import fastapi

import honeypot.admission_control
import honeypot.metrics
import honeypot.shared_model
import honeypot.stream_settings


def get_admission_controller(
    request: fastapi.Request,
) -> honeypot.admission_control.StreamAdmissionController:
    """
    Retrieve the shared StreamAdmissionController from application state.
    """
    return request.app.state.admission_controller  # type: ignore[no-any-return]


def get_shared_model(
    request: fastapi.Request,
) -> honeypot.shared_model.SharedModel:
    """
    Retrieve the generator data loaded once at startup.
    """
    return request.app.state.shared_model  # type: ignore[no-any-return]


def get_stream_settings(
    request: fastapi.Request,
) -> honeypot.stream_settings.StreamSettings:
    """
    Retrieve the per-stream settings built from the configuration.
    """
    return request.app.state.stream_settings  # type: ignore[no-any-return]


def get_metrics_collector(
    request: fastapi.Request,
) -> honeypot.metrics.StreamMetricsCollector | None:
    """
    Retrieve the metrics collector, or ``None`` when the application was
    assembled without one.
    """
    return getattr(request.app.state, "metrics_collector", None)
