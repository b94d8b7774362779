"""
FastAPI application factories.

``create_application`` constructs the honeypot application itself:
configuration checks, logging, the shared generator model, admission
control, rate limiting, error handling, middleware and bait routes.
``create_health_application`` constructs the optional health-check
listener that shares the honeypot's admission controller and metrics.

Using factory functions (rather than module-level globals) makes the
applications straightforward to test and re-create.

All fallible startup work (logging sinks, generator data) happens inside
the factory, before any port is bound, so that a ``ConfigurationError``
can terminate the process with its exit code.  Shared state is attached to
``app.state`` by the factory rather than by the lifespan, which only logs
the start and the end of serving.
"""

import collections.abc
import contextlib

import fastapi
import slowapi.errors
import structlog

import configuration
import honeypot.admission_control
import honeypot.error_handling
import honeypot.logging_config
import honeypot.metrics
import honeypot.middleware
import honeypot.rate_limiting
import honeypot.routes.bait_routes
import honeypot.routes.health_routes
import honeypot.shared_model

logger = structlog.get_logger()

HONEYPOT_VERSION = "1.0.0"


def create_application(
    application_configuration: configuration.HoneypotConfiguration | None = None,
) -> fastapi.FastAPI:
    """
    Create and fully configure the honeypot application.

    This function:
      1. Reads configuration from environment variables unless a
         configuration object is supplied, and rejects conflicting values.
      2. Configures logging.
      3. Loads and validates the shared generator model.
      4. Creates the admission controller, the metrics collector and the
         per-stream settings and stores them on ``app.state``.
      5. Registers error handlers, the rate limiter, the middleware and
         the bait routes.

    Raises:
        honeypot.exceptions.ConfigurationError: When the configuration
            cannot be turned into a working service.  The exception's
            ``exit_code`` identifies the failure.
    """
    if application_configuration is None:
        application_configuration = configuration.HoneypotConfiguration()
    application_configuration.ensure_consistent()

    honeypot.logging_config.configure_logging(
        log_level=application_configuration.log_level,
        log_output_path=(
            str(application_configuration.log_output_path) if application_configuration.log_output_path else None
        ),
        print_pretty_logs=application_configuration.print_pretty_logs,
        no_stdout=application_configuration.no_stdout,
    )

    shared_model = honeypot.shared_model.SharedModel.load(
        application_configuration.to_generator_config(),
    )
    admission_controller = honeypot.admission_control.StreamAdmissionController(
        maximum_concurrency=application_configuration.max_concurrent,
    )
    metrics_collector = honeypot.metrics.StreamMetricsCollector()

    @contextlib.asynccontextmanager
    async def application_lifespan(
        fastapi_application: fastapi.FastAPI,
    ) -> collections.abc.AsyncIterator[None]:
        """
        Log the start and the end of serving.
        """
        logger.info(
            "honeypot_started",
            version=HONEYPOT_VERSION,
            host=application_configuration.application_host,
            port=application_configuration.application_port,
            generator_type=application_configuration.generator_type.value,
            catch_all=application_configuration.catch_all,
            routes=None if application_configuration.catch_all else application_configuration.routes,
            maximum_concurrency=application_configuration.max_concurrent,
            rate_limit=application_configuration.rate_limit,
            rate_limit_period_seconds=application_configuration.rate_limit_period_seconds,
        )

        yield

        logger.info(
            "graceful_shutdown_initiated",
            active_sessions=admission_controller.active_session_count,
        )

    fastapi_application = fastapi.FastAPI(
        title="Honeypot",
        version=HONEYPOT_VERSION,
        lifespan=application_lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    fastapi_application.state.shared_model = shared_model
    fastapi_application.state.admission_controller = admission_controller
    fastapi_application.state.metrics_collector = metrics_collector
    fastapi_application.state.stream_settings = application_configuration.to_stream_settings()
    fastapi_application.state.retry_after_busy_seconds = application_configuration.retry_after_busy_seconds
    fastapi_application.state.retry_after_rate_limit_seconds = application_configuration.retry_after_rate_limit_seconds

    honeypot.error_handling.register_error_handlers(fastapi_application)

    honeypot.rate_limiting.bait_rate_limit_configuration.configure(
        application_configuration.rate_limit,
        application_configuration.rate_limit_period_seconds,
    )
    fastapi_application.state.limiter = honeypot.rate_limiting.rate_limiter
    fastapi_application.add_exception_handler(
        slowapi.errors.RateLimitExceeded,
        honeypot.rate_limiting.rate_limit_exceeded_handler,  # type: ignore[arg-type]
    )

    fastapi_application.add_middleware(honeypot.middleware.CorrelationIdMiddleware)

    fastapi_application.include_router(
        honeypot.routes.bait_routes.create_bait_router(
            routes=application_configuration.routes,
            catch_all=application_configuration.catch_all,
        ),
    )

    return fastapi_application


def create_health_application(
    admission_controller: honeypot.admission_control.StreamAdmissionController,
    metrics_collector: honeypot.metrics.StreamMetricsCollector,
) -> fastapi.FastAPI:
    """
    Create the health-check application.

    The health application reports on the honeypot it is given; it has no
    bait routes, no rate limit and no admission control of its own.
    """
    health_application = fastapi.FastAPI(
        title="Honeypot health check",
        version=HONEYPOT_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    health_application.state.admission_controller = admission_controller
    health_application.state.metrics_collector = metrics_collector

    honeypot.error_handling.register_error_handlers(health_application)
    health_application.include_router(honeypot.routes.health_routes.health_router)

    return health_application
