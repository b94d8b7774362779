"""Shared fixtures for route integration tests."""

import fastapi
import httpx
import pytest
import pytest_asyncio
import slowapi.errors

import honeypot.admission_control
import honeypot.error_handling
import honeypot.metrics
import honeypot.middleware
import honeypot.rate_limiting
import honeypot.routes.bait_routes
import honeypot.shared_model
import honeypot.stream_settings
from honeypot.generators.content_generator import GeneratorConfig, GeneratorVariant

TEST_CHUNK_SIZE = 1024
TEST_SIZE_LIMIT_BYTES = 3000


@pytest.fixture
def admission_controller():
    """
    Admission controller with a generous concurrency limit so that
    route-level tests are not blocked by admission control unless they
    explicitly test that behaviour.
    """
    return honeypot.admission_control.StreamAdmissionController(maximum_concurrency=100)


@pytest.fixture
def metrics_collector():
    return honeypot.metrics.StreamMetricsCollector()


@pytest.fixture
def shared_model():
    return honeypot.shared_model.SharedModel.load(GeneratorConfig(GeneratorVariant.RANDOM, TEST_CHUNK_SIZE))


@pytest.fixture
def stream_settings():
    """
    The test client buffers whole response bodies, so every stream served
    through it must be bounded.
    """
    return honeypot.stream_settings.StreamSettings(
        chunk_size=TEST_CHUNK_SIZE,
        size_limit_bytes=TEST_SIZE_LIMIT_BYTES,
    )


@pytest.fixture
def bait_router_options():
    return {"routes": ["/"], "catch_all": True}


@pytest.fixture
def test_app(admission_controller, metrics_collector, shared_model, stream_settings, bait_router_options):
    app = fastapi.FastAPI()
    honeypot.error_handling.register_error_handlers(app)

    app.add_middleware(honeypot.middleware.CorrelationIdMiddleware)
    app.include_router(honeypot.routes.bait_routes.create_bait_router(**bait_router_options))

    app.state.limiter = honeypot.rate_limiting.rate_limiter
    app.add_exception_handler(
        slowapi.errors.RateLimitExceeded,
        honeypot.rate_limiting.rate_limit_exceeded_handler,
    )

    app.state.admission_controller = admission_controller
    app.state.shared_model = shared_model
    app.state.stream_settings = stream_settings
    app.state.metrics_collector = metrics_collector
    app.state.retry_after_busy_seconds = 30
    app.state.retry_after_rate_limit_seconds = 60

    return app


@pytest_asyncio.fixture
async def client(test_app):
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
