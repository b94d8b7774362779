"""
Integration tests for the bait routes.

Requests go through the full middleware, error-handling and rate-limiting
stack.  The test client buffers each response body completely, so every
stream served through it is bounded by the size limit from the route
conftest or by a static document.  The one unbounded stream is driven
directly through the ASGI interface and cancelled by the test.
"""

import asyncio

import pytest

import honeypot.admission_control
import honeypot.rate_limiting
import honeypot.routes.bait_routes
import honeypot.shared_model
import honeypot.stream_settings
from honeypot.generators.content_generator import GeneratorConfig, GeneratorVariant

# Must match the ``stream_settings`` fixture of the route conftest.
TEST_CHUNK_SIZE = 1024
TEST_SIZE_LIMIT_BYTES = 3000


class TestCatchAllBaitRoutes:

    async def test_root_path_streams_generated_content(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert TEST_SIZE_LIMIT_BYTES <= len(response.content) < TEST_SIZE_LIMIT_BYTES + TEST_CHUNK_SIZE
        assert response.content.startswith(b"<p>\n")

    async def test_every_path_is_bait(self, client):
        response = await client.get("/wp-login.php?redirect_to=%2Fadmin")

        assert response.status_code == 200
        assert len(response.content) >= TEST_SIZE_LIMIT_BYTES

    async def test_content_type_and_no_content_length(self, client):
        response = await client.get("/articles/1")

        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert "content-length" not in response.headers
        assert "x-correlation-id" in response.headers

    @pytest.mark.parametrize("method", ["DELETE", "GET", "OPTIONS", "PATCH", "POST", "PUT", "TRACE"])
    async def test_every_bait_method_is_served(self, client, method):
        response = await client.request(method, "/feed.xml")

        assert response.status_code == 200
        assert len(response.content) >= TEST_SIZE_LIMIT_BYTES

    async def test_head_sends_no_body(self, client, admission_controller):
        response = await client.head("/")

        assert response.status_code == 200
        assert response.content == b""
        assert admission_controller.active_session_count == 0

    async def test_request_body_is_ignored(self, client):
        response = await client.post("/comments", content=b"x" * 10_000)

        assert response.status_code == 200

    async def test_permit_released_after_each_response(self, client, admission_controller):
        for _ in range(5):
            await client.get("/")

        assert admission_controller.active_session_count == 0

    async def test_completed_streams_are_recorded(self, client, metrics_collector):
        await client.get("/")
        await client.get("/")

        snapshot = metrics_collector.snapshot()
        assert snapshot["sessions_started"] == 2
        assert snapshot["sessions_completed"]["size_limit"] == 2


class TestExplicitBaitRoutes:

    @pytest.fixture
    def bait_router_options(self):
        return {"routes": ["/wp-admin", "/blog"], "catch_all": False}

    async def test_configured_route_is_bait(self, client):
        response = await client.get("/wp-admin")

        assert response.status_code == 200
        assert len(response.content) >= TEST_SIZE_LIMIT_BYTES

    async def test_other_paths_return_json_404(self, client, admission_controller):
        response = await client.get("/not-bait")

        assert response.status_code == 404
        body = response.json()
        assert body["error"]["code"] == "not_found"
        assert body["error"]["correlation_id"] == response.headers["X-Correlation-ID"]
        assert admission_controller.active_session_count == 0


class TestCreateBaitRouter:

    def test_catch_all_registers_single_path_route(self):
        router = honeypot.routes.bait_routes.create_bait_router(routes=["/a", "/b"], catch_all=True)

        assert [route.path for route in router.routes] == ["/{requested_path:path}"]

    def test_explicit_routes_are_deduplicated(self):
        router = honeypot.routes.bait_routes.create_bait_router(routes=["/a", "/b", "/a"], catch_all=False)

        assert [route.path for route in router.routes] == ["/a", "/b"]

    def test_routes_accept_every_bait_method(self):
        router = honeypot.routes.bait_routes.create_bait_router(routes=["/a"], catch_all=False)

        assert router.routes[0].methods == set(honeypot.routes.bait_routes.BAIT_METHODS)


class TestAdmissionRejection:

    @pytest.fixture
    def admission_controller(self):
        return honeypot.admission_control.StreamAdmissionController(maximum_concurrency=1)

    async def test_connection_beyond_limit_is_rejected_without_content(self, client, admission_controller, monkeypatch):
        """With one slot held by an open stream, the next connection gets 429 and no generated bytes."""
        create_generator_calls = []
        original_create_generator = honeypot.shared_model.create_generator

        def recording_create_generator(*args, **kwargs):
            create_generator_calls.append(args)
            return original_create_generator(*args, **kwargs)

        monkeypatch.setattr(honeypot.shared_model, "create_generator", recording_create_generator)
        open_stream_permit = admission_controller.try_acquire()

        response = await client.get("/")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"
        assert response.headers["content-type"] == "application/json"
        assert response.json()["error"]["code"] == "service_busy"
        assert b"<p>" not in response.content
        assert create_generator_calls == []
        assert admission_controller.active_session_count == 1

        open_stream_permit.release()

    async def test_rejections_are_recorded(self, client, admission_controller, metrics_collector):
        permit = admission_controller.try_acquire()

        await client.get("/")

        assert metrics_collector.snapshot()["admission_rejections"] == 1
        permit.release()

    async def test_slot_is_reusable_after_release(self, client, admission_controller):
        permit = admission_controller.try_acquire()
        rejected = await client.get("/")
        permit.release()

        admitted = await client.get("/")

        assert rejected.status_code == 429
        assert admitted.status_code == 200
        assert admission_controller.active_session_count == 0


class TestFailedSessionConstruction:

    async def test_permit_released_when_generator_cannot_be_built(self, client, admission_controller, monkeypatch):
        def failing_create_generator(*args, **kwargs):
            raise RuntimeError("Simulated failure")

        monkeypatch.setattr(honeypot.shared_model, "create_generator", failing_create_generator)

        response = await client.get("/")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert admission_controller.active_session_count == 0


class TestStaticDocumentRoute:

    @pytest.fixture
    def shared_model(self, tmp_path):
        document_path = tmp_path / "decoy.html"
        document_path.write_bytes(b"d" * 500)
        return honeypot.shared_model.SharedModel.load(GeneratorConfig(GeneratorVariant.STATIC, 50, document_path))

    @pytest.fixture
    def stream_settings(self):
        return honeypot.stream_settings.StreamSettings(chunk_size=50)

    async def test_static_document_served_exactly_once(self, client, metrics_collector):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.content == b"d" * 500
        assert metrics_collector.snapshot()["sessions_completed"]["generator_exhausted"] == 1


class TestMarkovChainRoute:

    @pytest.fixture
    def shared_model(self, markov_corpus_path):
        return honeypot.shared_model.SharedModel.load(
            GeneratorConfig(GeneratorVariant.MARKOV_CHAIN, TEST_CHUNK_SIZE, markov_corpus_path)
        )

    async def test_markov_text_is_streamed(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert TEST_SIZE_LIMIT_BYTES <= len(response.content) < TEST_SIZE_LIMIT_BYTES + TEST_CHUNK_SIZE
        assert b"the" in response.content.lower()


class TestPrefix:

    @pytest.fixture
    def stream_settings(self):
        return honeypot.stream_settings.StreamSettings(
            chunk_size=TEST_CHUNK_SIZE,
            size_limit_bytes=TEST_SIZE_LIMIT_BYTES,
            prefix=b"<!DOCTYPE html><html><body>",
        )

    async def test_prefix_starts_the_body(self, client):
        response = await client.get("/")

        assert response.content.startswith(b"<!DOCTYPE html><html><body><p>\n")


class TestRateLimiting:

    async def test_requests_beyond_limit_are_rejected(self, client):
        honeypot.rate_limiting.bait_rate_limit_configuration.configure(2, 300)

        first = await client.get("/")
        second = await client.get("/other")
        third = await client.get("/")

        assert first.status_code == 200
        assert second.status_code == 200
        assert third.status_code == 429
        assert third.headers["Retry-After"] == "60"
        assert third.json()["error"]["code"] == "rate_limit_exceeded"

    async def test_limit_applies_per_client_address(self, client):
        honeypot.rate_limiting.bait_rate_limit_configuration.configure(1, 300)

        first_client = await client.get("/", headers={"X-Forwarded-For": "198.51.100.1"})
        second_client = await client.get("/", headers={"X-Forwarded-For": "198.51.100.2"})
        first_client_again = await client.get("/", headers={"X-Forwarded-For": "198.51.100.1"})

        assert first_client.status_code == 200
        assert second_client.status_code == 200
        assert first_client_again.status_code == 429

    async def test_rate_limited_requests_are_recorded(self, client, metrics_collector, admission_controller):
        honeypot.rate_limiting.bait_rate_limit_configuration.configure(1, 300)

        await client.get("/")
        await client.get("/")

        assert metrics_collector.snapshot()["rate_limit_rejections"] == 1
        assert admission_controller.active_session_count == 0

    async def test_zero_disables_rate_limiting(self, client):
        honeypot.rate_limiting.bait_rate_limit_configuration.configure(0, 300)

        responses = [await client.get("/") for _ in range(10)]

        assert all(response.status_code == 200 for response in responses)

    async def test_limit_is_shared_across_bait_paths(self, client):
        honeypot.rate_limiting.bait_rate_limit_configuration.configure(2, 300)

        responses = [await client.get(path) for path in ["/a", "/b", "/c", "/d"]]

        assert [response.status_code for response in responses] == [200, 200, 429, 429]

    async def test_limit_is_shared_across_methods(self, client):
        honeypot.rate_limiting.bait_rate_limit_configuration.configure(1, 300)

        first = await client.get("/login")
        second = await client.post("/login")

        assert first.status_code == 200
        assert second.status_code == 429


def _asgi_http_scope(path: str = "/") -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver")],
        "client": ("198.51.100.20", 40000),
        "server": ("testserver", 80),
    }


class TestConcurrentOpenStream:

    @pytest.fixture
    def admission_controller(self):
        return honeypot.admission_control.StreamAdmissionController(maximum_concurrency=1)

    @pytest.fixture
    def stream_settings(self):
        return honeypot.stream_settings.StreamSettings(chunk_size=TEST_CHUNK_SIZE)

    async def test_second_connection_rejected_while_first_stream_is_open(
        self, test_app, client, admission_controller, metrics_collector
    ):
        first_chunk_sent = asyncio.Event()
        first_stream_messages: list[dict] = []

        async def receive_until_cancelled() -> dict:
            await asyncio.Event().wait()
            return {"type": "http.disconnect"}

        async def send(message: dict) -> None:
            if message["type"] == "http.response.start":
                first_stream_messages.append(message)
            elif message["type"] == "http.response.body" and message["body"]:
                first_chunk_sent.set()

        first_stream = asyncio.create_task(test_app(_asgi_http_scope(), receive_until_cancelled, send))
        await asyncio.wait_for(first_chunk_sent.wait(), timeout=5)

        second_response = await client.get("/")

        assert first_stream_messages[0]["status"] == 200
        assert second_response.status_code == 429
        assert second_response.json()["error"]["code"] == "service_busy"
        assert admission_controller.active_session_count == 1

        first_stream.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first_stream

        assert admission_controller.active_session_count == 0
        assert metrics_collector.snapshot()["sessions_completed"]["cancelled"] == 1
        assert (await client.head("/")).status_code == 200


class TestUnsendableContentType:

    @pytest.fixture
    def admission_controller(self):
        return honeypot.admission_control.StreamAdmissionController(maximum_concurrency=2)

    @pytest.fixture
    def stream_settings(self):
        return honeypot.stream_settings.StreamSettings(
            chunk_size=TEST_CHUNK_SIZE,
            size_limit_bytes=TEST_SIZE_LIMIT_BYTES,
            content_type="text/html; charset=☃",
        )

    async def test_failed_response_construction_releases_permit(self, client, admission_controller):
        responses = [await client.get("/") for _ in range(3)]

        assert [response.status_code for response in responses] == [500, 500, 500]
        assert admission_controller.active_session_count == 0
