"""
HTTP middleware for the honeypot application.

**CorrelationIdMiddleware** is the outermost layer of the honeypot
application.  For every request it:

- assigns a UUID v4 correlation ID, exposed as ``request.state.correlation_id``
  and as the ``X-Correlation-ID`` response header;
- resolves the address of the (probably hostile) client, preferring the
  headers set by common reverse proxies over the socket peer;
- binds correlation ID, client address, method and path to the structlog
  context so that every log line emitted while serving the request,
  including the ``stream_ended`` event of the streaming response, can be
  attributed to the connection;
- logs ``hostile_client_connected`` on arrival and
  ``http_request_completed`` (status, duration, bytes sent) on completion;
- acts as the catch-all error boundary for unexpected exceptions.

Client address resolution
-------------------------
The honeypot is expected to run behind a reverse proxy, so the socket peer
is usually the proxy itself.  ``resolve_client_address`` checks, in order,
``CF-Connecting-IP``, ``X-Forwarded-For`` (first hop), ``X-Real-IP``,
``Client-IP``, ``X-Originating-IP`` and ``Forwarded`` (``for=`` parameter)
before falling back to the peer address.  The same function provides the
per-client key for rate limiting.
"""

import json
import time
import uuid

import starlette.types
import structlog
import structlog.contextvars

logger = structlog.get_logger()

_PROXY_CLIENT_ADDRESS_HEADER_NAMES: tuple[bytes, ...] = (
    b"cf-connecting-ip",
    b"x-forwarded-for",
    b"x-real-ip",
    b"client-ip",
    b"x-originating-ip",
    b"forwarded",
)

UNKNOWN_CLIENT_ADDRESS = "unknown"


def _parse_proxy_header_value(header_name: bytes, header_value: str) -> str:
    if header_name == b"x-forwarded-for":
        return header_value.split(",")[0].strip()
    if header_name == b"forwarded":
        for forwarded_element in header_value.split(",")[0].split(";"):
            parameter_name, _, parameter_value = forwarded_element.strip().partition("=")
            if parameter_name.lower() == "for":
                return parameter_value.strip('"')
    return header_value.strip()


def resolve_client_address(scope: starlette.types.Scope) -> str:
    """
    Return the best guess at the real client address for an ASGI scope.

    Falls back to ``"unknown"`` when neither a proxy header nor the peer
    address is available.
    """
    headers: dict[bytes, bytes] = {}
    for header_name, header_value in scope.get("headers", []):
        headers.setdefault(header_name.lower(), header_value)

    for proxy_header_name in _PROXY_CLIENT_ADDRESS_HEADER_NAMES:
        raw_value = headers.get(proxy_header_name)
        if raw_value is None:
            continue
        client_address = _parse_proxy_header_value(proxy_header_name, raw_value.decode("latin-1"))
        if client_address:
            return client_address

    client = scope.get("client")
    if client:
        return str(client[0])
    return UNKNOWN_CLIENT_ADDRESS


def _extract_header(headers: list[tuple[bytes, bytes]], wanted_header_name: bytes) -> str | None:
    for header_name, header_value in headers:
        if header_name.lower() == wanted_header_name:
            return header_value.decode("latin-1")
    return None


class CorrelationIdMiddleware:
    """
    Assign a correlation ID to every request, log its arrival and
    completion, and contain unexpected exceptions.

    Implemented as a pure ASGI middleware rather than
    ``BaseHTTPMiddleware`` so that streaming responses pass through without
    being buffered and so that client disconnects reach the streaming
    response's ``receive`` channel unchanged.
    """

    def __init__(self, app: starlette.types.ASGIApp) -> None:
        self.app = app

    async def __call__(
        self,
        scope: starlette.types.Scope,
        receive: starlette.types.Receive,
        send: starlette.types.Send,
    ) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = str(uuid.uuid4())
        method = scope.get("method", "")
        path = scope.get("path", "")
        client_address = resolve_client_address(scope)
        start_time = time.monotonic()
        response_status = 0
        response_started = False
        response_payload_bytes = 0

        if "state" not in scope:
            scope["state"] = {}
        scope["state"]["correlation_id"] = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            client_address=client_address,
            method=method,
            path=path,
        )

        logger.info(
            "hostile_client_connected",
            user_agent=_extract_header(scope.get("headers", []), b"user-agent"),
        )

        async def send_with_correlation_id_and_size_tracking(
            message: starlette.types.Message,
        ) -> None:
            nonlocal response_status, response_started, response_payload_bytes
            if message["type"] == "http.response.start":
                response_status = message.get("status", 0)
                headers = list(message.get("headers", []))
                headers.append((b"x-correlation-id", correlation_id.encode()))
                message["headers"] = headers
                await send(message)
                response_started = True
                return
            if message["type"] == "http.response.body":
                await send(message)
                response_payload_bytes += len(message.get("body", b""))
                return
            await send(message)

        try:
            await self.app(
                scope,
                receive,
                send_with_correlation_id_and_size_tracking,
            )
        except Exception:
            logger.exception("unexpected_exception")
            # Once the head of a streaming response is out there is no way
            # to turn it into an error response.
            if not response_started:
                response_status = 500
                error_response_body = json.dumps(
                    {
                        "error": {
                            "code": "internal_server_error",
                            "message": "An unexpected internal error occurred.",
                            "correlation_id": correlation_id,
                        }
                    }
                ).encode()
                await send(
                    {
                        "type": "http.response.start",
                        "status": 500,
                        "headers": [
                            (b"content-type", b"application/json"),
                            (b"x-correlation-id", correlation_id.encode()),
                        ],
                    }
                )
                await send(
                    {
                        "type": "http.response.body",
                        "body": error_response_body,
                    }
                )
                response_payload_bytes = len(error_response_body)
        finally:
            duration_milliseconds = (time.monotonic() - start_time) * 1000
            logger.info(
                "http_request_completed",
                status=response_status,
                duration_milliseconds=round(duration_milliseconds, 1),
                response_payload_bytes=response_payload_bytes,
            )
