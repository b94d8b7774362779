"""
Pydantic models for the JSON bodies the honeypot sends on its own behalf.

Bait responses are never JSON; they are generated HTML streams.  JSON is
only used for the responses the service produces when it refuses to stream
(rate limit, concurrency limit), when a path is not a bait route, and when
an unexpected internal error occurs before the stream starts.
"""

import pydantic


class ErrorDetail(pydantic.BaseModel):
    """
    Detailed error information nested inside the error response.
    """

    code: str = pydantic.Field(
        ...,
        description="A machine-readable error code in snake_case format.",
    )

    message: str = pydantic.Field(
        ...,
        description="A human-readable error description.",
    )

    correlation_id: str = pydantic.Field(
        ...,
        description="UUID v4 correlation identifier matching the X-Correlation-ID response header.",
    )


class ErrorResponse(pydantic.BaseModel):
    """
    Standardised error response returned for all error conditions.
    """

    error: ErrorDetail = pydantic.Field(
        ...,
        description="An object containing error details.",
    )
