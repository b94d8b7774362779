"""
Per-stream settings shared by every bait response.

``StreamSettings`` gathers the values a bait route needs to build a
``GenerationSession`` and its response: chunk size, per-stream limits, the
first-chunk prefix and the response content type.  It is built once from
the configuration and stored on the application state.
"""


class StreamSettings:
    """
    Immutable per-stream settings.

    Attributes:
        chunk_size: Target size in bytes of each generated chunk.
        time_limit_seconds: Wall-clock ceiling per stream, ``0`` for
            unlimited.
        size_limit_bytes: Byte ceiling per stream, ``0`` for unlimited.
        prefix: Bytes prepended to the first chunk of every stream.
        content_type: ``Content-Type`` header of bait responses.
    """

    __slots__ = ("chunk_size", "time_limit_seconds", "size_limit_bytes", "prefix", "content_type")

    def __init__(
        self,
        chunk_size: int,
        time_limit_seconds: float = 0,
        size_limit_bytes: int = 0,
        prefix: bytes = b"",
        content_type: str = "text/html; charset=utf-8",
    ) -> None:
        self.chunk_size = chunk_size
        self.time_limit_seconds = time_limit_seconds
        self.size_limit_bytes = size_limit_bytes
        self.prefix = prefix
        self.content_type = content_type

    def __repr__(self) -> str:
        return (
            f"StreamSettings(chunk_size={self.chunk_size}, "
            f"time_limit_seconds={self.time_limit_seconds}, "
            f"size_limit_bytes={self.size_limit_bytes}, "
            f"prefix={self.prefix!r}, content_type={self.content_type!r})"
        )
