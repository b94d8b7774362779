"""
Common types shared by every content generator variant.

A content generator produces the filler bytes that a streaming session
writes to a scraper.  All variants expose a single capability::

    next_chunk() -> bytes | None

A ``bytes`` return value is the next chunk of the response body.  ``None``
signals that the generator is exhausted and the stream should end.  The
random and Markov chain variants never return ``None``; the static variant
returns its file exactly once and ``None`` forever after.

Generators are chosen once per session from a validated
``GeneratorConfig`` (see ``honeypot.shared_model.create_generator``), so
the streaming loop never inspects which variant it is driving.
"""

import enum
import pathlib

# Size of the ``<p>\n`` + ``\n</p>\n`` wrapper placed around every chunk of
# random and Markov chain text.  ``chunk_size`` must be larger than this.
P_TAG_SIZE = 10

_PARAGRAPH_OPENING = b"<p>\n"
_PARAGRAPH_CLOSING = b"\n</p>\n"


class GeneratorVariant(enum.StrEnum):
    """The closed set of content generator variants."""

    RANDOM = "random"
    MARKOV_CHAIN = "markov_chain"
    STATIC = "static"


class GeneratorConfig:
    """
    Validated description of the generator every session will use.

    Attributes:
        variant: Which generator variant to construct.
        chunk_size: Target size in bytes of each generated chunk.  Ignored
            by the static variant, which always sends its whole file.
        data_path: Source file for the Markov chain training text or the
            static document.  ``None`` for the random variant.
    """

    def __init__(
        self,
        variant: GeneratorVariant,
        chunk_size: int,
        data_path: pathlib.Path | None = None,
    ) -> None:
        self.variant = GeneratorVariant(variant)
        self.chunk_size = chunk_size
        self.data_path = data_path

    def __repr__(self) -> str:
        return (
            f"GeneratorConfig(variant={self.variant.value!r}, "
            f"chunk_size={self.chunk_size}, data_path={self.data_path!r})"
        )


class ContentGenerator:
    """Base class for content generators."""

    def next_chunk(self) -> bytes | None:
        """Return the next chunk of response body, or ``None`` when exhausted."""
        raise NotImplementedError


def wrap_in_paragraph_tags(body: bytes) -> bytes:
    """Wrap ``body`` so the chunk looks like a paragraph of an HTML page."""
    return _PARAGRAPH_OPENING + body + _PARAGRAPH_CLOSING
