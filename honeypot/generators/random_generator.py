"""
Random text content generator.

Produces chunks of pseudo-random alphanumeric characters wrapped in
paragraph tags, so that a naive scraper sees something that looks like the
body of an HTML page.  There is no need for cryptographic randomness here,
so each generator owns a ``random.Random`` instance and draws raw bytes from
it, then maps every byte onto the alphanumeric alphabet with a single
``bytes.translate`` call.  This keeps the cost of a 16 KiB chunk in the
microsecond range.
"""

import random
import string

from honeypot.generators.content_generator import (
    P_TAG_SIZE,
    ContentGenerator,
    wrap_in_paragraph_tags,
)

_ALPHANUMERIC_CHARACTERS = (string.ascii_letters + string.digits).encode("ascii")

# Maps each of the 256 possible byte values onto an alphanumeric character.
_ALPHANUMERIC_TRANSLATION_TABLE = bytes(
    _ALPHANUMERIC_CHARACTERS[byte_value % len(_ALPHANUMERIC_CHARACTERS)] for byte_value in range(256)
)


class RandomContentGenerator(ContentGenerator):
    """
    Logically infinite generator of random alphanumeric paragraphs.

    Every call to ``next_chunk`` returns exactly ``chunk_size`` bytes and
    the generator never signals exhaustion.
    """

    def __init__(self, chunk_size: int, random_number_generator: random.Random | None = None) -> None:
        self._body_size = chunk_size - P_TAG_SIZE
        self._random_number_generator = random_number_generator or random.Random()

    def next_chunk(self) -> bytes:
        random_bytes = self._random_number_generator.randbytes(self._body_size)
        return wrap_in_paragraph_tags(random_bytes.translate(_ALPHANUMERIC_TRANSLATION_TABLE))
