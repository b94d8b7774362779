"""
Static document content generator.

Serves one fixed decoy document instead of an endless stream.  The first
call to ``next_chunk`` returns the complete pre-loaded file as a single
chunk regardless of the configured chunk size; every later call returns
``None``.  This one-shot behaviour is deliberate and differs from the other
variants.
"""

from honeypot.generators.content_generator import ContentGenerator


class StaticContentGenerator(ContentGenerator):
    """One-shot generator replaying the shared static document."""

    def __init__(self, document: bytes) -> None:
        self._document = document
        self._document_sent = False

    def next_chunk(self) -> bytes | None:
        if self._document_sent:
            return None
        self._document_sent = True
        return self._document
