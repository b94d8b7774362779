"""Root test configuration — pytest-asyncio runs in auto mode (see pyproject.toml)."""

import pytest

import honeypot.rate_limiting


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Disable and reset the rate limiter before each test to prevent cross-test contamination."""
    honeypot.rate_limiting.bait_rate_limit_configuration.configure(0, 300)
    honeypot.rate_limiting.rate_limiter.reset()


@pytest.fixture
def markov_corpus_text() -> str:
    return (
        "The quick brown fox jumps over the lazy dog. "
        "The lazy dog sleeps in the warm sun. "
        "A quick brown cat watches the lazy dog from the fence. "
        "The warm sun shines over the quiet village. "
        "Every morning the fox runs past the quiet village. "
        "The cat sleeps in the warm kitchen after lunch. "
    )


@pytest.fixture
def markov_corpus_path(tmp_path, markov_corpus_text):
    corpus_path = tmp_path / "corpus.txt"
    corpus_path.write_text(markov_corpus_text, encoding="utf-8")
    return corpus_path


@pytest.fixture
def static_document_path(tmp_path):
    document_path = tmp_path / "index.html"
    document_path.write_bytes(b"<html><body>Nothing to see here.</body></html>")
    return document_path
