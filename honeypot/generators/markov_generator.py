"""
Markov chain text content generator.

The statistical model is a ``markovify.Text`` trained once at startup from
an operator-supplied corpus and shared read-only by every session (see
``honeypot.shared_model``).  Generating a sentence only walks the compiled
chain and never mutates it, so any number of concurrent sessions can sample
from the same model without locking.

Chunk assembly
--------------
Each call to ``next_chunk`` draws whole sentences until the accumulated
text reaches the paragraph body size (``chunk_size - P_TAG_SIZE``), then cuts
the text to exactly that many bytes on a UTF-8 character boundary and wraps
it in paragraph tags.  A Markov chunk is therefore never larger than
``chunk_size``, which keeps the size-limit overshoot of a stream below one
chunk.
"""

import markovify

import honeypot.exceptions
from honeypot.generators.content_generator import (
    P_TAG_SIZE,
    ContentGenerator,
    wrap_in_paragraph_tags,
)

MARKOV_STATE_SIZE = 2

_SENTENCE_SEPARATOR = " "


def train_markov_text_model(corpus: str, state_size: int = MARKOV_STATE_SIZE) -> markovify.Text:
    """
    Train a Markov text model from ``corpus``.

    Raises:
        honeypot.exceptions.GeneratorDataSourceError: When the corpus is
            empty or does not contain a single usable sentence.
    """
    if not corpus.strip():
        raise honeypot.exceptions.GeneratorDataSourceError(
            detail="The Markov chain training corpus is empty.",
        )

    try:
        text_model = markovify.Text(corpus, state_size=state_size, well_formed=False)
    except (KeyError, ValueError) as training_error:
        raise honeypot.exceptions.GeneratorDataSourceError(
            detail=f"The Markov chain could not be trained from the corpus: {training_error!r}",
        ) from training_error

    if not text_model.parsed_sentences:
        raise honeypot.exceptions.GeneratorDataSourceError(
            detail="The Markov chain training corpus does not contain any usable sentences.",
        )

    # A degenerate chain can produce only empty walks, which would make
    # chunk assembly spin forever.
    if not text_model.make_sentence(test_output=False):
        raise honeypot.exceptions.GeneratorDataSourceError(
            detail="The Markov chain trained from the corpus only produces empty text.",
        )

    return text_model


class MarkovChainContentGenerator(ContentGenerator):
    """
    Logically infinite generator of Markov chain paragraphs.

    The generator holds a reference to the shared text model and never
    signals exhaustion.
    """

    def __init__(self, text_model: markovify.Text, chunk_size: int) -> None:
        self._text_model = text_model
        self._body_size = chunk_size - P_TAG_SIZE

    def next_chunk(self) -> bytes:
        fragments: list[str] = []
        accumulated_size = 0

        while accumulated_size < self._body_size:
            sentence = self._text_model.make_sentence(test_output=False)
            if not sentence:
                continue
            fragments.append(sentence)
            accumulated_size += len(sentence.encode("utf-8")) + len(_SENTENCE_SEPARATOR)

        body = _SENTENCE_SEPARATOR.join(fragments).encode("utf-8")[: self._body_size]
        # Drop a multi-byte character that the cut above may have split.
        body = body.decode("utf-8", errors="ignore").encode("utf-8")

        return wrap_in_paragraph_tags(body)
