"""
Process-wide, read-only generator data.

The ``SharedModel`` is built exactly once during application startup from
the validated ``GeneratorConfig`` and stored on the FastAPI application
state.  Every streaming session receives a generator that references the
same model instance (a trained Markov text model or the bytes of the static
document); nothing is copied per connection and nothing is mutated after
construction.

All validation of generator data happens here, at startup.  A missing or
unreadable data file, an empty training corpus, or a chunk size too small to
hold any content raises a ``ConfigurationError`` subclass so that the
process exits before it accepts a single connection.
"""

import random

import markovify
import structlog

import honeypot.exceptions
import honeypot.generators.markov_generator
from honeypot.generators.content_generator import (
    P_TAG_SIZE,
    ContentGenerator,
    GeneratorConfig,
    GeneratorVariant,
)
from honeypot.generators.markov_generator import MarkovChainContentGenerator
from honeypot.generators.random_generator import RandomContentGenerator
from honeypot.generators.static_generator import StaticContentGenerator

logger = structlog.get_logger()


class SharedModel:
    """
    Immutable generator data shared by every session for the lifetime of
    the process.

    Use ``SharedModel.load`` to construct an instance; the constructor does
    no validation of its own.
    """

    __slots__ = ("_generator_config", "_markov_text_model", "_static_document")

    def __init__(
        self,
        generator_config: GeneratorConfig,
        markov_text_model: markovify.Text | None = None,
        static_document: bytes | None = None,
    ) -> None:
        self._generator_config = generator_config
        self._markov_text_model = markov_text_model
        self._static_document = static_document

    @property
    def generator_config(self) -> GeneratorConfig:
        return self._generator_config

    @property
    def variant(self) -> GeneratorVariant:
        return self._generator_config.variant

    @property
    def markov_text_model(self) -> markovify.Text | None:
        return self._markov_text_model

    @property
    def static_document(self) -> bytes | None:
        return self._static_document

    @classmethod
    def load(cls, generator_config: GeneratorConfig) -> "SharedModel":
        """
        Validate ``generator_config`` and load the data it refers to.

        Raises:
            honeypot.exceptions.ChunkSizeTooSmallError: When the chunk size
                does not exceed ``P_TAG_SIZE``.
            honeypot.exceptions.GeneratorDataSourceError: When a required
                data file is missing, unreadable, or yields an empty model.
        """
        if generator_config.chunk_size <= P_TAG_SIZE:
            raise honeypot.exceptions.ChunkSizeTooSmallError(
                detail=(
                    f"chunk_size must be larger than {P_TAG_SIZE} bytes "
                    f"(got {generator_config.chunk_size}), and it should be much bigger."
                ),
            )

        if generator_config.variant is GeneratorVariant.RANDOM:
            shared_model = cls(generator_config)
        elif generator_config.variant is GeneratorVariant.MARKOV_CHAIN:
            corpus = _read_text_data_file(generator_config)
            text_model = honeypot.generators.markov_generator.train_markov_text_model(corpus)
            shared_model = cls(generator_config, markov_text_model=text_model)
        else:
            shared_model = cls(generator_config, static_document=_read_data_file(generator_config))

        logger.info(
            "generator_model_loaded",
            generator_type=generator_config.variant.value,
            chunk_size=generator_config.chunk_size,
            data_path=str(generator_config.data_path) if generator_config.data_path else None,
        )
        return shared_model


def create_generator(shared_model: SharedModel, chunk_size: int) -> ContentGenerator:
    """
    Construct a fresh generator for one streaming session.

    The returned generator references the shared model data rather than
    copying it.
    """
    if shared_model.variant is GeneratorVariant.RANDOM:
        return RandomContentGenerator(chunk_size, random_number_generator=random.Random())
    if shared_model.variant is GeneratorVariant.MARKOV_CHAIN:
        return MarkovChainContentGenerator(shared_model.markov_text_model, chunk_size)
    return StaticContentGenerator(shared_model.static_document)


def _read_data_file(generator_config: GeneratorConfig) -> bytes:
    """Read the generator data file, translating I/O failures to configuration errors."""
    if generator_config.data_path is None:
        raise honeypot.exceptions.GeneratorDataSourceError(
            detail=f"The {generator_config.variant.value} generator requires a data file path.",
        )

    try:
        return generator_config.data_path.read_bytes()
    except OSError as read_error:
        raise honeypot.exceptions.GeneratorDataSourceError(
            detail=f"Could not read generator data file '{generator_config.data_path}': {read_error}",
        ) from read_error


def _read_text_data_file(generator_config: GeneratorConfig) -> str:
    """Read the generator data file as UTF-8 text."""
    raw_content = _read_data_file(generator_config)
    try:
        return raw_content.decode("utf-8")
    except UnicodeDecodeError as decode_error:
        raise honeypot.exceptions.GeneratorDataSourceError(
            detail=f"Generator data file '{generator_config.data_path}' is not valid UTF-8 text.",
        ) from decode_error
