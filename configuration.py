"""
Application configuration module.

Loads configuration values from, in increasing order of precedence:

1. the defaults declared on ``HoneypotConfiguration``;
2. a ``.env`` file and environment variables prefixed with ``HONEYPOT_``;
3. the TOML file named on the command line, if any.

The TOML file may use top-level keys or group them in tables such as
``[http]``, ``[generator]`` and ``[logging]``; table names are only for
readability and every key maps onto the flat field of the same name::

    [http]
    application_port = 8080
    catch_all = false
    routes = ["/wp-admin", "/blog"]

    [generator]
    generator_type = "markov_chain"
    generator_data_path = "/srv/honeypot/corpus.txt"

This module is the single source of truth for all runtime configuration
within the service process.
"""

import pathlib
import tomllib
import typing

import pydantic
import pydantic_settings

import honeypot.exceptions
import honeypot.generators.content_generator
import honeypot.stream_settings


class HoneypotConfiguration(pydantic_settings.BaseSettings):
    """
    Centralised configuration for the honeypot service.

    Every field maps to an environment variable prefixed with
    ``HONEYPOT_``.  For example, the field ``max_concurrent`` is populated
    from the environment variable ``HONEYPOT_MAX_CONCURRENT``.

    Configuration categories
    ------------------------
    - **HTTP**: host, port, bait routes, content type, rate limit,
      Retry-After durations, health-check listener
    - **Generator**: variant, data file, chunk size, prefix
    - **Streams**: maximum concurrency, per-stream time and size limits
    - **Logging**: level, file sink, console rendering

    Limits of ``0`` mean unlimited throughout.
    """

    # ── HTTP settings ─────────────────────────────────────────────────────

    application_host: str = "0.0.0.0"

    application_port: int = pydantic.Field(default=8080, ge=1, le=65535)

    routes: list[str] = pydantic.Field(
        default=["/"],
        description=(
            "Bait paths served when catch_all is false. Every other path "
            "returns HTTP 404. Each path must start with '/'."
        ),
    )

    catch_all: bool = pydantic.Field(
        default=True,
        description="Serve a stream on every path, ignoring 'routes'.",
    )

    content_type: str = pydantic.Field(
        default="text/html; charset=utf-8",
        min_length=1,
        description="Content-Type header of bait responses.",
    )

    rate_limit: int = pydantic.Field(
        default=0,
        ge=0,
        description=(
            "Number of streams a single client address may open per "
            "rate_limit_period_seconds. 0 disables rate limiting."
        ),
    )

    rate_limit_period_seconds: int = pydantic.Field(
        default=300,
        ge=1,
        description="Length in seconds of the per-client rate limit window.",
    )

    retry_after_rate_limit_seconds: int = pydantic.Field(
        default=60,
        ge=0,
        description=(
            "Value (in seconds) of the Retry-After response header on "
            "HTTP 429 responses when the per-client rate limit is exceeded "
            "(error code: rate_limit_exceeded)."
        ),
    )

    retry_after_busy_seconds: int = pydantic.Field(
        default=30,
        ge=0,
        description=(
            "Value (in seconds) of the Retry-After response header on "
            "HTTP 429 responses when every stream slot is taken "
            "(error code: service_busy)."
        ),
    )

    health_port_enabled: bool = pydantic.Field(
        default=False,
        description="Start the health-check listener on health_port.",
    )

    health_port: int = pydantic.Field(default=8081, ge=1, le=65535)

    # ── Generator settings ────────────────────────────────────────────────

    generator_type: honeypot.generators.content_generator.GeneratorVariant = pydantic.Field(
        default=honeypot.generators.content_generator.GeneratorVariant.RANDOM,
        description="Content generator variant: 'random', 'markov_chain' or 'static'.",
    )

    generator_data_path: pathlib.Path | None = pydantic.Field(
        default=None,
        description=(
            "Training text for the markov_chain generator, or the document "
            "served by the static generator. Unused by the random generator."
        ),
    )

    chunk_size: int = pydantic.Field(
        default=16384,
        ge=1,
        description=(
            "Size in bytes of each generated chunk. Must be larger than the "
            f"{honeypot.generators.content_generator.P_TAG_SIZE}-byte paragraph wrapper."
        ),
    )

    prefix: str = pydantic.Field(
        default="",
        description=(
            "Text prepended to the first chunk of every stream, for example "
            "'<!DOCTYPE html><html><body>'."
        ),
    )

    # ── Stream settings ───────────────────────────────────────────────────

    max_concurrent: int = pydantic.Field(
        default=100,
        ge=0,
        description=(
            "Maximum number of streams served at once. Further connections "
            "are rejected immediately with HTTP 429 (service_busy). "
            "0 means unlimited."
        ),
    )

    time_limit_seconds: float = pydantic.Field(
        default=0,
        ge=0,
        description="Wall-clock ceiling per stream in seconds. 0 means unlimited.",
    )

    size_limit_bytes: int = pydantic.Field(
        default=0,
        ge=0,
        description="Byte ceiling per stream. 0 means unlimited.",
    )

    # ── Logging settings ──────────────────────────────────────────────────

    log_level: typing.Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = pydantic.Field(
        default="INFO",
        description="Minimum log level for structured logging.",
    )

    log_output_path: pathlib.Path | None = pydantic.Field(
        default=None,
        description="Append JSON log lines to this file in addition to stdout.",
    )

    print_pretty_logs: bool = pydantic.Field(
        default=False,
        description="Render stdout logs for humans instead of as JSON lines.",
    )

    no_stdout: bool = pydantic.Field(
        default=False,
        description="Do not log to stdout at all.",
    )

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_prefix="HONEYPOT_",
    )

    @pydantic.field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, log_level_value: typing.Any) -> typing.Any:
        """Accept log levels in any letter case."""
        if isinstance(log_level_value, str):
            return log_level_value.upper()
        return log_level_value

    @pydantic.field_validator("routes")
    @classmethod
    def validate_routes(cls, routes_value: list[str]) -> list[str]:
        """Require every bait path to be absolute."""
        for route in routes_value:
            if not route.startswith("/"):
                raise ValueError(f"route '{route}' must start with '/'")
        return routes_value

    @pydantic.field_validator("content_type")
    @classmethod
    def validate_content_type(cls, content_type_value: str) -> str:
        """Require a value that can be sent as an HTTP header."""
        if "\r" in content_type_value or "\n" in content_type_value:
            raise ValueError("content_type must not contain line breaks")
        try:
            content_type_value.encode("latin-1")
        except UnicodeEncodeError as encode_error:
            raise ValueError("content_type must be encodable as latin-1") from encode_error
        return content_type_value

    def ensure_consistent(self) -> None:
        """
        Reject combinations of individually valid values that cannot work
        together.

        Raises:
            honeypot.exceptions.ConfigurationError: With exit code 11 when
                catch_all is off and no routes are configured, or when the
                health-check listener would share the main port.
        """
        if not self.catch_all and not self.routes:
            raise honeypot.exceptions.ConfigurationError(
                detail="catch_all is disabled but no routes are configured.",
                exit_code=honeypot.exceptions.EXIT_CODE_CONFLICTING_CONFIGURATION,
            )
        if self.health_port_enabled and self.health_port == self.application_port:
            raise honeypot.exceptions.ConfigurationError(
                detail=(
                    f"health_port ({self.health_port}) must differ from application_port ({self.application_port})."
                ),
                exit_code=honeypot.exceptions.EXIT_CODE_CONFLICTING_CONFIGURATION,
            )

    def to_generator_config(self) -> honeypot.generators.content_generator.GeneratorConfig:
        """Return the generator description every session will use."""
        return honeypot.generators.content_generator.GeneratorConfig(
            variant=self.generator_type,
            chunk_size=self.chunk_size,
            data_path=self.generator_data_path,
        )

    def to_stream_settings(self) -> honeypot.stream_settings.StreamSettings:
        """Return the per-stream settings shared by every bait response."""
        return honeypot.stream_settings.StreamSettings(
            chunk_size=self.chunk_size,
            time_limit_seconds=self.time_limit_seconds,
            size_limit_bytes=self.size_limit_bytes,
            prefix=self.prefix.encode("utf-8"),
            content_type=self.content_type,
        )


def _flatten_toml_document(toml_document: dict[str, typing.Any]) -> dict[str, typing.Any]:
    """
    Merge the keys of every top-level table into a single flat mapping.

    Raises:
        honeypot.exceptions.ConfigurationError: When the same key is set
            in more than one place.
    """
    flat_values: dict[str, typing.Any] = {}
    for key, value in toml_document.items():
        table = value if isinstance(value, dict) else {key: value}
        for field_name, field_value in table.items():
            if field_name in flat_values:
                raise honeypot.exceptions.ConfigurationError(
                    detail=f"Configuration key '{field_name}' is set more than once.",
                    exit_code=honeypot.exceptions.EXIT_CODE_CONFLICTING_CONFIGURATION,
                )
            flat_values[field_name] = field_value
    return flat_values


def load_configuration(configuration_path: pathlib.Path | str | None = None) -> HoneypotConfiguration:
    """
    Build the configuration from the environment and an optional TOML file.

    Raises:
        honeypot.exceptions.ConfigurationError: With exit code 10 when the
            file cannot be read or parsed or a value fails validation, and
            exit code 11 when the values conflict with each other.
    """
    file_values: dict[str, typing.Any] = {}

    if configuration_path is not None:
        try:
            with open(configuration_path, "rb") as configuration_file:
                toml_document = tomllib.load(configuration_file)
        except OSError as read_error:
            raise honeypot.exceptions.ConfigurationError(
                detail=f"Could not read configuration file '{configuration_path}': {read_error}",
                exit_code=honeypot.exceptions.EXIT_CODE_UNPARSEABLE_CONFIGURATION,
            ) from read_error
        except tomllib.TOMLDecodeError as decode_error:
            raise honeypot.exceptions.ConfigurationError(
                detail=f"Could not parse configuration file '{configuration_path}': {decode_error}",
                exit_code=honeypot.exceptions.EXIT_CODE_UNPARSEABLE_CONFIGURATION,
            ) from decode_error
        file_values = _flatten_toml_document(toml_document)

    try:
        honeypot_configuration = HoneypotConfiguration(**file_values)
    except pydantic.ValidationError as validation_error:
        raise honeypot.exceptions.ConfigurationError(
            detail=f"Invalid configuration: {validation_error}",
            exit_code=honeypot.exceptions.EXIT_CODE_UNPARSEABLE_CONFIGURATION,
        ) from validation_error

    honeypot_configuration.ensure_consistent()
    return honeypot_configuration
