"""
Custom exception classes for the honeypot service.

This module defines the exception hierarchy for every anticipated failure
mode in the service.  Startup failures are fatal and carry the process exit
code the command-line entry point should terminate with.  Per-connection
failures are recoverable and only ever end the affected stream.

Exception hierarchy
-------------------
::

    Exception (Python built-in)
    └── HoneypotError (base class for all service exceptions)
        ├── ConfigurationError                  → process exit (startup only)
        │   ├── GeneratorDataSourceError        → exit code 30
        │   └── ChunkSizeTooSmallError          → exit code 31
        ├── TransportError                      → stream ends, no response
        └── AdmissionRejectedError              → HTTP 429

Exit codes
----------
The numeric exit codes are stable so that service managers and container
orchestrators can tell configuration mistakes apart from crashes.
"""

# ──────────────────────────────────────────────────────────────────────────────
#  Process exit codes
# ──────────────────────────────────────────────────────────────────────────────

EXIT_CODE_UNPARSEABLE_CONFIGURATION = 10
EXIT_CODE_CONFLICTING_CONFIGURATION = 11
EXIT_CODE_CANNOT_OPEN_LOG_FILE = 20
EXIT_CODE_CANNOT_READ_GENERATOR_DATA_FILE = 30
EXIT_CODE_CHUNK_SIZE_TOO_SMALL = 31


class HoneypotError(Exception):
    """
    Base exception for all service-level errors.

    Every service exception carries a ``detail`` attribute containing a
    human-readable description of the failure.  Subclasses define a
    ``default_detail`` class attribute that is used when no explicit detail
    string is passed to the constructor.
    """

    default_detail: str = "A honeypot error occurred."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ConfigurationError(HoneypotError):
    """
    Raised during startup when the configuration cannot be turned into a
    working service.

    Configuration errors never occur once the service is accepting
    connections.  The command-line entry point logs them at CRITICAL level
    and exits with ``exit_code`` before any port is bound.

    Attributes:
        exit_code: The process exit code associated with this failure.
    """

    default_detail = "The honeypot configuration is invalid."
    default_exit_code: int = EXIT_CODE_CONFLICTING_CONFIGURATION

    def __init__(self, detail: str | None = None, exit_code: int | None = None) -> None:
        super().__init__(detail)
        self.exit_code = exit_code if exit_code is not None else self.default_exit_code


class GeneratorDataSourceError(ConfigurationError):
    """
    Raised when the data file backing the Markov chain or static generator
    is missing, unreadable, or produces an empty model.
    """

    default_detail = "The generator data file could not be used."
    default_exit_code = EXIT_CODE_CANNOT_READ_GENERATOR_DATA_FILE


class ChunkSizeTooSmallError(ConfigurationError):
    """
    Raised when the configured chunk size does not leave room for any
    content inside the paragraph wrapper.  Tiny chunks would make the
    per-chunk overhead dominate the runtime of every stream.
    """

    default_detail = "The configured chunk size is too small."
    default_exit_code = EXIT_CODE_CHUNK_SIZE_TOO_SMALL


class TransportError(HoneypotError):
    """
    Raised when a chunk cannot be written to the client, typically because
    the scraper closed or reset the connection.

    Scrapers disconnecting is expected.  The error terminates only the
    affected stream, releases its admission permit, and is logged at DEBUG
    level.
    """

    default_detail = "The client connection is no longer writable."


class AdmissionRejectedError(HoneypotError):
    """
    Raised when the maximum number of concurrent streams has been reached.

    This is a policy outcome rather than a fault.  The error-handling layer
    maps it to HTTP 429 (``service_busy``) with a ``Retry-After`` header,
    and no content generator is ever constructed for the rejected request.
    """

    default_detail = "The honeypot is serving the maximum number of concurrent streams."
