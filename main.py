"""
Entry point for the honeypot service.

Usage::

    honeypot [CONFIG]
    python main.py [CONFIG]

``CONFIG`` is an optional TOML file; environment variables prefixed with
``HONEYPOT_`` and a ``.env`` file are read in any case.  The process binds
the honeypot port and, when enabled, the health-check port, and serves
both until it receives SIGINT or SIGTERM.

A configuration problem is logged at CRITICAL level and terminates the
process, before any port is bound, with the exit code carried by the
``ConfigurationError`` (see ``honeypot.exceptions``).
"""

import argparse
import asyncio
import sys

import structlog
import uvicorn

import configuration
import honeypot.exceptions
import honeypot.logging_config
import honeypot.server_factory

logger = structlog.get_logger()

# Seconds uvicorn waits for open streams after a shutdown signal before it
# cancels them.  Infinite streams would otherwise delay shutdown forever.
GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS = 5


def parse_command_line_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    argument_parser = argparse.ArgumentParser(
        prog="honeypot",
        description="Feed endless generated content to web scrapers.",
    )
    argument_parser.add_argument(
        "config",
        nargs="?",
        default=None,
        help="path to a TOML configuration file",
    )
    argument_parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {honeypot.server_factory.HONEYPOT_VERSION}",
    )
    return argument_parser.parse_args(argv)


def _build_uvicorn_server(fastapi_application: object, host: str, port: int) -> uvicorn.Server:
    return uvicorn.Server(
        uvicorn.Config(
            fastapi_application,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
            timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS,
        )
    )


async def serve(servers: list[uvicorn.Server]) -> None:
    """
    Run every server until one of them stops, then stop the others.
    """
    server_tasks = [asyncio.create_task(server.serve()) for server in servers]
    await asyncio.wait(server_tasks, return_when=asyncio.FIRST_COMPLETED)
    for server in servers:
        server.should_exit = True
    await asyncio.gather(*server_tasks)


def main(argv: list[str] | None = None) -> int:
    """
    Run the honeypot and return the process exit code.
    """
    command_line_arguments = parse_command_line_arguments(argv)

    # Startup failures are reported as JSON on stdout even when the
    # configured sinks could not be set up.
    honeypot.logging_config.configure_logging()

    try:
        application_configuration = configuration.load_configuration(command_line_arguments.config)
        fastapi_application = honeypot.server_factory.create_application(application_configuration)
    except honeypot.exceptions.ConfigurationError as configuration_error:
        logger.critical(
            "configuration_error",
            detail=configuration_error.detail,
            exit_code=configuration_error.exit_code,
        )
        return configuration_error.exit_code

    servers = [
        _build_uvicorn_server(
            fastapi_application,
            application_configuration.application_host,
            application_configuration.application_port,
        )
    ]
    if application_configuration.health_port_enabled:
        health_application = honeypot.server_factory.create_health_application(
            admission_controller=fastapi_application.state.admission_controller,
            metrics_collector=fastapi_application.state.metrics_collector,
        )
        servers.append(
            _build_uvicorn_server(
                health_application,
                application_configuration.application_host,
                application_configuration.health_port,
            )
        )

    try:
        asyncio.run(serve(servers))
    except KeyboardInterrupt:
        # uvicorn re-raises the captured SIGINT once its servers have stopped.
        logger.info("honeypot_stopped", signal="SIGINT")
    return 0


if __name__ == "__main__":
    sys.exit(main())
