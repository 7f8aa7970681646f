"""CLI entry point for uploadgate."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from uploadgate import __version__
from uploadgate.config import UploadGateConfig, apply_env_overrides, load_config
from uploadgate.logging_config import configure_logging
from uploadgate.server import create_app

logger = logging.getLogger("uploadgate")

# argparse dest -> attribute of config.server
_SERVER_OVERRIDES = ("host", "port", "log_level", "log_format", "shutdown_timeout")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="uploadgate",
        description="HTTP gateway over an object store's multipart upload API",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("uploadgate.yaml"),
        help="YAML configuration file; optional (default: uploadgate.yaml)",
    )
    server = parser.add_argument_group("server overrides")
    server.add_argument("--host", help="Bind address")
    server.add_argument("--port", type=int, help="Listen port (beats $PORT)")
    server.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    server.add_argument("--log-format", choices=["text", "json"])
    server.add_argument(
        "--shutdown-timeout",
        type=int,
        help="Seconds to drain in-flight requests on SIGTERM",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate the effective configuration and exit",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> UploadGateConfig:
    """Resolve the effective configuration: file, then environment, then flags.

    A missing config file falls back to defaults so the service can run from
    environment variables alone.

    Raises:
        yaml.YAMLError: If the config file is not valid YAML.
        pydantic.ValidationError: If a value has the wrong type.
    """
    if args.config.exists():
        config = load_config(args.config)
    else:
        logger.info("Config file %s not found, using defaults", args.config)
        config = UploadGateConfig()

    apply_env_overrides(config)

    for name in _SERVER_OVERRIDES:
        value = getattr(args, name, None)
        if value is not None:
            setattr(config.server, name, value)
    return config


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the uploadgate CLI.

    Exits with status 1 when the configuration cannot be loaded or names an
    unusable store. SIGTERM handling is left to uvicorn's graceful shutdown.
    """
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = build_config(args)
        app = create_app(config)
    except Exception as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    if args.check_config:
        print(
            config.model_dump_json(
                indent=2, exclude={"storage": {"aws_secret_access_key"}}
            )
        )
        return

    configure_logging(level=config.server.log_level, fmt=config.server.log_format)
    logger.info(
        "Starting uploadgate %s on %s:%d (backend=%s)",
        __version__,
        config.server.host,
        config.server.port,
        config.storage.backend,
    )

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
