"""Command-line entry point: ``kfa serve`` and ``kfa agent``."""

import argparse
import asyncio
import logging
import sys

import uvicorn
from pydantic import ValidationError

from kfa.agent.registration import RegistrationAgent
from kfa.core.app import create_app
from kfa.core.errors import ConfigError
from kfa.core.log_config import configure_logging
from kfa.core.settings import AgentSettings, ServerSettings

logger = logging.getLogger(__name__)


def serve(args: argparse.Namespace) -> int:
    """Run the federation service."""
    overrides = {
        key: value
        for key, value in (
            ("config_path", args.config),
            ("host", args.host),
            ("port", args.port),
        )
        if value is not None
    }
    settings = ServerSettings(**overrides)
    configure_logging(settings.log_level)
    try:
        app = create_app(settings)
    except ConfigError as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


def agent(args: argparse.Namespace) -> int:
    """Run the registration agent until interrupted."""
    try:
        settings = AgentSettings()
    except ValidationError as exc:
        configure_logging()
        logger.error("Invalid agent settings: %s", exc)
        return 1
    configure_logging(settings.log_level)
    logger.info(
        "Registering cluster %s with %s", settings.cluster_name, settings.register_url
    )
    cycles = 1 if args.once else None
    try:
        asyncio.run(RegistrationAgent(settings).run(cycles=cycles))
    except KeyboardInterrupt:
        logger.info("Agent stopped")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="kfa", description="Cross-cluster ServiceAccount token review"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="Run the federation service")
    serve_parser.add_argument("--config", help="Cluster config file (KFA_CONFIG_PATH)")
    serve_parser.add_argument("--host", help="Bind address (KFA_HOST)")
    serve_parser.add_argument("--port", type=int, help="Listen port (KFA_PORT)")
    serve_parser.set_defaults(func=serve)

    agent_parser = sub.add_parser("agent", help="Run the registration agent")
    agent_parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single registration cycle and exit",
    )
    agent_parser.set_defaults(func=agent)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
