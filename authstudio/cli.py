import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

import uvicorn

from authstudio import __version__
from authstudio.app import create_app
from authstudio.context import StudioContext
from authstudio.exceptions import StudioError
from authstudio.routes import StudioJSONResponse
from authstudio.schema.composer import SchemaComposer
from authstudio.config.extractor import enabled_plugin_ids
from authstudio.settings import load_settings

logger = logging.getLogger("authstudio")


def _configure_logging(level: str):
    if not logger.hasHandlers():
        handler = logging.StreamHandler(sys.stderr)
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        if level == "DEBUG":
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)


def _print_json(content):
    print(StudioJSONResponse(content).body.decode("utf-8"))


async def handle_serve_command(args_ns, settings, cwd: Path):
    """Starts the dashboard with Uvicorn."""
    app = create_app(cwd, settings)
    path = app.state.container.get(StudioContext).config_path()
    if path is None:
        logger.warning(f"No auth configuration found from {cwd}, serving example data")
    else:
        logger.info(f"Using auth configuration {path}")

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        loop="asyncio",
    )
    server = uvicorn.Server(config)
    logger.info(f"Auth Studio listening on http://{settings.host}:{settings.port}")
    await server.serve()


async def handle_config_command(args_ns, settings, cwd: Path):
    """Prints the resolved configuration."""
    resolution = await StudioContext(cwd, settings).resolve()
    _print_json(
        {
            "configPath": str(resolution.path) if resolution.path else None,
            "loadedBy": resolution.kind,
            "config": resolution.config.dump(),
        }
    )


async def handle_schema_command(args_ns, settings, cwd: Path):
    """Prints the schema for the configured or the given plugins."""
    if args_ns.plugins is None:
        plugin_ids = enabled_plugin_ids(await StudioContext(cwd, settings).config())
    else:
        plugin_ids = [p.strip() for p in args_ns.plugins.split(",") if p.strip()]
    _print_json(SchemaComposer().compose_json(plugin_ids))


def create_parser():
    parser = argparse.ArgumentParser(
        prog="authstudio", description="Local dashboard for Better Auth style configurations."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--config",
        "-c",
        help="Path to the auth configuration file. Default: searched from the working directory.",
        default=None,
    )
    parser.add_argument(
        "--cwd",
        help="Directory the configuration search starts from. Default: the current directory.",
        default=None,
    )

    subparsers = parser.add_subparsers(title="commands", dest="command", required=False, help="Command to execute")

    serve_parser = subparsers.add_parser("serve", help="Start the dashboard server.")
    serve_parser.add_argument("--host", help="Bind socket to this host. Default: 127.0.0.1", default=None)
    serve_parser.add_argument("--port", "-p", type=int, help="Bind socket to this port. Default: 3002", default=None)
    serve_parser.set_defaults(func=handle_serve_command)

    config_parser = subparsers.add_parser("config", help="Print the resolved auth configuration as JSON.")
    config_parser.set_defaults(func=handle_config_command)

    schema_parser = subparsers.add_parser("schema", help="Print the database schema as JSON.")
    schema_parser.add_argument(
        "--plugins",
        help="Comma separated plugin ids. Default: the plugins enabled in the configuration.",
        default=None,
    )
    schema_parser.set_defaults(func=handle_schema_command)

    return parser, serve_parser


def main(argv: list[str] | None = None):
    parser, serve_parser = create_parser()
    args_ns = parser.parse_args(argv)

    if not getattr(args_ns, "func", None):
        args_ns = serve_parser.parse_args([], namespace=args_ns)

    cwd = Path(args_ns.cwd or os.getcwd()).resolve()
    overrides = {
        "config_path": args_ns.config,
        "host": getattr(args_ns, "host", None),
        "port": getattr(args_ns, "port", None),
        "log_level": "DEBUG" if args_ns.debug else None,
    }

    try:
        settings = load_settings(cwd, overrides)
    except StudioError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    _configure_logging(settings.log_level)
    logger.debug(f"Settings: {settings.model_dump()}")

    try:
        asyncio.run(args_ns.func(args_ns, settings, cwd))
    except StudioError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
