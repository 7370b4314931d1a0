"""CLI entry point for sheetmirror."""

import argparse
import asyncio
import inspect
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import load_config
from .errors import SheetMirrorError
from .models import Connection
from .service import Service


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )

    # httpx logs every request at INFO, including URLs
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def _connection_from_args(args: argparse.Namespace) -> Connection:
    return Connection(
        document_id=args.document_id,
        store_api_key=args.api_key,
        store_container_id=args.container_id,
        table_id=args.table_id,
    )


async def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP service with channel renewal."""
    config = load_config(args.config)

    import uvicorn

    from .server import create_app

    host = args.host or config.service.host
    port = args.port or config.service.port

    service = Service(config)
    await service.start(with_renewal=True)

    print("Starting sheetmirror")
    print(f"Listening on http://{host}:{port}")
    print(f"Public URL: {config.service.public_url} (fan-out: {config.sync.fanout_mode})")

    app = create_app(config, service.orchestrator, service.registry)

    try:
        verbose = getattr(args, "verbose", False)
        config_uvicorn = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
        server = uvicorn.Server(config_uvicorn)
        await server.serve()
    finally:
        await service.stop()

    return 0


async def cmd_connect(args: argparse.Namespace) -> int:
    """Connect a sheet to an Airtable table.

    The watch channel is opened from this process. While `serve` is running,
    POST /connect to it instead; otherwise the service only adopts the
    document on its next renewal pass and drops the channel opened here.
    """
    config = load_config(args.config)
    service = Service(config)
    await service.start()

    try:
        result = await service.orchestrator.connect(
            _connection_from_args(args),
            callback_address=config.service.notification_url,
        )
    except SheetMirrorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await service.stop()

    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def cmd_refresh(args: argparse.Namespace) -> int:
    """Overwrite a sheet with its Airtable table's current content."""
    config = load_config(args.config)
    service = Service(config)
    await service.start()

    try:
        if args.api_key:
            connection = _connection_from_args(args)
        else:
            connection = service.registry.get(args.document_id)
        result = await service.orchestrator.refresh(connection)
    except SheetMirrorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await service.stop()

    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def cmd_resubscribe(args: argparse.Namespace) -> int:
    """Open fresh watch channels for registered sheets."""
    config = load_config(args.config)
    service = Service(config)
    await service.start()

    failed = 0
    try:
        if args.document_id:
            documents = [service.registry.get(args.document_id).document_id]
        else:
            documents = [c.document_id for c in service.registry.list_all()]

        for document_id in documents:
            try:
                subscription = await service.notifier.subscribe(
                    document_id, config.service.notification_url
                )
                print(
                    f"{document_id}: channel {subscription.channel_id} "
                    f"until {subscription.expires_at.isoformat()}"
                )
            except SheetMirrorError as e:
                failed += 1
                print(f"{document_id}: {e}", file=sys.stderr)
    except SheetMirrorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await service.stop()

    return 1 if failed else 0


def cmd_connections(args: argparse.Namespace) -> int:
    """List registered connections."""
    from .registry import ConnectionRegistry

    config = load_config(args.config)
    registry = ConnectionRegistry(config.registry.db_path)
    registry.connect()

    try:
        connections = registry.list_all()
    finally:
        registry.close()

    if args.json:
        print(json.dumps(
            [
                {
                    "document_id": c.document_id,
                    "container_id": c.store_container_id,
                    "table_id": c.table_id,
                }
                for c in connections
            ],
            indent=2,
        ))
        return 0

    if not connections:
        print("No connections registered")
        return 0

    print(f"{'DOCUMENT':<48} {'CONTAINER':<20} TABLE")
    for c in connections:
        print(f"{c.document_id:<48} {c.store_container_id:<20} {c.table_id}")
    return 0


def _add_connection_args(parser: argparse.ArgumentParser, required: bool = True) -> None:
    parser.add_argument("document_id", help="Google Sheet id")
    parser.add_argument("--api-key", required=required, help="Airtable API key")
    parser.add_argument("--container-id", required=required, help="Airtable base id")
    parser.add_argument("--table-id", required=required, help="Airtable table id")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="sheetmirror",
        description="Keep Google Sheets mirrored with Airtable tables",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_parser.add_argument("-p", "--port", type=int, default=None, help="Port to listen on")
    serve_parser.add_argument("--host", type=str, default=None, help="Host to bind to")
    serve_parser.set_defaults(func=cmd_serve)

    # Connect command
    connect_parser = subparsers.add_parser(
        "connect",
        help="Connect a sheet to an Airtable table (while serve runs, POST /connect instead)",
    )
    _add_connection_args(connect_parser)
    connect_parser.set_defaults(func=cmd_connect)

    # Refresh command
    refresh_parser = subparsers.add_parser(
        "refresh",
        help="Overwrite a sheet from Airtable (uses the stored connection if no key is given)",
    )
    _add_connection_args(refresh_parser, required=False)
    refresh_parser.set_defaults(func=cmd_refresh)

    # Resubscribe command
    resubscribe_parser = subparsers.add_parser(
        "resubscribe", help="Open fresh watch channels for registered sheets"
    )
    resubscribe_parser.add_argument(
        "document_id", nargs="?", default=None, help="Only this sheet (default: all)"
    )
    resubscribe_parser.set_defaults(func=cmd_resubscribe)

    # Connections command
    connections_parser = subparsers.add_parser("connections", help="List registered connections")
    connections_parser.add_argument("--json", action="store_true", help="Output as JSON")
    connections_parser.set_defaults(func=cmd_connections)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.log_json)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "refresh" and args.api_key and not (args.container_id and args.table_id):
        parser.error("refresh with --api-key also needs --container-id and --table-id")

    func = args.func
    if inspect.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
