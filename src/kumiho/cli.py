"""Kumiho access CLI.

Credential check, one-shot API calls and a long-running event stream that
prints delivered events as JSON lines on stdout. Logs go to stderr.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from config.config import KumihoConfig, load_config
from core.errors.exceptions import KumihoError, RequestError
from core.logging.setup import setup_logging
from core.utils.instance_id import generate_instance_id
from core.utils.json_serializers import json_serializer
from kumiho.api_client import KumihoApiClient
from kumiho.stream.checkpoint_store import create_cursor_store
from kumiho.stream.consumer import StreamingConsumer
from kumiho.stream.filters import FilterConfig, StreamAction, TriggerType
from kumiho.stream.sinks import JsonLinesSink

# cli.py is at src/kumiho/cli.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=json_serializer))


def _install_shutdown_handlers(callback) -> None:
    """Invoke callback on SIGTERM/SIGINT (signal.signal fallback on Windows)."""
    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, callback)
    except NotImplementedError:

        def _handler(signum, frame):
            logger.info("Received signal %s, initiating shutdown", signum)
            loop.call_soon_threadsafe(callback)

        signal.signal(signal.SIGTERM, _handler)
        signal.signal(signal.SIGINT, _handler)


async def cmd_whoami(args, config: KumihoConfig) -> int:
    async with KumihoApiClient.from_config(config) as client:
        _print_json(await client.whoami())
    return 0


async def cmd_request(args, config: KumihoConfig) -> int:
    body = None
    if args.body:
        try:
            body = json.loads(args.body)
        except json.JSONDecodeError as e:
            print(f"Invalid --body JSON: {e}", file=sys.stderr)
            return 2

    params = {}
    for item in args.param or []:
        key, sep, value = item.partition("=")
        if not sep:
            print(f"Invalid --param '{item}', expected KEY=VALUE", file=sys.stderr)
            return 2
        params.setdefault(key, []).append(value)
    params = {k: v[0] if len(v) == 1 else v for k, v in params.items()}

    async with KumihoApiClient.from_config(config) as client:
        result = await client.request(
            args.method,
            args.path,
            params=params,
            body=body,
            correlation_id=args.correlation_id,
        )
    _print_json(result)
    return 0


async def cmd_stream(args, config: KumihoConfig) -> int:
    filter_config = FilterConfig(
        trigger_type=TriggerType(args.trigger_type),
        stream_action=StreamAction(args.action),
        context_path=args.path or "",
        name_pattern=args.name_filter or "",
        item_name_filter=args.item_name or "",
        item_kind_filter=args.item_kind or "",
    )
    instance_id = args.instance_id or generate_instance_id("stream")

    consumer = StreamingConsumer(
        config,
        filter_config,
        JsonLinesSink(sys.stdout),
        cursor_store=create_cursor_store(args.cursor_store or config.cursor_store_path),
        instance_id=instance_id,
        reconnect_delay_seconds=config.reconnect_delay_seconds,
        cursor_override=args.cursor,
    )

    stop_tasks = []

    def _request_stop():
        if not consumer.stopped:
            stop_tasks.append(asyncio.create_task(consumer.stop()))

    task = consumer.start_task()
    _install_shutdown_handlers(_request_stop)

    await task
    if stop_tasks:
        await asyncio.gather(*stop_tasks)

    logger.info("Stream finished", extra=consumer.get_stats())
    return 0


COMMANDS = {
    "whoami": cmd_whoami,
    "request": cmd_request,
    "stream": cmd_stream,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kumiho",
        description="Kumiho API access CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Check credentials
    python -m kumiho whoami

    # One-shot call
    python -m kumiho request GET /api/v1/projects
    python -m kumiho request POST /api/v1/items --body '{"name": "hero"}'

    # Stream item creations below a space, resuming from a stored cursor
    python -m kumiho stream --trigger-type item --action created --path proj/space
        """,
    )
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("whoami", help="Show the tenant for the configured credentials")

    parser_request = subparsers.add_parser("request", help="Execute one API call")
    parser_request.add_argument("method", type=str.upper, help="HTTP method")
    parser_request.add_argument("path", help="API path, e.g. /api/v1/projects")
    parser_request.add_argument("--body", help="JSON request body")
    parser_request.add_argument(
        "--param", action="append", help="Query parameter KEY=VALUE (repeatable)"
    )
    parser_request.add_argument("--correlation-id", help="Correlation id to send")

    parser_stream = subparsers.add_parser("stream", help="Consume the event stream")
    parser_stream.add_argument(
        "--trigger-type",
        required=True,
        choices=[t.value for t in TriggerType],
        help="Entity type to listen for",
    )
    parser_stream.add_argument(
        "--action",
        required=True,
        choices=[a.value for a in StreamAction],
        help="Action on the entity (tagged is revision-only)",
    )
    parser_stream.add_argument("--path", help="Project/space path or kref glob")
    parser_stream.add_argument("--name-filter", help="Name pattern (* and ? wildcards)")
    parser_stream.add_argument("--item-name", help="Item name pattern")
    parser_stream.add_argument("--item-kind", help="Item kind pattern")
    parser_stream.add_argument("--cursor", help="Start cursor (overrides the stored cursor)")
    parser_stream.add_argument("--instance-id", help="Consumer identity for cursor storage")
    parser_stream.add_argument("--cursor-store", help="JSON cursor store path")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    # Load environment variables from .env file before any config access
    load_dotenv(PROJECT_ROOT / ".env")

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(
        stage=args.command,
        json_format=args.json_logs or config.log_json,
        console_level=logging.DEBUG if args.verbose else config.log_level,
    )

    try:
        return asyncio.run(COMMANDS[args.command](args, config))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.", file=sys.stderr)
        return 130
    except RequestError as e:
        logger.error("Request failed: %s", e)
        _print_json(e.to_dict())
        return 1
    except KumihoError as e:
        logger.error("Error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
