"""
Command line interface.

Provides terminal access to:
- Graph validation
- Platform formatting previews
- Cron previews
- Scheduler, worker and API processes
"""

import argparse
import json
import signal
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from socialflow.content import ContentValue
from socialflow.errors import ContentValidationError, CronExpressionError
from socialflow.graph import WorkflowGraph, validate
from socialflow.observability import setup_logging
from socialflow.platforms import Platform, format_content
from socialflow.scheduling import upcoming
from socialflow.validation import format_pydantic_errors


def _stop_event() -> threading.Event:
    stop = threading.Event()

    def handle(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)
    return stop


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a graph file in the JSON exchange format."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: file not found: {path}")
        return 1

    try:
        graph = WorkflowGraph.import_json(path.read_text())
    except ValidationError as exc:
        print(f"Error: not a workflow graph: {format_pydantic_errors(exc)}")
        return 1

    result = validate(graph)
    if result.ok:
        print(f"OK: {graph.workflow_id} ({len(graph.nodes)} nodes, {len(graph.connections)} connections)")
        return 0

    for issue in result.errors:
        print(f"  {issue}")
    print(f"INVALID: {len(result.errors)} issue(s)")
    return 1


def cmd_format(args: argparse.Namespace) -> int:
    """Preview how text is formatted for a platform."""
    text = args.text if args.text is not None else sys.stdin.read()
    try:
        formatted = format_content(ContentValue.of_text(text), args.platform, thread=args.thread)
    except ContentValidationError as exc:
        print(f"Error: {exc}")
        return 1

    print(json.dumps(formatted.model_dump(mode="json"), indent=2))
    return 0


def cmd_next_fire(args: argparse.Namespace) -> int:
    """Print the next firing instants of a cron expression."""
    try:
        instants = upcoming(args.cron, datetime.now(timezone.utc), args.count, args.timezone)
    except CronExpressionError as exc:
        print(f"Error: {exc}")
        return 1

    for instant in instants:
        print(instant.isoformat())
    return 0


def cmd_scheduler(args: argparse.Namespace) -> int:
    """Run the scheduler tick loop."""
    from socialflow.bootstrap import get_engine

    setup_logging()
    get_engine().scheduler.run_forever(_stop_event())
    return 0


def cmd_worker(args: argparse.Namespace) -> int:
    """Run in-process workers against the job queue."""
    from socialflow.bootstrap import get_engine

    setup_logging()
    engine = get_engine()
    engine.worker.concurrency = args.concurrency
    engine.worker.run_forever(_stop_event())
    return 0


def cmd_api(args: argparse.Namespace) -> int:
    """Serve the HTTP API."""
    import uvicorn

    uvicorn.run("socialflow.api.main:app", host=args.host, port=args.port)
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Socialflow - workflow execution engine for social publishing",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # validate command
    validate_parser = subparsers.add_parser('validate', help='Validate a workflow graph file')
    validate_parser.add_argument('file', help='Path to a graph JSON file')

    # format command
    format_parser = subparsers.add_parser('format', help='Preview platform formatting')
    format_parser.add_argument('--platform', required=True,
                               choices=[p.value for p in Platform],
                               help='Target platform')
    format_parser.add_argument('--thread', action='store_true', help='Split long text into a thread')
    format_parser.add_argument('text', nargs='?', help='Text to format (default: stdin)')

    # next-fire command
    fire_parser = subparsers.add_parser('next-fire', help='Show upcoming cron instants')
    fire_parser.add_argument('cron', help='Cron expression')
    fire_parser.add_argument('--timezone', default='UTC', help='IANA timezone')
    fire_parser.add_argument('--count', type=int, default=5, help='Number of instants')

    # scheduler command
    subparsers.add_parser('scheduler', help='Run the scheduler')

    # worker command
    worker_parser = subparsers.add_parser('worker', help='Run job workers')
    worker_parser.add_argument('--concurrency', type=int, default=1, help='Concurrent jobs')

    # api command
    api_parser = subparsers.add_parser('api', help='Serve the HTTP API')
    api_parser.add_argument('--host', default='127.0.0.1')
    api_parser.add_argument('--port', type=int, default=8000)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'validate':
        return cmd_validate(args)
    elif args.command == 'format':
        return cmd_format(args)
    elif args.command == 'next-fire':
        return cmd_next_fire(args)
    elif args.command == 'scheduler':
        return cmd_scheduler(args)
    elif args.command == 'worker':
        return cmd_worker(args)
    elif args.command == 'api':
        return cmd_api(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
