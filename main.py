#!/usr/bin/env python3
"""Intelwatch: AI industry intelligence aggregator.

Pulls recent items from arXiv, Hacker News, TechCrunch and GitHub, scores
them with an LLM oracle, ranks and cross-links the top stories, and serves
the result over HTTP.

Commands:
    run         Execute one refresh and print the snapshot as JSON
    serve       Start the HTTP API with the scheduled refresh loop
    sources     Fetch and normalize all sources without scoring

Examples:
    python main.py run                  # One refresh
    python main.py run --top 5          # Print only the top 5 stories
    python main.py serve --port 3001    # API + refresh every 2 hours
    python main.py serve --no-schedule  # API only; refresh via POST
    python main.py sources              # Inspect raw feed output

Environment:
    OPENAI_API_KEY: Required for hosted OpenAI models
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys

from config import Config
from observability.logging import setup_logging


def cmd_run(args: argparse.Namespace, config: Config) -> int:
    """Execute one refresh and print the snapshot.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    from api import snapshot_payload
    from pipeline import PipelineError, run_once

    logger = logging.getLogger(__name__)

    try:
        snapshot = asyncio.run(run_once(config))
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130  # Standard exit code for SIGINT
    except PipelineError as e:
        logger.error("Pipeline failed | stage=%s error=%s", e.stage.value, e.cause)
        return 1

    payload = snapshot_payload(snapshot)
    if args.top:
        payload["stories"] = payload["stories"][: args.top]
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def cmd_serve(args: argparse.Namespace, config: Config) -> int:
    """Serve the HTTP API (and, unless disabled, the refresh schedule)."""
    import uvicorn

    from api import create_app
    from pipeline import IntelligencePipeline

    host = args.host or config.api_host
    port = args.port or config.api_port

    app = create_app(IntelligencePipeline(config), schedule=not args.no_schedule)
    logging.getLogger(__name__).info("Serving API | host=%s port=%d schedule=%s", host, port, not args.no_schedule)

    # log_config=None keeps our handlers instead of uvicorn's defaults
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


def cmd_sources(args: argparse.Namespace, config: Config) -> int:
    """Fetch every source and print the normalized items."""
    from sources import default_sources, gather_sources, normalize

    async def collect():
        batches = await gather_sources(default_sources(config))
        return batches, normalize(batch.items for batch in batches)

    batches, items = asyncio.run(collect())

    for batch in batches:
        status = "ok" if batch.ok else f"error: {batch.error}"
        print(f"{batch.source}: {len(batch.items)} items ({status})")
    print()

    for item in items:
        print(f"[{item.source}] {item.title}")
        print(f"   {item.url}")
        print(f"   Published: {item.published.strftime('%Y-%m-%d %H:%M')}")

    print(f"\nTotal: {len(items)} items from {len(batches)} sources")
    return 0


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="Intelwatch: AI industry intelligence aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run one refresh and print the snapshot")
    run_parser.add_argument(
        "--top",
        type=int,
        default=0,
        help="Print only the top N stories (0 = all)",
    )

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument(
        "--host",
        help="Bind address (default: config API_HOST)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        help="Port (default: config API_PORT)",
    )
    serve_parser.add_argument(
        "--no-schedule",
        action="store_true",
        help="Don't run the periodic refresh loop",
    )

    # sources command
    subparsers.add_parser("sources", help="Fetch and print normalized source items")

    args = parser.parse_args()

    try:
        config = Config.load()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config, verbose=args.verbose)

    # Validate configuration for commands that call the oracle
    if args.command in ("run", "serve"):
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1

    commands = {
        "run": cmd_run,
        "serve": cmd_serve,
        "sources": cmd_sources,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except KeyboardInterrupt:
            return 130
        except Exception as e:
            logging.getLogger(__name__).error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
