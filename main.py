"""
dashscrape - CLI Entry Point

Runs the HTTP service, or a single fetch from the command line.
"""

import asyncio
import argparse
import json
import logging
import sys

import uvicorn
from rich.console import Console
from rich.logging import RichHandler

from dashscrape.api import build_services, close_services, create_app
from dashscrape.config import get_settings
from dashscrape.models import Credentials


console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Configure logging with rich handler."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


async def fetch_once(args: argparse.Namespace) -> int:
    """Fetch one identity through the full cache/pool/executor stack."""
    settings = get_settings()
    services = await build_services(settings)

    try:
        outcome = await services.orchestrator.fetch(
            args.fetch,
            Credentials(username=args.username, password=args.password),
            use_cache=not args.refresh,
        )
    finally:
        await close_services(services)

    if outcome.success:
        source = "cache" if outcome.cached else "portal"
        console.print(f"[green]Fetched {outcome.identity} from {source} in {outcome.duration:.2f}s[/green]")
        console.print_json(json.dumps(outcome.data))
        return 0

    console.print(f"[red]Error [{outcome.error_code}]: {outcome.error_message}[/red]")
    return 1


def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="dashscrape - Cache-aware dashboard scraping service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s
  %(prog)s --port 8080 --log-level DEBUG
  %(prog)s --fetch admin-1 --username 70123456 --password secret
        """,
    )

    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Bind address (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Bind port (default: {settings.port})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.log_level,
        help=f"Logging level (default: {settings.log_level})",
    )
    parser.add_argument(
        "--fetch",
        metavar="IDENTITY",
        help="Fetch a single identity and print the result instead of serving",
    )
    parser.add_argument(
        "--username",
        help="Portal username (with --fetch)",
    )
    parser.add_argument(
        "--password",
        help="Portal password (with --fetch)",
    )
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Ignore any cached result (with --fetch)",
    )

    args = parser.parse_args()
    setup_logging(args.log_level)

    if args.fetch:
        if not args.username or not args.password:
            parser.error("--fetch requires --username and --password")
        try:
            sys.exit(asyncio.run(fetch_once(args)))
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(130)

    console.print(f"\n[bold blue]dashscrape[/bold blue] listening on {args.host}:{args.port}\n")
    uvicorn.run(
        create_app(settings),
        host=args.host,
        port=args.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
