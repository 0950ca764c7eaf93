"""
Command-line SSDP search.

Usage:
    python -m ssdp_search
    python -m ssdp_search --st urn:schemas-upnp-org:device:MediaRenderer:1 --mx 2
    ssdp-search --broadcasts 5 --json
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .config import SSDPSettings, SearchConfiguration, settings
from .exceptions import SearchAbortedError, TransportCreationError
from .models import SSDPService
from .scanner import SSDPScanner

logger = logging.getLogger("ssdp.cli")

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_USAGE = 2

console = Console()


def parse_args(argv: Optional[list[str]] = None, defaults: Optional[SSDPSettings] = None) -> argparse.Namespace:
    defaults = defaults or settings
    parser = argparse.ArgumentParser(
        prog="ssdp-search",
        description="Send SSDP M-SEARCH queries and list the services that answer",
    )
    parser.add_argument("--st", default=defaults.search_target, help="ST header value (search target)")
    parser.add_argument(
        "--mx",
        type=float,
        default=defaults.maximum_wait_response_time,
        help="MX header value in seconds",
    )
    parser.add_argument(
        "--broadcasts",
        type=int,
        default=defaults.maximum_broadcasts_before_closing,
        help="Number of M-SEARCH broadcasts to send",
    )
    parser.add_argument("--host", default=defaults.host, help="Multicast group address")
    parser.add_argument("--port", type=int, default=defaults.port, help="Multicast group port")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print newline-delimited JSON instead of a table",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def render_table(services: list[SSDPService]) -> Table:
    table = Table(title=f"SSDP services ({len(services)})")
    table.add_column("ST", style="cyan")
    table.add_column("Location", style="green")
    table.add_column("USN")
    table.add_column("Server", style="dim")
    for service in services:
        table.add_row(
            service.search_target,
            service.location,
            service.unique_service_name or "",
            service.server or "",
        )
    return table


async def run(configuration: SearchConfiguration, as_json: bool = False) -> int:
    """Run one search and print the results."""

    def on_service_found(service: SSDPService) -> None:
        if as_json:
            print(json.dumps(service.to_dict()), flush=True)
        else:
            console.print(f"[green]Found[/green] {service}")

    scanner = SSDPScanner()
    try:
        services = await scanner.scan(configuration, on_service_found=on_service_found)
    except TransportCreationError as e:
        logger.error("%s", e)
        return EXIT_USAGE
    except SearchAbortedError as e:
        logger.error("%s", e)
        return EXIT_ABORTED

    if not as_json:
        console.print(render_table(services))
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        configuration = SearchConfiguration.from_settings(
            settings,
            search_target=args.st,
            host=args.host,
            port=args.port,
            maximum_wait_response_time=args.mx,
            maximum_broadcasts_before_closing=args.broadcasts,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid search configuration:[/red] {e}")
        return EXIT_USAGE

    try:
        return asyncio.run(run(configuration, as_json=args.json))
    except KeyboardInterrupt:
        return EXIT_ABORTED


if __name__ == "__main__":
    sys.exit(main())
