"""Command-line entry point for ThreatLens scans."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .analyzer.models import AppMetadata
from .config import load_config, validate_config
from .errors import InvalidInput
from .pipeline import ScanCoordinator, ScanOptions
from .storage import Database

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr),
    ],
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="threatlens",
        description="Score a URL, page content or app listing for scam and phishing risk.",
    )
    parser.add_argument("urls", nargs="+", help="URL(s) to scan")
    parser.add_argument("--content-file", type=Path, help="Page text/HTML to analyze with the URL")
    parser.add_argument("--app-json", type=Path, help="JSON file with app store metadata")
    parser.add_argument("--no-store", action="store_true", help="Do not persist results")
    parser.add_argument("--timeout", type=float, help="Per-analyzer timeout in seconds")
    return parser


async def run_scan(args: argparse.Namespace) -> int:
    config = load_config()
    errors = validate_config(config)
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        return 2

    content: Optional[str] = None
    app_metadata = None
    try:
        if args.content_file:
            content = args.content_file.read_text(encoding="utf-8", errors="replace")
        if args.app_json:
            app_metadata = AppMetadata.from_dict(json.loads(args.app_json.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, InvalidInput) as exc:
        logger.error(f"Could not read scan input: {exc}")
        return 2

    store_results = config.store_results and not args.no_store
    database: Optional[Database] = None
    if store_results:
        database = Database(config.database_path)
        await database.connect()

    coordinator = ScanCoordinator.from_config(config, store=database)
    coordinator.on_alert(
        lambda verdict: logger.warning(
            "ALERT %s: %s (%s)", verdict.url, verdict.risk_level, verdict.primary_reason
        )
    )
    options = ScanOptions(store_results=store_results, timeout=args.timeout)

    try:
        targets = [
            {"url": url, "content": content, "app_metadata": app_metadata} for url in args.urls
        ]
        if len(targets) == 1:
            try:
                verdicts = [await coordinator.scan(targets[0], options)]
            except InvalidInput as exc:
                logger.error(f"Invalid target: {exc}")
                return 2
        else:
            verdicts = await coordinator.scan_many(targets, options)
    finally:
        if database is not None:
            await database.close()

    payload = [verdict.to_dict() for verdict in verdicts]
    print(json.dumps(payload[0] if len(payload) == 1 else payload, indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    return asyncio.run(run_scan(args))


if __name__ == "__main__":
    sys.exit(main())
