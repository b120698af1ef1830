#!/usr/bin/env python3
"""Bulk importer for ContainerHub catalog items - CLI."""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from containerhub.client import CatalogClient
from containerhub.config_manager import load_config
from containerhub.errors import ContainerHubError, MalformedInputError
from containerhub.models import ImportOrigin, ImportResult, ItemType, RunState
from containerhub.pipeline import ImportPipeline
from containerhub.reporter import build_report, print_summary
from containerhub.templates import render_template

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)

EXIT_CODES = {
    RunState.COMPLETED: 0,
    RunState.FAILED: 1,
    RunState.CANCELLED: 130,
}


def detect_mode(source: str, text: Optional[str]) -> ImportOrigin:
    """Guess the import mode from the source argument and its contents."""
    if source.startswith(("http://", "https://")):
        return ImportOrigin.URL
    if source == "-" and text is not None:
        stripped = text.strip()
        if stripped.startswith(("{", "[")):
            return ImportOrigin.JSON
        lines = [line.strip() for line in stripped.splitlines() if line.strip()]
        if lines and all(line.startswith("http") for line in lines):
            return ImportOrigin.BULK_URLS
    return ImportOrigin.FILE


def read_source(source: str) -> bytes:
    """Read a file path, or stdin when ``source`` is ``-``."""
    if source == "-":
        return sys.stdin.buffer.read()
    with open(source, "rb") as f:
        return f.read()


async def run_import(
    pipeline: ImportPipeline,
    mode: ImportOrigin,
    source: str,
    payload: Optional[bytes],
    item_type: ItemType,
) -> ImportResult:
    """Dispatch to the pipeline operation for ``mode``."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, pipeline.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl-C will stop immediately")

    try:
        if mode == ImportOrigin.URL:
            return await pipeline.import_url(source, item_type)
        text = (payload or b"").decode("utf-8-sig", errors="replace")
        if mode == ImportOrigin.JSON:
            return await pipeline.import_json(text, item_type)
        if mode == ImportOrigin.BULK_URLS:
            return await pipeline.import_bulk_urls(text, item_type)
        filename = None if source == "-" else os.path.basename(source)
        return await pipeline.import_file(payload or b"", filename, item_type)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


async def _main_async(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    valid, errors = config.validate()
    if not valid:
        for error in errors:
            logger.error(f"Invalid configuration: {error}")
        return 1

    base_url = args.base_url or config.client.base_url
    token = args.token or os.environ.get("CONTAINERHUB_TOKEN") or config.client.api_token
    item_type = ItemType.parse(args.type)

    payload = None
    if not args.source.startswith(("http://", "https://")):
        if args.source != "-" and not os.path.exists(args.source):
            print(f"Error: Input path {args.source} not found")
            return 1
        payload = read_source(args.source)

    text = payload.decode("utf-8-sig", errors="replace") if payload is not None else None
    mode = ImportOrigin(args.mode) if args.mode else detect_mode(args.source, text)

    async with CatalogClient(
        base_url,
        token=token,
        timeout=config.client.timeout,
        max_retries=config.client.max_retries,
        backoff=config.client.retry_backoff,
    ) as client:
        pipeline = ImportPipeline(client, config)
        try:
            result = await run_import(pipeline, mode, args.source, payload, item_type)
        except MalformedInputError as e:
            print(f"Error: {e}")
            return 1

    print_summary(build_report(result, item_type, mode))
    return EXIT_CODES[result.state]


def main() -> int:
    """Run the importer."""
    parser = argparse.ArgumentParser(description="Bulk import items into ContainerHub")
    parser.add_argument(
        "source",
        nargs="?",
        help="File to import, a URL, or - to read from stdin",
    )
    parser.add_argument(
        "--type",
        "-t",
        choices=[t.value for t in ItemType],
        default=ItemType.APP.value,
        help="Kind of item to import (default: app)",
    )
    parser.add_argument(
        "--mode",
        "-m",
        choices=["file", "json", "url", "bulk-urls"],
        help="Import method (detected from the source when omitted)",
    )
    parser.add_argument("--base-url", help="Catalog API root, e.g. https://hub/api")
    parser.add_argument(
        "--token", help="Bearer token (default: $CONTAINERHUB_TOKEN or config)"
    )
    parser.add_argument("--config", "-c", help="Configuration file (YAML or JSON)")
    parser.add_argument(
        "--template",
        action="store_true",
        help="Print the JSON import template for --type and exit",
    )

    args = parser.parse_args()

    if args.template:
        print(render_template(ItemType.parse(args.type)))
        return 0

    if not args.source:
        parser.error("source is required unless --template is given")

    try:
        return asyncio.run(_main_async(args))
    except KeyboardInterrupt:
        print("\nImport interrupted by user")
        return EXIT_CODES[RunState.CANCELLED]
    except ContainerHubError as e:
        logger.error(f"Import failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
