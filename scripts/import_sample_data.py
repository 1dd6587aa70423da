#!/usr/bin/env python3
"""
Reseed the store from a directory of sample webhook payloads.

Usage (from the repository root):
    python -m scripts.import_sample_data --sample-dir sample_conversation
"""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from app.core.config import get_settings
from app.core.logging import setup_logging
from app.services.container import build_services
from app.services.seeding import SampleImporter, format_summary


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import sample conversation payloads into the message store.")
    parser.add_argument(
        "--sample-dir",
        type=Path,
        default=Path("sample_conversation"),
        help="Directory of conversation_<n>_(message|status)_<k>.json files",
    )
    parser.add_argument(
        "--keep-existing",
        action="store_true",
        help="Do not clear conversations and messages before importing",
    )
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    settings = get_settings()
    services = build_services(settings)
    await services.start()
    try:
        importer = SampleImporter(services.store, services.ingestor)
        summary = await importer.run(args.sample_dir, clear=not args.keep_existing)
        conversations = await services.store.list_conversations()
        print(format_summary(summary, conversations))
    finally:
        await services.close()
    return 0


if __name__ == "__main__":
    setup_logging()
    args = parse_args()
    if not args.sample_dir.is_dir():
        raise SystemExit(f"sample directory not found: {args.sample_dir}")
    raise SystemExit(asyncio.run(main(args)))
