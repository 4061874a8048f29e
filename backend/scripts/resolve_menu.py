#!/usr/bin/env python3
"""
Resolve menu-item names to nutrition ranges and print one JSON object per line.
Items come from the command line or a text file (one item per line). Ctrl-C stops the batch between items.
Usage: cd backend && python scripts/resolve_menu.py "Grilled Chicken Salad" "Tiramisu Tradizionale"
       cd backend && python scripts/resolve_menu.py --file menu.txt [--clear-expired] [--stats]
"""
import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path

# Ensure backend is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def read_items(args) -> list:
    items = list(args.items or [])
    if args.file:
        text = Path(args.file).read_text(encoding="utf-8")
        items.extend(line.strip() for line in text.splitlines() if line.strip())
    return items


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Resolve menu items to nutrition estimates")
    parser.add_argument("items", nargs="*", help="Menu item names")
    parser.add_argument("--file", help="Text file with one menu item per line")
    parser.add_argument("--delay", type=float, default=None, help="Seconds between items (default from BATCH_ITEM_DELAY)")
    parser.add_argument("--clear-expired", action="store_true", help="Purge expired cache records first")
    parser.add_argument("--stats", action="store_true", help="Print tier usage and cache statistics at the end")
    args = parser.parse_args(argv)

    from menu_nutrition.config import log_config
    from menu_nutrition.factory import build_resolver

    items = read_items(args)
    if not items:
        logger.info("No menu items given")
        return 1

    log_config()
    resolver = build_resolver()
    if args.clear_expired and resolver.cache is not None:
        removed = resolver.cache.clear_expired()
        logger.info("Cleared %d expired cache records", removed)

    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        results = resolver.resolve_batch(items, cancel_event=cancel, item_delay=args.delay)
    finally:
        signal.signal(signal.SIGINT, previous)

    for result in results:
        print(json.dumps(result.to_dict()))
    if args.stats:
        print(json.dumps(resolver.statistics()), file=sys.stderr)
    if cancel.is_set():
        logger.info("Stopped after %d of %d items", len(results), len(items))
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
