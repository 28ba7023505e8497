from __future__ import annotations
import argparse
import asyncio
import json
from typing import List, Optional

from core.logging_config import get_cli_logger

from .assembler import DeckAssembler
from .config import Config
from .exceptions import NoImagesAvailable
from .models import Card


def format_card(card: Card) -> str:
    model = f" [{card.model_name}]" if card.model_name else ""
    return f"{card.display_label.value:<4} {card.source:<13} {card.id}{model}  {card.image_url}"


async def run(args: argparse.Namespace, assembler: Optional[DeckAssembler] = None) -> List[Card]:
    owns = assembler is None
    assembler = assembler or DeckAssembler.create()
    try:
        if args.quick:
            return await assembler.fetch_quick_deck(args.count)
        return await assembler.fetch_deck(args.count, args.limit_per_fetch)
    finally:
        if owns:
            await assembler.aclose()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Assemble a Hot or Slop deck from the dataset sources")
    ap.add_argument("--count", type=int, default=None, help=f"Cards wanted (default {Config.DEFAULT_DECK_SIZE})")
    ap.add_argument("--limit-per-fetch", type=int, default=None, help="Upper bound on rows per upstream call")
    ap.add_argument("--quick", action="store_true", help="First-paint deck: primary sources, small pages")
    ap.add_argument("--json", action="store_true", help="Print the deck as JSON")
    return ap


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logger = get_cli_logger()

    try:
        deck = asyncio.run(run(args))
    except NoImagesAvailable as e:
        logger.error(str(e))
        raise SystemExit(f"No deck: {e}. Check your connection and try again.")

    if args.json:
        print(json.dumps([card.to_payload() for card in deck], indent=2, ensure_ascii=False))
    else:
        for card in deck:
            print(format_card(card))
    logger.info(f"Printed {len(deck)} cards")


if __name__ == "__main__":
    main()
