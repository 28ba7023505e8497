"""
Next-deck buffer: keeps one assembled deck ready so a new round can start
without waiting on the dataset API.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from core.logging_config import setup_logger

from .assembler import DeckAssembler
from .config import Config
from .exceptions import DeckError
from .models import Card

logger = setup_logger(__name__)


@dataclass
class Deck:
    """An assembled deck handed to one play session."""

    cards: List[Card]
    deck_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    prefetched: bool = False

    def __len__(self) -> int:
        return len(self.cards)


class DeckBuffer:
    """Holds at most one prefetched deck and refills it in the background."""

    def __init__(self, assembler: DeckAssembler, prefetch_extra: int = 20):
        """
        Args:
            assembler: Assembler used for every fetch
            prefetch_extra: Extra cards requested for a prefetched deck
        """
        self.assembler = assembler
        self.prefetch_extra = prefetch_extra
        self._next: Optional[Deck] = None
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def is_prefetching(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def has_prefetched(self) -> bool:
        return self._next is not None

    async def _prefetch(self, count: int) -> None:
        try:
            cards = await self.assembler.fetch_deck(count)
        except DeckError as e:
            logger.warning(f"Failed to prefetch deck: {e}")
            return
        except Exception:
            logger.exception("Unexpected error while prefetching deck")
            return
        self._next = Deck(cards=cards, prefetched=True)
        logger.info(f"Prefetched {len(cards)} images for buffer")

    def prefetch(self, count: Optional[int] = None) -> Optional["asyncio.Task[None]"]:
        """
        Start a background prefetch unless one is running or a deck is waiting.

        Returns:
            The running task, or ``None`` if nothing was started
        """
        if self.is_prefetching or self._next is not None:
            return None
        size = (count or Config.DEFAULT_DECK_SIZE) + self.prefetch_extra
        self._task = asyncio.ensure_future(self._prefetch(size))
        return self._task

    def take(self) -> Optional[Deck]:
        """Hand over the prefetched deck, if any."""
        deck, self._next = self._next, None
        return deck

    async def load(self, count: Optional[int] = None, prefer_prefetch: bool = True) -> Deck:
        """
        Get a deck for a new round and schedule the next prefetch.

        Raises:
            NoImagesAvailable: If no deck was waiting and a fresh fetch found nothing
        """
        if prefer_prefetch and self._next is not None:
            deck = self.take()
            self.prefetch(count)
            return deck

        try:
            cards = await self.assembler.fetch_deck(count)
        finally:
            self.prefetch(count)
        return Deck(cards=cards)

    async def wait(self) -> None:
        """Wait for a running prefetch to settle."""
        if self._task is not None:
            await self._task
