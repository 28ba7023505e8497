"""
Bounded in-memory card caches, one per dataset source.
"""

import random
from typing import Iterable, List, Optional, Set

from core.logging_config import setup_logger

from .config import Config
from .models import Card

logger = setup_logger(__name__)


def shuffle(items: Iterable[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """Return a uniformly shuffled copy (Fisher-Yates via ``random.shuffle``)."""
    copy = list(items)
    (rng or random).shuffle(copy)
    return copy


class SourceCache:
    """
    FIFO queue of validated cards plus an id set for duplicate checks.

    Mutations are synchronous, so under asyncio an ``enqueue`` or ``draw``
    always sees the queue and the id set in agreement.
    """

    def __init__(
        self,
        label: str,
        max_size: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.label = label
        self.max_size = Config.MAX_CACHE_SIZE if max_size is None else max_size
        if self.max_size < 1:
            raise ValueError("max_size must be positive")
        self._rng = rng or random.Random()
        self._queue: List[Card] = []
        self._ids: Set[str] = set()

    def __len__(self) -> int:
        return len(self._queue)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._ids

    @property
    def ids(self) -> Set[str]:
        return set(self._ids)

    def cards(self) -> List[Card]:
        """Snapshot of the queue in insertion order."""
        return list(self._queue)

    def _trim(self) -> int:
        evicted = 0
        while len(self._queue) > self.max_size:
            removed = self._queue.pop(0)
            self._ids.discard(removed.id)
            evicted += 1
        return evicted

    def enqueue(self, cards: Iterable[Card]) -> int:
        """
        Append cards whose ids are not cached yet.

        Args:
            cards: Validated cards in fetch-arrival order

        Returns:
            Number of cards newly added
        """
        added = 0
        for card in cards:
            if card.id in self._ids:
                continue
            self._ids.add(card.id)
            self._queue.append(card)
            added += 1

        if added > 0:
            evicted = self._trim()
            logger.info(
                f"{self.label} cache extended: added={added} evicted={evicted} "
                f"cache_size={len(self._queue)}"
            )
        return added

    def draw(self, count: int) -> List[Card]:
        """
        Remove and return up to ``count`` random cards.

        Args:
            count: Number of cards wanted

        Returns:
            Drawn cards in random order; empty if the cache is empty
        """
        if count <= 0 or not self._queue:
            return []

        if count >= len(self._queue):
            drawn = shuffle(self._queue, self._rng)
            self._queue.clear()
            self._ids.clear()
            logger.info(f"{self.label} cache depleted: taken={len(drawn)}")
            return drawn

        indices = self._rng.sample(range(len(self._queue)), count)
        drawn = []
        # Highest index first so earlier positions stay valid
        for index in sorted(indices, reverse=True):
            card = self._queue.pop(index)
            self._ids.discard(card.id)
            drawn.append(card)

        logger.info(
            f"{self.label} cache served: requested={count} served={len(drawn)} "
            f"cache_remaining={len(self._queue)}"
        )
        return shuffle(drawn, self._rng)
