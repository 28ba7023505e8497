"""
Deck assembly across dataset sources.

A deck request is split into per-source sub-targets (half AI, half real,
then by source weight within each half). Each source serves from its cache
first and only fetches a random page when the cache runs short. Sources
that fall behind are topped up, then the shortfall is widened to whichever
sources still have cards. Only an empty pool is an error.
"""

import asyncio
import math
import random
from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from core.logging_config import setup_logger

from .api_client import DatasetServerClient
from .cache_manager import SourceCache, shuffle
from .config import Config, FetchPolicy
from .exceptions import NoImagesAvailable, UpstreamError
from .models import Card, GroundTruth, SourceInfo
from .sources import SourceAdapter, build_sources, source_catalog

logger = setup_logger(__name__)

SOURCE_CONSTANTS: Dict[str, SourceInfo] = source_catalog()


def split_target(total: int, weights: Sequence[float]) -> List[int]:
    """
    Split ``total`` across sources proportionally to ``weights``.

    Earlier sources round up and the last one absorbs the remainder, so the
    shares always sum to ``total``. All-zero weights split evenly.
    """
    if not weights:
        return []
    total = max(total, 0)
    weight_sum = sum(max(w, 0.0) for w in weights)
    if weight_sum <= 0:
        weights = [1.0] * len(weights)
        weight_sum = float(len(weights))

    shares = []
    remaining = total
    for weight in weights[:-1]:
        share = min(remaining, math.ceil(total * max(weight, 0.0) / weight_sum))
        shares.append(share)
        remaining -= share
    shares.append(remaining)
    return shares


def split_polarity(desired: int) -> Tuple[int, int]:
    """Return ``(target_fake, target_real)`` with the extra card going to AI."""
    target_fake = math.ceil(desired / 2)
    return target_fake, desired - target_fake


@dataclass
class SourceState:
    """Cache, in-flight fetch and health counters for one source."""

    adapter: SourceAdapter
    cache: SourceCache
    inflight: Optional["asyncio.Future[Optional[int]]"] = None
    failures: int = 0
    latency: Optional[float] = None

    @property
    def source_id(self) -> str:
        return self.adapter.source_id

    @property
    def polarity(self) -> GroundTruth:
        return self.adapter.polarity

    def record_success(self, elapsed: float) -> None:
        self.latency = elapsed if self.latency is None else 0.7 * self.latency + 0.3 * elapsed

    def record_failure(self) -> None:
        self.failures += 1


class DeckContext:
    """
    Per-process state shared by every deck request: one cache per source
    and each adapter's cached row count.
    """

    def __init__(
        self,
        adapters: Iterable[SourceAdapter],
        cache_size: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.rng = rng or random.Random()
        self.states: Dict[str, SourceState] = {}
        for adapter in adapters:
            if adapter.source_id in self.states:
                raise ValueError(f"Duplicate source id: {adapter.source_id}")
            cache = SourceCache(adapter.source_id, max_size=cache_size, rng=self.rng)
            self.states[adapter.source_id] = SourceState(adapter=adapter, cache=cache)
        if not self.states:
            raise ValueError("At least one source adapter is required")

    def __getitem__(self, source_id: str) -> SourceState:
        return self.states[source_id]

    def all(self) -> List[SourceState]:
        return list(self.states.values())

    def by_polarity(self, polarity: GroundTruth) -> List[SourceState]:
        return [s for s in self.states.values() if s.polarity is polarity]

    def primary(self, polarity: GroundTruth) -> List[SourceState]:
        states = self.by_polarity(polarity)
        return states[:1]

    def cache_sizes(self) -> Dict[str, int]:
        return {source_id: len(state.cache) for source_id, state in self.states.items()}


class _DeckPool:
    """Cards collected for one deck, unique by id."""

    def __init__(self):
        self.cards: List[Card] = []
        self.ids: Set[str] = set()
        self.per_source: Counter = Counter()

    def __len__(self) -> int:
        return len(self.cards)

    def add(self, cards: Iterable[Card]) -> int:
        added = 0
        for card in cards:
            if card.id in self.ids:
                continue
            self.ids.add(card.id)
            self.cards.append(card)
            self.per_source[card.source] += 1
            added += 1
        return added

    def count(self, polarity: GroundTruth) -> int:
        return sum(1 for card in self.cards if card.ground_truth is polarity)


class DeckAssembler:
    """Builds balanced decks from the sources held in a ``DeckContext``."""

    def __init__(
        self,
        context: DeckContext,
        client: Optional[DatasetServerClient] = None,
        min_deck_size: Optional[int] = None,
    ):
        """
        Args:
            context: Source caches and adapters
            client: HTTP client to close in ``aclose`` (if this assembler owns it)
            min_deck_size: Hard floor on the number of cards requested
        """
        self.context = context
        self.client = client
        self.min_deck_size = Config.MIN_DECK_SIZE if min_deck_size is None else min_deck_size

    @classmethod
    def create(
        cls,
        client: Optional[DatasetServerClient] = None,
        cache_size: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ) -> "DeckAssembler":
        """Assembler over the default sources, creating a client if none is given."""
        client = client or DatasetServerClient()
        context = DeckContext(build_sources(client), cache_size=cache_size, rng=rng)
        return cls(context, client=client)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    @property
    def rng(self) -> random.Random:
        return self.context.rng

    # ---- fetching ---------------------------------------------------------

    async def _fetch_batch(self, state: SourceState, limit: int) -> Optional[int]:
        """
        Fetch one random page into the source cache.

        Returns:
            Number of new cards cached, or ``None`` if the fetch failed
        """
        adapter = state.adapter
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            total_rows = await adapter.get_row_count()
        except UpstreamError as e:
            if adapter.fallback_row_count is None:
                state.record_failure()
                logger.warning(f"{state.source_id} row count unavailable: {e}")
                return None
            total_rows = adapter.fallback_row_count
            logger.warning(
                f"{state.source_id} row count unavailable, sampling with fallback {total_rows}: {e}"
            )

        max_offset = max(total_rows - limit, 0)
        offset = self.rng.randint(0, max_offset)

        try:
            rows = await adapter.fetch_rows(offset, limit)
        except UpstreamError as e:
            state.record_failure()
            logger.warning(f"{state.source_id} fetch failed at offset {offset}: {e}")
            return None

        state.record_success(loop.time() - started)
        cards = adapter.validate_batch(rows)
        return state.cache.enqueue(cards)

    async def _refill(self, state: SourceState, limit: int) -> Optional[int]:
        """Fetch into the cache, joining a fetch already in flight for this source."""
        task = state.inflight
        if task is None or task.done():
            task = asyncio.ensure_future(self._fetch_batch(state, limit))
            state.inflight = task

            def _clear(done, state=state):
                if state.inflight is done:
                    state.inflight = None

            task.add_done_callback(_clear)
        else:
            logger.debug(f"{state.source_id} joining in-flight fetch")
        # Late callers may be cancelled; the fetch itself runs to completion
        return await asyncio.shield(task)

    @staticmethod
    def _take(state: SourceState, count: int, seen: Set[str]) -> List[Card]:
        """Draw until ``count`` unseen cards are taken or the cache runs dry."""
        taken: List[Card] = []
        while len(taken) < count and len(state.cache):
            for card in state.cache.draw(count - len(taken)):
                if card.id not in seen:
                    seen.add(card.id)
                    taken.append(card)
        return taken

    async def draw_cards(
        self,
        state: SourceState,
        count: int,
        limit_per_fetch: int,
        policy: Optional[FetchPolicy] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[Card]:
        """
        Draw up to ``count`` cards from one source, fetching when the cache is short.

        Args:
            state: Source to draw from
            count: Cards wanted
            limit_per_fetch: Upper bound on rows per upstream call
            policy: Overrides the adapter's fetch policy
            exclude: Card ids already handed out for this deck

        Returns:
            Between 0 and ``count`` cards, unique by id
        """
        if count <= 0:
            return []
        policy = policy or state.adapter.policy
        # Drawn ids leave the cache, so a re-fetch can bring them back
        seen: Set[str] = set(exclude or ())

        result = self._take(state, count, seen)
        if len(result) >= count:
            return result

        for attempt in range(policy.max_attempts):
            if len(result) >= count:
                break
            remaining = count - len(result)
            limit = policy.batch_limit(remaining, limit_per_fetch)
            added = await self._refill(state, limit)

            top_up = self._take(state, count - len(result), seen)
            result.extend(top_up)

            logger.info(
                f"{state.source_id} attempt {attempt} complete: requested={count} "
                f"accumulated={len(result)} added={added} taken={len(top_up)} "
                f"limit={limit} cache_remaining={len(state.cache)}"
            )

            if added is None:
                delay = policy.backoff(attempt)
                if attempt + 1 < policy.max_attempts and delay > 0 and len(result) < count:
                    await asyncio.sleep(delay)
                continue
            if added == 0 and not top_up:
                break

        return result

    async def warm(
        self,
        limit_per_fetch: Optional[int] = None,
        low_watermark: Optional[int] = None,
    ) -> Dict[str, Optional[int]]:
        """
        Top up every source cache holding fewer than ``low_watermark`` cards.

        Returns:
            Cards added per source id (``None`` for failed fetches)
        """
        limit = limit_per_fetch or Config.DEFAULT_LIMIT_PER_FETCH
        watermark = Config.DEFAULT_DECK_SIZE if low_watermark is None else low_watermark
        pending = [s for s in self.context.all() if len(s.cache) < watermark]
        results = await asyncio.gather(*(self._refill(s, limit) for s in pending))
        added = {s.source_id: n for s, n in zip(pending, results)}
        logger.info(f"Cache warm-up complete: added={added}")
        return added

    # ---- assembly ---------------------------------------------------------

    def _fallback_order(self, states: Iterable[SourceState]) -> List[SourceState]:
        """Most reliable, then fastest, sources first; declaration order breaks ties."""
        return sorted(
            states,
            key=lambda s: (s.failures, s.latency if s.latency is not None else math.inf),
        )

    async def _draw_plan(
        self,
        plan: Sequence[Tuple[SourceState, int]],
        limit_per_fetch: int,
        policies: Dict[str, FetchPolicy],
        exclude: Set[str],
    ) -> List[List[Card]]:
        return await asyncio.gather(
            *(
                self.draw_cards(state, share, limit_per_fetch, policies.get(state.source_id), exclude)
                for state, share in plan
            )
        )

    async def _assemble(
        self,
        desired: int,
        sources: Sequence[SourceState],
        first_limit: int,
        limit_per_fetch: int,
        policies: Dict[str, FetchPolicy],
    ) -> List[Card]:
        target_fake, target_real = split_polarity(desired)
        targets = {GroundTruth.AI: target_fake, GroundTruth.REAL: target_real}

        plan: List[Tuple[SourceState, int]] = []
        for polarity, target in targets.items():
            group = [s for s in sources if s.polarity is polarity]
            shares = split_target(target, [s.adapter.weight for s in group])
            plan.extend((state, share) for state, share in zip(group, shares) if share > 0)

        logger.info(
            f"Fetching deck: desired={desired} target_fake={target_fake} "
            f"target_real={target_real} plan={[(s.source_id, n) for s, n in plan]} "
            f"limit_per_fetch={first_limit}"
        )

        pool = _DeckPool()
        exhausted: Set[str] = set()

        # Initial draw: cache first, small fetches, all sources at once
        drawn = await self._draw_plan(plan, first_limit, policies, pool.ids)
        got: Dict[str, int] = {}
        for (state, share), cards in zip(plan, drawn):
            got[state.source_id] = pool.add(cards)
        logger.info(f"Initial draw complete: {dict(pool.per_source)} combined={len(pool)}")

        # Top-up for sources that fell short of their share
        short = [(s, share - got[s.source_id]) for s, share in plan if got[s.source_id] < share]
        if short and len(pool) < desired:
            drawn = await self._draw_plan(short, limit_per_fetch, policies, pool.ids)
            for (state, need), cards in zip(short, drawn):
                added = pool.add(cards)
                if added < need:
                    exhausted.add(state.source_id)
                logger.info(f"{state.source_id} top-up applied: added={added} needed={need}")

        # Fallback widening: same polarity first, then any source
        for polarity, target in targets.items():
            deficit = min(target - pool.count(polarity), desired - len(pool))
            candidates = [s for s in sources if s.polarity is polarity]
            for state in self._fallback_order(candidates):
                if deficit <= 0:
                    break
                if state.source_id in exhausted:
                    continue
                added = pool.add(
                    await self.draw_cards(
                        state, deficit, limit_per_fetch, policies.get(state.source_id), pool.ids
                    )
                )
                if added < deficit:
                    exhausted.add(state.source_id)
                deficit -= added
                logger.info(f"{state.source_id} fallback draw: added={added} deficit={max(deficit, 0)}")

        shortage = desired - len(pool)
        for state in self._fallback_order(sources):
            if shortage <= 0:
                break
            if state.source_id in exhausted:
                continue
            added = pool.add(
                await self.draw_cards(
                    state, shortage, limit_per_fetch, policies.get(state.source_id), pool.ids
                )
            )
            if added < shortage:
                exhausted.add(state.source_id)
            shortage -= added
            logger.info(f"{state.source_id} widened fallback draw: added={added} shortage={max(shortage, 0)}")

        if not pool.cards:
            logger.error("Deck request returned no usable images")
            raise NoImagesAvailable()

        deck = shuffle(pool.cards, self.rng)[:desired]
        final_fake = sum(1 for card in deck if card.is_ai)
        logger.info(
            f"Deck ready: final={len(deck)} fake={final_fake} real={len(deck) - final_fake} "
            f"desired={desired}"
        )
        return deck

    def _desired(self, count: Optional[int], default: int) -> int:
        if count is None:
            count = default
        return max(self.min_deck_size, count)

    async def fetch_deck(
        self,
        count: Optional[int] = None,
        limit_per_fetch: Optional[int] = None,
    ) -> List[Card]:
        """
        Assemble a deck from every source.

        Args:
            count: Cards wanted (raised to the minimum deck size)
            limit_per_fetch: Upper bound on rows per upstream call

        Returns:
            Shuffled cards, at most ``max(count, min_deck_size)`` of them

        Raises:
            NoImagesAvailable: If no source produced a single card
        """
        desired = self._desired(count, Config.DEFAULT_DECK_SIZE)
        limit = max(1, limit_per_fetch or Config.DEFAULT_LIMIT_PER_FETCH)
        first_limit = min(limit, Config.FAST_FETCH_LIMIT)
        return await self._assemble(desired, self.context.all(), first_limit, limit, {})

    async def fetch_quick_deck(self, count: Optional[int] = None) -> List[Card]:
        """
        Assemble a first-paint deck from the primary source of each polarity,
        with small pages and a single fetch attempt per draw.
        """
        desired = self._desired(count, Config.QUICK_DECK_SIZE)
        sources = (
            self.context.primary(GroundTruth.AI) + self.context.primary(GroundTruth.REAL)
        )
        policies = {
            s.source_id: replace(s.adapter.policy, max_attempts=1) for s in sources
        }
        limit = Config.QUICK_FETCH_LIMIT
        return await self._assemble(desired, sources, limit, limit, policies)


_default_assembler: Optional[DeckAssembler] = None


def get_default_assembler() -> DeckAssembler:
    """Get the process-wide assembler (created on first use)."""
    global _default_assembler
    if _default_assembler is None:
        _default_assembler = DeckAssembler.create()
    return _default_assembler


async def close_default_assembler() -> None:
    global _default_assembler
    if _default_assembler is not None:
        await _default_assembler.aclose()
        _default_assembler = None


async def fetch_deck(
    count: Optional[int] = None,
    limit_per_fetch: Optional[int] = None,
) -> List[Card]:
    """Assemble a deck with the process-wide assembler."""
    return await get_default_assembler().fetch_deck(count, limit_per_fetch)


async def fetch_quick_deck(count: Optional[int] = None) -> List[Card]:
    """Assemble a first-paint deck with the process-wide assembler."""
    return await get_default_assembler().fetch_quick_deck(count)
