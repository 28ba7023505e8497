import random

import pytest

from deck.assembler import DeckAssembler, DeckContext
from deck.sources import CocoCaptionSource, OpenFakeSource

from .fakes import TEST_POLICY, FakeDatasetServer


@pytest.fixture
def server():
    """Fake dataset server with nothing registered."""
    return FakeDatasetServer()


@pytest.fixture
def make_assembler(server):
    """Factory for assemblers over OpenFake (AI) and COCO (real) by default."""

    def _make(source_classes=(OpenFakeSource, CocoCaptionSource), cache_size=600,
              seed=7, policy=TEST_POLICY, **adapter_kwargs):
        client = server.client()
        adapters = [cls(client, policy=policy, **adapter_kwargs) for cls in source_classes]
        context = DeckContext(adapters, cache_size=cache_size, rng=random.Random(seed))
        return DeckAssembler(context, client=client, min_deck_size=8)

    return _make
