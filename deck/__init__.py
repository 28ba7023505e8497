"""
Deck assembly for the Hot or Slop image game: dataset adapters, per-source
caches and the balanced deck assembler.
"""

from .config import Config, FetchPolicy
from .exceptions import (
    DeckError,
    NoImagesAvailable,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .models import Card, DisplayLabel, GroundTruth, SourceInfo
from .api_client import DatasetServerClient
from .cache_manager import SourceCache
from .sources import (
    CocoCaptionSource,
    NanoBananaSource,
    OpenFakeRealSource,
    OpenFakeSource,
    SourceAdapter,
)
from .assembler import (
    SOURCE_CONSTANTS,
    DeckAssembler,
    DeckContext,
    fetch_deck,
    fetch_quick_deck,
)
from .prefetch import Deck, DeckBuffer

__all__ = [
    "Config",
    "FetchPolicy",
    "DeckError",
    "NoImagesAvailable",
    "UpstreamError",
    "UpstreamTimeout",
    "UpstreamUnavailable",
    "Card",
    "DisplayLabel",
    "GroundTruth",
    "SourceInfo",
    "DatasetServerClient",
    "SourceCache",
    "SourceAdapter",
    "OpenFakeSource",
    "OpenFakeRealSource",
    "NanoBananaSource",
    "CocoCaptionSource",
    "SOURCE_CONSTANTS",
    "DeckAssembler",
    "DeckContext",
    "fetch_deck",
    "fetch_quick_deck",
    "Deck",
    "DeckBuffer",
]

__version__ = "1.0.0"
