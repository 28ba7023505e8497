from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from deck.models import Card, SourceInfo


class DeckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    count: int
    requested: int
    fake: int
    real: int
    cards: List[Card] = Field(default_factory=list)


class SourcesResponse(BaseModel):
    sources: Dict[str, SourceInfo]


class HealthResponse(BaseModel):
    ok: bool
    cache_sizes: Optional[Dict[str, int]] = None
