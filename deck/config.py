"""
Configuration management for the deck assembly package.
"""

import os
from dataclasses import dataclass
from typing import Dict, List, Optional
from dotenv import load_dotenv

from core.logging_config import setup_logger

logger = setup_logger(__name__)

# Load environment variables
load_dotenv()


def _split_list(value: Optional[str]) -> List[str]:
    """Split a comma separated environment value into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_weights(value: Optional[str]) -> Dict[str, float]:
    """
    Parse ``source=weight`` pairs, e.g. ``openfake=0.6,nano-banana=0.4``.

    Malformed or negative entries are skipped with a warning.
    """
    weights: Dict[str, float] = {}
    for item in _split_list(value):
        name, sep, raw = item.partition("=")
        if not sep:
            logger.warning(f"Ignoring malformed source weight: {item!r}")
            continue
        try:
            weight = float(raw)
        except ValueError:
            logger.warning(f"Ignoring non-numeric source weight: {item!r}")
            continue
        if weight < 0:
            logger.warning(f"Ignoring negative source weight: {item!r}")
            continue
        weights[name.strip()] = weight
    return weights


@dataclass(frozen=True)
class FetchPolicy:
    """Retry and batch sizing rules applied when a source's cache runs short."""

    max_attempts: int = 2
    fetch_multiplier: int = 2
    floor_limit: int = 12
    backoff_seconds: float = 0.25

    def batch_limit(self, remaining: int, limit_per_fetch: int) -> int:
        """Rows to request for one fetch when ``remaining`` cards are still needed."""
        wanted = max(max(remaining, 1) * self.fetch_multiplier, self.floor_limit)
        return max(1, min(limit_per_fetch, wanted))

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after a failed attempt (exponential)."""
        return self.backoff_seconds * (2 ** attempt)


class Config:
    """Configuration class for deck assembly."""

    # Upstream dataset API
    API_BASE_URL: str = os.getenv("DATASETS_API_BASE_URL", "https://datasets-server.huggingface.co")
    HF_TOKEN: Optional[str] = os.getenv("HF_TOKEN")
    API_TIMEOUT: float = float(os.getenv("API_TIMEOUT", "30"))
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "2"))
    RATE_LIMIT_DELAY: float = float(os.getenv("RATE_LIMIT_DELAY", "0"))
    MAX_PAGE_SIZE: int = 100

    # Card validation
    ALLOWED_IMAGE_HOSTS: List[str] = _split_list(os.getenv("ALLOWED_IMAGE_HOSTS", "huggingface.co,hf.co"))
    EXCLUDED_MODELS: List[str] = [m.lower() for m in _split_list(os.getenv("EXCLUDED_MODELS"))]

    # Deck sizing
    MIN_DECK_SIZE: int = int(os.getenv("MIN_DECK_SIZE", "8"))
    DEFAULT_DECK_SIZE: int = int(os.getenv("DEFAULT_DECK_SIZE", "24"))
    DEFAULT_LIMIT_PER_FETCH: int = int(os.getenv("DEFAULT_LIMIT_PER_FETCH", "40"))
    FAST_FETCH_LIMIT: int = int(os.getenv("FAST_FETCH_LIMIT", "20"))
    QUICK_DECK_SIZE: int = int(os.getenv("QUICK_DECK_SIZE", "8"))
    QUICK_FETCH_LIMIT: int = int(os.getenv("QUICK_FETCH_LIMIT", "8"))

    # Caching and retries
    MAX_CACHE_SIZE: int = int(os.getenv("MAX_CACHE_SIZE", "600"))
    MAX_FETCH_ATTEMPTS: int = int(os.getenv("MAX_FETCH_ATTEMPTS", "2"))
    FETCH_BACKOFF: float = float(os.getenv("FETCH_BACKOFF", "0.25"))
    SOURCE_WEIGHTS: Dict[str, float] = parse_weights(os.getenv("SOURCE_WEIGHTS"))

    # Nano-Banana has no canonical upstream id yet
    NANO_BANANA_DATASET_ID: str = os.getenv("NANO_BANANA_DATASET_ID", "bitmind/nano-banana")
    NANO_BANANA_LICENSE: str = os.getenv("NANO_BANANA_LICENSE", "Apache 2.0")

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration.

        Returns:
            bool: True if configuration is valid
        """
        if not cls.API_BASE_URL:
            logger.error("DATASETS_API_BASE_URL is required")
            return False

        if cls.MIN_DECK_SIZE < 1:
            logger.error("MIN_DECK_SIZE must be positive")
            return False

        if not cls.ALLOWED_IMAGE_HOSTS:
            logger.warning("ALLOWED_IMAGE_HOSTS is empty; every card will be rejected")

        if not cls.HF_TOKEN:
            logger.warning(
                "No HF_TOKEN configured. Anonymous dataset-server rate limits apply."
            )

        return True

    @classmethod
    def get_headers(cls) -> dict:
        """
        Get API request headers.

        Returns:
            dict: Headers for API requests
        """
        headers = {
            "Accept": "application/json",
        }

        if cls.HF_TOKEN:
            headers["Authorization"] = f"Bearer {cls.HF_TOKEN}"

        return headers

    @classmethod
    def synthetic_policy(cls) -> FetchPolicy:
        return FetchPolicy(
            max_attempts=cls.MAX_FETCH_ATTEMPTS,
            fetch_multiplier=2,
            floor_limit=12,
            backoff_seconds=cls.FETCH_BACKOFF,
        )

    @classmethod
    def real_policy(cls) -> FetchPolicy:
        return FetchPolicy(
            max_attempts=cls.MAX_FETCH_ATTEMPTS,
            fetch_multiplier=3,
            floor_limit=20,
            backoff_seconds=cls.FETCH_BACKOFF,
        )
