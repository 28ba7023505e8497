"""
Source adapters: one per upstream dataset.

Each adapter knows the dataset coordinates, how to size the split, how to
page rows, and how to turn a raw row into a ``Card``. ``validate`` is pure
and returns ``None`` for any row it cannot use.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from core.logging_config import setup_logger

from .api_client import DatasetServerClient
from .config import Config, FetchPolicy
from .exceptions import UpstreamUnavailable
from .models import Card, DisplayLabel, GroundTruth, SourceInfo

logger = setup_logger(__name__)

PLACEHOLDER_PROMPT = "Description unavailable - see dataset cards for context."

LABEL_TO_TRUTH = {
    "fake": GroundTruth.AI,
    "real": GroundTruth.REAL,
}

HF_DATASET_URL = "https://huggingface.co/datasets/{dataset_id}"


def normalise_prompt(value: Any) -> str:
    """Trimmed prompt text, or the placeholder when blank."""
    if not isinstance(value, str):
        return PLACEHOLDER_PROMPT
    trimmed = value.strip()
    return trimmed or PLACEHOLDER_PROMPT


def is_allowed_image_url(url: Any, allowed_hosts: Sequence[str]) -> bool:
    """True for https URLs whose host is, or is a subdomain of, an allowed host."""
    if not isinstance(url, str) or not url:
        return False
    # Browsers read a backslash as a path separator, so "a\@b" loads from host "a"
    if "\\" in url or any(ch.isspace() or ord(ch) < 32 or ord(ch) == 127 for ch in url):
        return False
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        return False
    if parts.scheme != "https" or not host or "@" in parts.netloc:
        return False
    for allowed in allowed_hosts:
        allowed = allowed.lower().lstrip(".")
        if host == allowed or host.endswith("." + allowed):
            return True
    return False


def _image_src(row: Mapping[str, Any]) -> Optional[str]:
    image = row.get("image")
    if isinstance(image, Mapping):
        src = image.get("src")
        return src.strip() if isinstance(src, str) else None
    return None


class SourceAdapter(ABC):
    """Base class for dataset source adapters."""

    source_id: str = ""
    name: str = ""
    label: str = ""
    dataset_id: str = ""
    config: str = "default"
    split: str = ""
    license: str = ""
    polarity: GroundTruth = GroundTruth.AI
    default_weight: float = 1.0
    fallback_row_count: Optional[int] = None

    def __init__(
        self,
        client: DatasetServerClient,
        policy: Optional[FetchPolicy] = None,
        weight: Optional[float] = None,
        allowed_hosts: Optional[Sequence[str]] = None,
        excluded_models: Optional[Iterable[str]] = None,
    ):
        self.client = client
        self.policy = policy or self.default_policy()
        configured = Config.SOURCE_WEIGHTS.get(self.source_id)
        self.weight = weight if weight is not None else (
            configured if configured is not None else self.default_weight
        )
        self.allowed_hosts = list(
            Config.ALLOWED_IMAGE_HOSTS if allowed_hosts is None else allowed_hosts
        )
        excluded = Config.EXCLUDED_MODELS if excluded_models is None else excluded_models
        self.excluded_models = {m.strip().lower() for m in excluded if m and m.strip()}
        self._row_count: Optional[int] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.source_id} {self.polarity.value}>"

    def default_policy(self) -> FetchPolicy:
        if self.polarity is GroundTruth.AI:
            return Config.synthetic_policy()
        return Config.real_policy()

    @classmethod
    def describe(cls) -> SourceInfo:
        """Attribution details, available without a client."""
        return SourceInfo(
            id=cls.source_id,
            label=cls.label,
            dataset_id=cls.dataset_id,
            dataset_url=HF_DATASET_URL.format(dataset_id=cls.dataset_id),
            license=cls.license,
            credit=f"{cls.name} dataset · {cls.license}",
        )

    @property
    def dataset_url(self) -> str:
        return HF_DATASET_URL.format(dataset_id=self.dataset_id)

    @property
    def credit(self) -> str:
        return f"{self.name} dataset · {self.license}"

    @property
    def cached_row_count(self) -> Optional[int]:
        return self._row_count

    async def get_row_count(self) -> int:
        """
        Total rows in the source split, fetched once per process.

        Raises:
            UpstreamUnavailable / UpstreamTimeout: The failure is not cached,
                so the next call asks the API again.
        """
        if self._row_count is not None:
            return self._row_count
        count = await self.client.get_split_size(self.dataset_id, self.config, self.split)
        if count <= 0:
            raise UpstreamUnavailable(f"Non-positive row count for {self.dataset_id}")
        self._row_count = count
        logger.info(f"{self.source_id} row count cached: {count}")
        return count

    async def fetch_rows(self, offset: int, limit: int) -> List[Any]:
        """Fetch one page of raw rows starting at ``offset``."""
        rows = await self.client.get_rows(
            self.dataset_id, self.config, self.split, offset, limit
        )
        logger.info(
            f"Fetched {self.source_id} batch: offset={offset} limit={limit} size={len(rows)}"
        )
        return rows

    def validate(self, raw_row: Any) -> Optional[Card]:
        """
        Turn a raw dataset-server row into a ``Card``.

        Returns ``None`` when the row is unusable; never raises.
        """
        try:
            if not isinstance(raw_row, Mapping):
                return None
            row = raw_row.get("row")
            row_idx = raw_row.get("row_idx")
            if not isinstance(row, Mapping) or isinstance(row_idx, bool) or not isinstance(row_idx, int):
                return None
            src = _image_src(row)
            if not is_allowed_image_url(src, self.allowed_hosts):
                return None
            fields = self._extract(row_idx, row)
            if fields is None:
                return None
            native_id, prompt, model = fields
            if model is not None and model.strip().lower() in self.excluded_models:
                return None
            return Card(
                id=f"{self.source_id}-{self.split}-{native_id}",
                source=self.source_id,
                image_url=src,
                ground_truth=self.polarity,
                display_label=DisplayLabel.for_truth(self.polarity),
                prompt_or_caption=normalise_prompt(prompt),
                model_name=model if self.polarity is GroundTruth.AI else None,
                credit_line=self.credit,
                source_url=self.dataset_url,
            )
        except (TypeError, ValueError, AttributeError) as e:
            # pydantic.ValidationError is a ValueError
            logger.debug(f"{self.source_id} rejected row: {e}")
            return None

    def validate_batch(self, rows: Iterable[Any]) -> List[Card]:
        """Validate a fetched batch, logging how many rows were rejected."""
        rows = list(rows)
        cards = [card for card in (self.validate(row) for row in rows) if card is not None]
        rejected = len(rows) - len(cards)
        if rejected:
            logger.info(f"{self.source_id} rejected {rejected} of {len(rows)} rows")
        return cards

    @abstractmethod
    def _extract(
        self, row_idx: int, row: Mapping[str, Any]
    ) -> Optional[Tuple[str, Any, Optional[str]]]:
        """Return ``(native_id, prompt, model)`` or ``None`` to reject the row."""


class OpenFakeSource(SourceAdapter):
    """OpenFake rows labelled ``fake`` from an allowed model family."""

    source_id = "openfake"
    name = "OpenFake"
    label = "OpenFake (synthetic)"
    dataset_id = "ComplexDataLab/OpenFake"
    split = "test"
    license = "CC BY-SA 4.0"
    polarity = GroundTruth.AI
    default_weight = 0.5

    allowed_model_prefixes: Tuple[str, ...] = ("imagen", "gpt", "flux")

    def _model_allowed(self, model: Any) -> bool:
        if not isinstance(model, str) or not model.strip():
            return False
        lowered = model.strip().lower()
        return any(lowered.startswith(prefix) for prefix in self.allowed_model_prefixes)

    def _extract(self, row_idx, row):
        label = row.get("label")
        if not isinstance(label, str):
            return None
        truth = LABEL_TO_TRUTH.get(label.strip().lower())
        if truth is not self.polarity:
            return None
        model = row.get("model")
        if not self._model_allowed(model):
            return None
        return str(row_idx), row.get("prompt"), model.strip()


class OpenFakeRealSource(OpenFakeSource):
    """Real photographs mixed into the OpenFake split."""

    source_id = "openfake-real"
    label = "OpenFake (real)"
    polarity = GroundTruth.REAL
    default_weight = 0.5

    allowed_model_prefixes = ("real",)


class NanoBananaSource(SourceAdapter):
    """Images generated with Gemini's Nano-Banana image model."""

    source_id = "nano-banana"
    name = "Nano-Banana"
    label = "Nano-Banana (synthetic)"
    split = "train"
    polarity = GroundTruth.AI
    default_weight = 0.5

    dataset_id = Config.NANO_BANANA_DATASET_ID
    license = Config.NANO_BANANA_LICENSE

    default_model = "nano-banana"
    prompt_fields: Tuple[str, ...] = ("prompt", "text", "caption")

    def _extract(self, row_idx, row):
        label = row.get("label")
        if isinstance(label, str) and LABEL_TO_TRUTH.get(label.strip().lower()) is GroundTruth.REAL:
            return None
        prompt = next(
            (row[f] for f in self.prompt_fields if isinstance(row.get(f), str) and row[f].strip()),
            None,
        )
        model = row.get("model")
        if not isinstance(model, str) or not model.strip():
            model = self.default_model
        return str(row_idx), prompt, model.strip()


class CocoCaptionSource(SourceAdapter):
    """COCO 2017 validation photographs with human captions."""

    source_id = "coco"
    name = "COCO-Caption2017"
    label = "COCO-Caption2017 (real)"
    dataset_id = "lmms-lab/COCO-Caption2017"
    split = "val"
    license = "CC BY 4.0"
    polarity = GroundTruth.REAL
    default_weight = 0.5

    def _extract(self, row_idx, row):
        answers = row.get("answer")
        captions = []
        if isinstance(answers, list):
            captions = [a for a in answers if isinstance(a, str) and a.strip()]
        caption = captions[0] if captions else row.get("question")

        file_name = row.get("file_name")
        if isinstance(file_name, str) and file_name.strip():
            native_id = file_name.strip()
        else:
            native_id = str(row_idx)
        return native_id, caption, None


SOURCE_CLASSES = (OpenFakeSource, NanoBananaSource, CocoCaptionSource, OpenFakeRealSource)


def build_sources(client: DatasetServerClient, **kwargs) -> List[SourceAdapter]:
    """Instantiate the default adapter set, primary source of each polarity first."""
    return [cls(client, **kwargs) for cls in SOURCE_CLASSES]


def source_catalog(sources: Iterable[type] = SOURCE_CLASSES) -> Dict[str, SourceInfo]:
    """Attribution details keyed by source id."""
    return {source.source_id: source.describe() for source in sources}
