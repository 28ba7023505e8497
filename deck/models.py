"""
Data models for gameplay cards and dataset-server payloads.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class GroundTruth(str, Enum):
    """The answer a player is tested against."""

    AI = "ai"
    REAL = "real"


class DisplayLabel(str, Enum):
    """Label shown to the player once the card is revealed."""

    FAKE = "fake"
    REAL = "real"

    @classmethod
    def for_truth(cls, truth: GroundTruth) -> "DisplayLabel":
        return cls.FAKE if truth is GroundTruth.AI else cls.REAL


class Card(BaseModel):
    """Model for a validated gameplay card."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        protected_namespaces=(),
    )

    id: str
    source: str
    image_url: str = Field(alias="imageUrl")
    ground_truth: GroundTruth = Field(alias="groundTruth")
    display_label: DisplayLabel = Field(alias="displayLabel")
    prompt_or_caption: str = Field(alias="promptOrCaption", min_length=1)
    model_name: Optional[str] = Field(None, alias="modelName")
    credit_line: str = Field(alias="creditLine")
    source_url: str = Field(alias="sourceUrl")

    @property
    def is_ai(self) -> bool:
        """True if the card shows an AI-generated image."""
        return self.ground_truth is GroundTruth.AI

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys the browser client reads."""
        return self.model_dump(mode="json", by_alias=True)


class SourceInfo(BaseModel):
    """Attribution details for one dataset source."""

    id: str
    label: str
    dataset_id: str = Field(alias="datasetId")
    dataset_url: str = Field(alias="datasetUrl")
    license: str
    credit: str

    model_config = ConfigDict(populate_by_name=True)


class SplitInfo(BaseModel):
    """Split metadata from the dataset-server ``/info`` endpoint."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    num_examples: Optional[int] = None


class DatasetInfo(BaseModel):
    """Subset of the ``dataset_info`` block the client relies on."""

    model_config = ConfigDict(extra="ignore")

    splits: Dict[str, SplitInfo] = Field(default_factory=dict)


class InfoResponse(BaseModel):
    """Response of the dataset-server ``/info`` endpoint."""

    model_config = ConfigDict(extra="ignore")

    dataset_info: Optional[DatasetInfo] = None
    partial: bool = False


class RowsResponse(BaseModel):
    """Response of the dataset-server ``/rows`` endpoint."""

    model_config = ConfigDict(extra="ignore")

    rows: List[Any] = Field(default_factory=list)
    num_rows_total: Optional[int] = None
    num_rows_per_page: Optional[int] = None
    partial: bool = False
