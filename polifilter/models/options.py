"""Filter option and filter category models.

Option metadata is a tagged union keyed on ``kind`` so each data source keeps
its own explicit fields:

    >>> from polifilter.models.options import FilterOption, PartyMetadata
    >>> opt = FilterOption(
    ...     value="apc", label="All Progressives Congress",
    ...     metadata=PartyMetadata(abbreviation="APC", status="active"),
    ... )
    >>> opt.metadata.kind
    'party'
    >>> opt.data_quality.value
    'fair'
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..errors import ValidationError


class DataQuality(str, Enum):
    """Completeness tier of the record an option was generated from."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @property
    def rank(self) -> int:
        return _QUALITY_RANKS[self]


_QUALITY_RANKS = {
    DataQuality.EXCELLENT: 4,
    DataQuality.GOOD: 3,
    DataQuality.FAIR: 2,
    DataQuality.POOR: 1,
}


class LoadingState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


# ---------------------
# Per-source metadata
# ---------------------
class PartyMetadata(BaseModel):
    kind: Literal["party"] = "party"
    abbreviation: Optional[str] = None
    founded: Optional[str] = None
    ideology: List[str] = Field(default_factory=list)
    status: Optional[str] = None


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class StateMetadata(BaseModel):
    kind: Literal["state"] = "state"
    code: Optional[str] = None
    capital: Optional[str] = None
    region: Optional[str] = None
    population: Optional[int] = None
    coordinates: Optional[Coordinates] = None


class PoliticianMetadata(BaseModel):
    kind: Literal["politician"] = "politician"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    party: Optional[str] = None
    state: Optional[str] = None
    position: Optional[str] = None
    gender: Optional[str] = None
    is_active: Optional[bool] = None
    verification_status: Optional[str] = None


class PlatformMetadata(BaseModel):
    kind: Literal["platform"] = "platform"
    category: str


class SentimentMetadata(BaseModel):
    kind: Literal["sentiment"] = "sentiment"
    score: int


class TopicMetadata(BaseModel):
    kind: Literal["topic"] = "topic"
    category: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    trend_direction: Optional[str] = None
    urgency: Optional[str] = None
    sentiment: Optional[str] = None
    trending_score: Optional[float] = None


OptionMetadata = Annotated[
    Union[
        PartyMetadata,
        StateMetadata,
        PoliticianMetadata,
        PlatformMetadata,
        SentimentMetadata,
        TopicMetadata,
    ],
    Field(discriminator="kind"),
]


class FilterOption(BaseModel):
    """One selectable value with display metadata and a quality score."""

    value: str
    label: str
    count: int = 0
    color: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[OptionMetadata] = None
    is_available: bool = True
    data_quality: DataQuality = DataQuality.FAIR

    @field_validator("value")
    @classmethod
    def _non_empty_value(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("value must be a non-empty string")
        return v


class CategoryDefinition(BaseModel):
    """Static description of a filter category and the generator behind it."""

    id: str
    name: str
    description: str = ""
    data_source: str
    # generator name: party|state|politician|platform|sentiment|topic
    generator: str
    is_multi_select: bool = True
    is_required: bool = False
    dependencies: List[str] = Field(default_factory=list)


class FilterCategory(BaseModel):
    """A named group of filter options for one data source."""

    id: str
    name: str
    description: str = ""
    options: List[FilterOption] = Field(default_factory=list)
    is_multi_select: bool = True
    is_required: bool = False
    dependencies: List[str] = Field(default_factory=list)
    loading_state: LoadingState = LoadingState.IDLE
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data_source: str

    @classmethod
    def from_definition(cls, definition: CategoryDefinition) -> "FilterCategory":
        return cls(
            id=definition.id,
            name=definition.name,
            description=definition.description,
            is_multi_select=definition.is_multi_select,
            is_required=definition.is_required,
            dependencies=list(definition.dependencies),
            data_source=definition.data_source,
        )


class SelectionIssue(BaseModel):
    """Why one selected value was rejected.

    ``unknown`` means no option carries the value; ``unavailable`` means the
    option exists but is currently disabled.
    """

    value: str
    kind: Literal["unknown", "unavailable"]
    message: str


class FilterValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[FilterOption] = Field(default_factory=list)
    issues: List[SelectionIssue] = Field(default_factory=list)

    def raise_for_errors(self) -> None:
        """Raise ``ValidationError`` when the selection was rejected."""
        if not self.is_valid:
            raise ValidationError("; ".join(self.errors), errors=self.errors)
