"""Data models for polifilter.

Exports:
- DataQuality, LoadingState
- FilterOption, FilterCategory, CategoryDefinition, FilterValidationResult
- DropdownOption, DropdownGroup, DropdownConfig, DropdownState
- RelationshipDefinition, RelationshipValidationResult, ConsistencyReport
"""

from .consistency import (
    BrokenRelationship,
    ConsistencyReport,
    DuplicateKey,
    OrphanedRecord,
    RelationshipDefinition,
    RelationshipValidationResult,
    RepairSuggestion,
)
from .dropdown import (
    DropdownConfig,
    DropdownGroup,
    DropdownOption,
    DropdownState,
    SortBy,
    SortDirection,
)
from .options import (
    CategoryDefinition,
    Coordinates,
    DataQuality,
    FilterCategory,
    FilterOption,
    FilterValidationResult,
    LoadingState,
    PartyMetadata,
    PlatformMetadata,
    PoliticianMetadata,
    SelectionIssue,
    SentimentMetadata,
    StateMetadata,
    TopicMetadata,
)

__all__ = [
    "BrokenRelationship",
    "CategoryDefinition",
    "ConsistencyReport",
    "Coordinates",
    "DataQuality",
    "DropdownConfig",
    "DropdownGroup",
    "DropdownOption",
    "DropdownState",
    "DuplicateKey",
    "FilterCategory",
    "FilterOption",
    "FilterValidationResult",
    "LoadingState",
    "OrphanedRecord",
    "PartyMetadata",
    "PlatformMetadata",
    "PoliticianMetadata",
    "RelationshipDefinition",
    "RelationshipValidationResult",
    "RepairSuggestion",
    "SelectionIssue",
    "SentimentMetadata",
    "SortBy",
    "SortDirection",
    "StateMetadata",
    "TopicMetadata",
]
