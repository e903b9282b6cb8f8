"""Dropdown configuration and presentation-ready dropdown state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from .options import FilterOption, LoadingState


class SortBy(str, Enum):
    LABEL = "label"
    VALUE = "value"
    EXPLICIT_ORDER = "explicit-order"
    USAGE = "usage"


_SORT_ALIASES = {
    "alphabetical": SortBy.LABEL,
    "sortOrder": SortBy.EXPLICIT_ORDER,
    "sort_order": SortBy.EXPLICIT_ORDER,
}


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class DropdownOption(FilterOption):
    group: Optional[str] = None
    badge: Optional[str] = None
    search_terms: List[str] = Field(default_factory=list)
    sort_order: float = 0


class DropdownGroup(BaseModel):
    id: str
    label: str
    options: List[DropdownOption] = Field(default_factory=list)
    sort_order: int = 0


class DropdownConfig(BaseModel):
    """Declarative dropdown definition passed to ``register_dropdown``."""

    id: str
    name: str
    # parties|states|politicians|platforms|sentiment|topics
    data_source: str
    searchable: bool = True
    multi_select: bool = True
    grouped: bool = False
    sort_by: SortBy = SortBy.LABEL
    sort_direction: SortDirection = SortDirection.ASC
    max_options: int = Field(1000, ge=1)
    placeholder: str = "Select..."
    empty_message: str = "No options available"
    loading_message: str = "Loading..."
    error_message: str = "Failed to load options"

    @field_validator("sort_by", mode="before")
    @classmethod
    def _normalize_sort_by(cls, v: Any) -> Any:
        if isinstance(v, str) and v in _SORT_ALIASES:
            return _SORT_ALIASES[v]
        return v


class DropdownState(BaseModel):
    options: List[DropdownOption] = Field(default_factory=list)
    groups: List[DropdownGroup] = Field(default_factory=list)
    filtered_options: List[DropdownOption] = Field(default_factory=list)
    search_query: str = ""
    selected_values: List[str] = Field(default_factory=list)
    loading_state: LoadingState = LoadingState.IDLE
    error: Optional[str] = None
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
