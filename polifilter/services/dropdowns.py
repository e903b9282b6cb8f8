"""Presentation-ready dropdowns built from the same option generators.

Each dropdown re-derives its options through its own ``OptionGenerator`` and
decorates them with groups, badges and search terms, then sorts, truncates
and groups them according to its ``DropdownConfig``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..config import ServiceConfig
from ..data.sources import DatasetCatalog
from ..errors import ConfigurationError
from ..events import (
    CATEGORY_ERROR,
    CATEGORY_UPDATED,
    DROPDOWN_ERROR,
    DROPDOWN_LOADED,
    DROPDOWN_LOADING,
    DROPDOWN_SEARCHED,
    DROPDOWN_SELECTION_CHANGED,
    LOAD_SUCCESS,
    EventEmitter,
)
from ..models.dropdown import (
    DropdownConfig,
    DropdownGroup,
    DropdownOption,
    DropdownState,
    SortBy,
    SortDirection,
)
from ..models.options import (
    FilterOption,
    LoadingState,
    PartyMetadata,
    PlatformMetadata,
    PoliticianMetadata,
    StateMetadata,
    TopicMetadata,
)
from .generators import OptionGenerator
from .single_flight import BackgroundTasks, SingleFlight

logger = logging.getLogger(__name__)

OTHER_GROUP = "Other"
UNRANKED_GROUP_ORDER = 999

# dropdown data source -> generator name
DATA_SOURCE_GENERATORS: Dict[str, str] = {
    "parties": "party",
    "states": "state",
    "politicians": "politician",
    "platforms": "platform",
    "sentiment": "sentiment",
    "topics": "topic",
}

# filter category id -> dropdown data source
CATEGORY_DATA_SOURCES: Dict[str, str] = {
    "party": "parties",
    "state": "states",
    "politician": "politicians",
    "platform": "platforms",
    "topic": "topics",
    "sentiment": "sentiment",
}

# dropdown data source -> dataset keys it is derived from
DATA_SOURCE_DATASETS: Dict[str, List[str]] = {
    "parties": ["parties"],
    "states": ["states"],
    "politicians": ["politicians", "parties", "states"],
    "platforms": ["sentiment-data", "engagement-metrics"],
    "topics": ["topic-trends"],
    "sentiment": [],
}

# data source -> group id -> (label, order)
GROUP_TABLES: Dict[str, Dict[str, Tuple[str, int]]] = {
    "states": {
        "north-central": ("North Central", 1),
        "north-east": ("North East", 2),
        "north-west": ("North West", 3),
        "south-east": ("South East", 4),
        "south-south": ("South South", 5),
        "south-west": ("South West", 6),
    },
}

DEFAULT_DROPDOWNS: List[DropdownConfig] = [
    DropdownConfig(
        id="political-parties",
        name="Political Parties",
        data_source="parties",
        sort_by=SortBy.LABEL,
        max_options=50,
        placeholder="Select political parties...",
    ),
    DropdownConfig(
        id="nigerian-states",
        name="Nigerian States",
        data_source="states",
        grouped=True,
        sort_by=SortBy.LABEL,
        max_options=37,
        placeholder="Select states...",
    ),
    DropdownConfig(
        id="politicians",
        name="Politicians",
        data_source="politicians",
        grouped=True,
        sort_by=SortBy.LABEL,
        max_options=1000,
        placeholder="Search politicians...",
    ),
    DropdownConfig(
        id="social-platforms",
        name="Social Media Platforms",
        data_source="platforms",
        searchable=False,
        sort_by=SortBy.USAGE,
        sort_direction=SortDirection.DESC,
        max_options=20,
        placeholder="Select platforms...",
    ),
    DropdownConfig(
        id="policy-topics",
        name="Policy Topics",
        data_source="topics",
        grouped=True,
        sort_by=SortBy.USAGE,
        sort_direction=SortDirection.DESC,
        max_options=200,
        placeholder="Select topics...",
    ),
]


def _terms(*values: Optional[str]) -> List[str]:
    return [v for v in values if v]


def decorate(option: FilterOption, data_source: str) -> DropdownOption:
    """Copy ``option`` into a ``DropdownOption`` with the source's decoration."""
    base = option.model_dump(exclude={"metadata"})
    meta = option.metadata
    group: Optional[str] = None
    badge: Optional[str] = None
    terms: List[str] = [option.label]
    sort_order: float = option.count

    if isinstance(meta, PartyMetadata):
        badge = "Active" if meta.status == "active" else None
        terms = _terms(option.label, meta.abbreviation, *meta.ideology)
    elif isinstance(meta, StateMetadata):
        group = meta.region
        terms = _terms(option.label, meta.code, meta.capital, meta.region)
        sort_order = meta.population or 0
    elif isinstance(meta, PoliticianMetadata):
        group = meta.party or "Independent"
        badge = "Verified" if meta.verification_status == "verified" else None
        terms = _terms(
            option.label, meta.first_name, meta.last_name, meta.party, meta.position
        )
    elif isinstance(meta, TopicMetadata):
        group = meta.category or "General"
        badge = "Urgent" if meta.urgency == "high" else None
        terms = _terms(option.label, *meta.keywords)
    elif isinstance(meta, PlatformMetadata):
        terms = _terms(option.label, meta.category)

    return DropdownOption(
        **base,
        metadata=meta,
        group=group,
        badge=badge,
        search_terms=terms,
        sort_order=sort_order,
    )


def group_options(options: List[DropdownOption], data_source: str) -> List[DropdownGroup]:
    """Partition options by ``group``.

    Groups with a static rank come first in rank order, then unranked groups
    in first-seen order, then ``Other`` (options without a group).
    """
    table = GROUP_TABLES.get(data_source, {})
    buckets: Dict[str, List[DropdownOption]] = {}
    for option in options:
        buckets.setdefault(option.group or OTHER_GROUP, []).append(option)

    groups = [
        DropdownGroup(
            id=group_id,
            label=table.get(group_id, (group_id, 0))[0],
            options=members,
            sort_order=table[group_id][1] if group_id in table else UNRANKED_GROUP_ORDER,
        )
        for group_id, members in buckets.items()
    ]
    # stable: unranked groups keep first-seen order
    groups.sort(key=lambda g: (g.id == OTHER_GROUP and g.id not in table, g.sort_order))
    return groups


def matches(option: DropdownOption, needle: str) -> bool:
    haystack = [option.label, option.description or "", *option.search_terms]
    return any(needle in text.casefold() for text in haystack)


class DropdownService(EventEmitter):
    """Registers dropdowns and keeps their state current.

    Emits ``dropdown-loading``, ``dropdown-loaded``, ``dropdown-error``,
    ``dropdown-searched`` and ``dropdown-selection-changed``.
    """

    def __init__(
        self,
        loader: Any,
        config: Optional[ServiceConfig] = None,
        catalog: Optional[DatasetCatalog] = None,
        filter_service: Optional[EventEmitter] = None,
    ) -> None:
        super().__init__()
        self.config = config or ServiceConfig()
        self.loader = loader
        self.filter_service = filter_service
        self.generator = OptionGenerator(
            loader,
            catalog,
            min_data_quality=self.config.min_data_quality,
            max_options=self.config.max_options,
            enable_caching=self.config.enable_caching,
            cache_ttl=self.config.cache_ttl_seconds,
            max_cache_entries=self.config.max_cache_entries,
        )
        self._configs: Dict[str, DropdownConfig] = {}
        self._states: Dict[str, DropdownState] = {}
        self._usage: Dict[str, Dict[str, int]] = defaultdict(dict)
        self._flight = SingleFlight(enabled=self.config.single_flight)
        self._tasks = BackgroundTasks()
        self._unsubscribe: List[Callable[[], None]] = []
        if self.config.enable_real_time_updates:
            self._subscribe()

    # --------------------------
    # Registration / loading
    # --------------------------
    def register_dropdown(self, config: DropdownConfig, load: bool = True) -> DropdownState:
        """Initialize empty state for ``config`` and schedule its first load."""
        if config.data_source not in DATA_SOURCE_GENERATORS:
            raise ConfigurationError(
                f"Unknown dropdown data source: {config.data_source}"
            )
        self._configs[config.id] = config
        self._states[config.id] = DropdownState()
        logger.debug(f"Registered dropdown {config.id} ({config.data_source})")
        if load:
            self._tasks.spawn(self.load_dropdown_data(config.id))
        return self._states[config.id]

    def register_default_dropdowns(self, load: bool = True) -> List[str]:
        for config in DEFAULT_DROPDOWNS:
            self.register_dropdown(config.model_copy(deep=True), load=load)
        return [c.id for c in DEFAULT_DROPDOWNS]

    def list_dropdown_ids(self) -> List[str]:
        return list(self._configs)

    def _require(self, dropdown_id: str) -> Tuple[DropdownConfig, DropdownState]:
        if dropdown_id not in self._configs:
            raise ConfigurationError(f"Unknown dropdown: {dropdown_id}")
        return self._configs[dropdown_id], self._states[dropdown_id]

    async def load_dropdown_data(self, dropdown_id: str) -> DropdownState:
        """(Re)load one dropdown; failures end up in its state, not raised.

        Raises:
            ConfigurationError: If ``dropdown_id`` was never registered
        """
        self._require(dropdown_id)
        await self._flight.do(dropdown_id, lambda: self._load(dropdown_id))
        return self._states[dropdown_id]

    async def _load(self, dropdown_id: str) -> None:
        config, state = self._require(dropdown_id)
        state.loading_state = LoadingState.LOADING
        state.error = None
        self.emit(DROPDOWN_LOADING, {"dropdown_id": dropdown_id})
        try:
            generated = await self.generator.generate(
                DATA_SOURCE_GENERATORS[config.data_source]
            )
            options = [decorate(o, config.data_source) for o in generated]
            options = self.sort_options(options, config)[: config.max_options]
            groups = group_options(options, config.data_source) if config.grouped else []
        except Exception as e:
            logger.error(
                f"Failed to load dropdown {dropdown_id}: {str(e)}", exc_info=True
            )
            state.loading_state = LoadingState.ERROR
            state.error = str(e) or config.error_message
            self.emit(DROPDOWN_ERROR, {"dropdown_id": dropdown_id, "error": state.error})
            return

        state.options = options
        state.groups = groups
        state.filtered_options = self._filter(options, state.search_query)
        state.loading_state = LoadingState.SUCCESS
        state.last_updated = datetime.now(timezone.utc)
        self.emit(
            DROPDOWN_LOADED,
            {"dropdown_id": dropdown_id, "options": options, "groups": groups},
        )

    def sort_options(
        self, options: List[DropdownOption], config: DropdownConfig
    ) -> List[DropdownOption]:
        """Stable sort per ``sort_by``; ``desc`` for usage puts the most used first."""
        reverse = config.sort_direction == SortDirection.DESC
        if config.sort_by == SortBy.LABEL:
            return sorted(options, key=lambda o: o.label.casefold(), reverse=reverse)
        if config.sort_by == SortBy.VALUE:
            return sorted(options, key=lambda o: o.value, reverse=reverse)
        if config.sort_by == SortBy.EXPLICIT_ORDER:
            return sorted(options, key=lambda o: o.sort_order, reverse=reverse)
        usage = self._usage.get(config.id, {})
        return sorted(options, key=lambda o: usage.get(o.value, 0), reverse=reverse)

    # --------------------------
    # Search / selection
    # --------------------------
    @staticmethod
    def _filter(options: List[DropdownOption], query: str) -> List[DropdownOption]:
        needle = (query or "").strip().casefold()
        if not needle:
            return list(options)
        return [o for o in options if matches(o, needle)]

    def search_dropdown(self, dropdown_id: str, query: str) -> List[DropdownOption]:
        """Case-insensitive substring search over label, description and search terms."""
        _, state = self._require(dropdown_id)
        state.search_query = query or ""
        state.filtered_options = self._filter(state.options, state.search_query)
        self.emit(
            DROPDOWN_SEARCHED,
            {
                "dropdown_id": dropdown_id,
                "query": state.search_query,
                "results": state.filtered_options,
            },
        )
        return list(state.filtered_options)

    @staticmethod
    def _as_list(value: Union[str, Iterable[str]]) -> List[str]:
        if isinstance(value, str):
            return [value]
        return list(value)

    def select_option(self, dropdown_id: str, value: Union[str, Iterable[str]]) -> List[str]:
        config, state = self._require(dropdown_id)
        values = self._as_list(value)
        if config.multi_select:
            merged = list(state.selected_values)
            for v in values:
                if v not in merged:
                    merged.append(v)
            state.selected_values = merged
        else:
            state.selected_values = values[:1]
        counts = self._usage[dropdown_id]
        for v in values:
            counts[v] = counts.get(v, 0) + 1
        self.emit(
            DROPDOWN_SELECTION_CHANGED,
            {
                "dropdown_id": dropdown_id,
                "selected_values": list(state.selected_values),
                "new_values": values,
            },
        )
        return list(state.selected_values)

    def deselect_option(self, dropdown_id: str, value: Union[str, Iterable[str]]) -> List[str]:
        _, state = self._require(dropdown_id)
        values = self._as_list(value)
        state.selected_values = [v for v in state.selected_values if v not in values]
        self.emit(
            DROPDOWN_SELECTION_CHANGED,
            {
                "dropdown_id": dropdown_id,
                "selected_values": list(state.selected_values),
                "removed_values": values,
            },
        )
        return list(state.selected_values)

    def clear_selection(self, dropdown_id: str) -> None:
        _, state = self._require(dropdown_id)
        removed = list(state.selected_values)
        state.selected_values = []
        self.emit(
            DROPDOWN_SELECTION_CHANGED,
            {"dropdown_id": dropdown_id, "selected_values": [], "removed_values": removed},
        )

    def get_usage_count(self, dropdown_id: str, value: str) -> int:
        self._require(dropdown_id)
        return self._usage.get(dropdown_id, {}).get(value, 0)

    def reset_usage(self, dropdown_id: str) -> None:
        """Forget usage counters of one dropdown. Counters never reset on their own."""
        self._require(dropdown_id)
        self._usage.pop(dropdown_id, None)

    # --------------------------
    # Real-time updates
    # --------------------------
    def _subscribe(self) -> None:
        on = getattr(self.loader, "on", None)
        if callable(on):
            self._unsubscribe.append(on(LOAD_SUCCESS, self._on_load_success))
        if self.filter_service is not None:
            self._unsubscribe.append(
                self.filter_service.on(CATEGORY_UPDATED, self._on_category_event)
            )
            self._unsubscribe.append(
                self.filter_service.on(CATEGORY_ERROR, self._on_category_event)
            )

    def dropdowns_for_dataset(self, data_key: str) -> List[str]:
        return [
            i
            for i, c in self._configs.items()
            if data_key in DATA_SOURCE_DATASETS.get(c.data_source, [])
        ]

    def dropdowns_for_category(self, category_id: str) -> List[str]:
        source = CATEGORY_DATA_SOURCES.get(category_id)
        return [i for i, c in self._configs.items() if c.data_source == source]

    def _on_load_success(self, payload: Dict[str, Any]) -> None:
        key = str(payload.get("key") or "")
        if not key:
            return
        self.generator.invalidate_dataset(key)
        for dropdown_id in self.dropdowns_for_dataset(key):
            self._tasks.spawn(self.load_dropdown_data(dropdown_id))

    def _on_category_event(self, payload: Dict[str, Any]) -> None:
        for dropdown_id in self.dropdowns_for_category(str(payload.get("category_id"))):
            self._tasks.spawn(self.load_dropdown_data(dropdown_id))

    async def refresh_all_dropdowns(self) -> None:
        await asyncio.gather(*(self.load_dropdown_data(i) for i in list(self._configs)))

    async def drain(self) -> None:
        await self._tasks.drain()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # --------------------------
    # Introspection / lifecycle
    # --------------------------
    def get_dropdown_state(self, dropdown_id: str) -> DropdownState:
        return self._require(dropdown_id)[1]

    def get_dropdown_config(self, dropdown_id: str) -> DropdownConfig:
        return self._require(dropdown_id)[0]

    def get_dropdown_statistics(self, dropdown_id: str) -> Dict[str, Any]:
        _, state = self._require(dropdown_id)
        return {
            "total_options": len(state.options),
            "filtered_options": len(state.filtered_options),
            "selected_options": len(state.selected_values),
            "groups": len(state.groups),
            "last_updated": state.last_updated.isoformat(),
            "loading_state": state.loading_state.value,
        }

    def destroy(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        self._tasks.cancel_all()
        self._configs.clear()
        self._states.clear()
        self._usage.clear()
        self.generator.clear()
        self.remove_all_listeners()
