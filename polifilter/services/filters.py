"""Option Generation & Validation service.

Turns raw datasets into filter categories, validates proposed selections
against the current options and keeps categories fresh when the Data Loader
reports new data.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config import ServiceConfig
from ..data.sources import DatasetCatalog
from ..errors import ConfigurationError
from ..events import (
    CACHE_CLEARED,
    CATEGORY_ERROR,
    CATEGORY_UPDATED,
    CATEGORY_UPDATING,
    FILTERS_UPDATED,
    LOAD_SUCCESS,
    EventEmitter,
)
from ..models.options import (
    CategoryDefinition,
    DataQuality,
    FilterCategory,
    FilterOption,
    FilterValidationResult,
    LoadingState,
    SelectionIssue,
)
from .generators import OptionGenerator
from .single_flight import BackgroundTasks, SingleFlight

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS_PER_VALUE = 3

DEFAULT_CATEGORIES: List[CategoryDefinition] = [
    CategoryDefinition(
        id="party",
        name="Political Parties",
        description="Filter by political party affiliation",
        data_source="parties",
        generator="party",
    ),
    CategoryDefinition(
        id="state",
        name="States",
        description="Filter by Nigerian states",
        data_source="states",
        generator="state",
    ),
    CategoryDefinition(
        id="politician",
        name="Politicians",
        description="Filter by specific politicians",
        data_source="politicians",
        generator="politician",
        dependencies=["party", "state"],
    ),
    CategoryDefinition(
        id="platform",
        name="Social Platforms",
        description="Filter by social media platform",
        data_source="sentiment-data",
        generator="platform",
    ),
    CategoryDefinition(
        id="sentiment",
        name="Sentiment",
        description="Filter by sentiment classification",
        data_source="constants",
        generator="sentiment",
    ),
    CategoryDefinition(
        id="topic",
        name="Topics",
        description="Filter by trending topics",
        data_source="topic-trends",
        generator="topic",
    ),
]


class FilterService(EventEmitter):
    """Owns the filter categories and their generated options.

    Emits ``category-updating``, ``category-updated``, ``category-error`` and
    ``filters-updated``.
    """

    def __init__(
        self,
        loader: Any,
        config: Optional[ServiceConfig] = None,
        catalog: Optional[DatasetCatalog] = None,
        categories: Optional[Iterable[CategoryDefinition]] = None,
    ) -> None:
        super().__init__()
        self.config = config or ServiceConfig()
        self.loader = loader
        self.generator = OptionGenerator(
            loader,
            catalog,
            min_data_quality=self.config.min_data_quality,
            max_options=self.config.max_options,
            enable_caching=self.config.enable_caching,
            cache_ttl=self.config.cache_ttl_seconds,
            max_cache_entries=self.config.max_cache_entries,
        )
        self._definitions: Dict[str, CategoryDefinition] = {}
        self._categories: Dict[str, FilterCategory] = {}
        self._flight = SingleFlight(enabled=self.config.single_flight)
        self._tasks = BackgroundTasks()
        self._unsubscribe: List[Callable[[], None]] = []

        for definition in categories if categories is not None else DEFAULT_CATEGORIES:
            self.register_category(definition)
        if self.config.enable_real_time_updates:
            self._subscribe()

    # --------------------------
    # Generators
    # --------------------------
    async def generate_party_options(self) -> List[FilterOption]:
        return await self.generator.generate("party")

    async def generate_state_options(self) -> List[FilterOption]:
        return await self.generator.generate("state")

    async def generate_politician_options(self) -> List[FilterOption]:
        return await self.generator.generate("politician")

    async def generate_platform_options(self) -> List[FilterOption]:
        return await self.generator.generate("platform")

    async def generate_sentiment_options(self) -> List[FilterOption]:
        return await self.generator.generate("sentiment")

    async def generate_topic_options(self) -> List[FilterOption]:
        return await self.generator.generate("topic")

    # --------------------------
    # Categories
    # --------------------------
    def register_category(self, definition: CategoryDefinition) -> None:
        """Declare a category; it is created on first access."""
        self.generator.spec(definition.generator)
        self._definitions[definition.id] = definition
        self._categories.pop(definition.id, None)

    def list_category_ids(self) -> List[str]:
        return list(self._definitions)

    def get_category(self, category_id: str) -> FilterCategory:
        """Return the category as it currently stands, without loading it.

        Raises:
            ConfigurationError: If ``category_id`` was never registered
        """
        definition = self._definitions.get(category_id)
        if definition is None:
            raise ConfigurationError(f"Unknown filter category: {category_id}")
        category = self._categories.get(category_id)
        if category is None:
            category = FilterCategory.from_definition(definition)
            self._categories[category_id] = category
        return category

    async def get_filter_category(self, category_id: str) -> FilterCategory:
        """Return the category, loading its options on first access."""
        category = self.get_category(category_id)
        if category.loading_state == LoadingState.IDLE:
            await self.refresh_filter_category(category_id)
        return category

    async def get_all_filter_categories(self) -> Dict[str, FilterCategory]:
        """Build every registered category; one failing category does not fail the rest."""
        ids = list(self._definitions)
        for category_id in ids:
            self.get_category(category_id)
        await asyncio.gather(*(self.refresh_filter_category(i) for i in ids))
        return {i: self._categories[i] for i in ids}

    async def refresh_filter_category(self, category_id: str) -> None:
        """Regenerate one category's options; failures become state and events."""
        if category_id not in self._definitions:
            logger.warning(f"Refresh requested for unknown category {category_id}")
            return
        await self._flight.do(category_id, lambda: self._refresh(category_id))

    async def _refresh(self, category_id: str) -> None:
        category = self.get_category(category_id)
        definition = self._definitions[category_id]
        category.loading_state = LoadingState.LOADING
        self.emit(CATEGORY_UPDATING, {"category_id": category_id})
        try:
            options = await self.generator.generate(definition.generator)
        except Exception as e:
            # previous options stay in place
            logger.error(
                f"Failed to refresh category {category_id}: {str(e)}", exc_info=True
            )
            category.loading_state = LoadingState.ERROR
            self.emit(CATEGORY_ERROR, {"category_id": category_id, "error": e})
            return
        category.options = options
        category.loading_state = LoadingState.SUCCESS
        category.last_updated = datetime.now(timezone.utc)
        logger.debug(f"Category {category_id} refreshed with {len(options)} options")
        self.emit(CATEGORY_UPDATED, {"category_id": category_id, "options": options})

    # --------------------------
    # Validation
    # --------------------------
    def validate_filter_selection(
        self, category_id: str, selected_values: Iterable[str]
    ) -> FilterValidationResult:
        """Check ``selected_values`` against the category's current options.

        Values with no option are ``unknown``; values whose option is disabled
        are ``unavailable``. Both are errors. Poor-quality selections and empty
        dependency categories only produce warnings.
        """
        if category_id not in self._definitions:
            return FilterValidationResult(
                is_valid=False, errors=[f"Unknown filter category: {category_id}"]
            )
        category = self.get_category(category_id)
        by_value = {o.value: o for o in category.options}

        errors: List[str] = []
        warnings: List[str] = []
        issues: List[SelectionIssue] = []
        suggestions: List[FilterOption] = []
        suggested = set()

        for value in selected_values:
            option = by_value.get(value)
            if option is not None and option.is_available:
                if option.data_quality == DataQuality.POOR:
                    warnings.append(f"Low data quality for {category_id}: {option.label}")
                continue

            if option is None:
                message = f"Invalid {category_id} selection: {value}"
                issues.append(SelectionIssue(value=value, kind="unknown", message=message))
            else:
                message = f"{category.name} option '{option.label}' is currently unavailable"
                issues.append(
                    SelectionIssue(value=value, kind="unavailable", message=message)
                )
                if option.data_quality == DataQuality.POOR:
                    warnings.append(f"Low data quality for {category_id}: {option.label}")
            errors.append(message)

            for candidate in self._similar_options(category.options, value):
                if candidate.value not in suggested:
                    suggested.add(candidate.value)
                    suggestions.append(candidate)

        for dep_id in category.dependencies:
            if dep_id not in self._definitions:
                continue
            # a dependency nobody has created yet has no options either
            dep = self._categories.get(dep_id)
            if dep is None or not dep.options:
                warnings.append(f"Dependent filter {dep_id} has no available options")

        return FilterValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            suggestions=suggestions,
            issues=issues,
        )

    @staticmethod
    def _similar_options(options: List[FilterOption], value: str) -> List[FilterOption]:
        needle = value.casefold()
        if not needle:
            return []
        matches = [
            o
            for o in options
            if o.value != value
            and (needle in o.label.casefold() or needle in o.value.casefold())
        ]
        return matches[:MAX_SUGGESTIONS_PER_VALUE]

    # --------------------------
    # Real-time updates
    # --------------------------
    def _subscribe(self) -> None:
        on = getattr(self.loader, "on", None)
        if not callable(on):
            return
        self._unsubscribe.append(on(LOAD_SUCCESS, self._on_load_success))
        self._unsubscribe.append(on(CACHE_CLEARED, self._on_cache_cleared))

    def _on_load_success(self, payload: Dict[str, Any]) -> None:
        key = payload.get("key")
        if key:
            self._tasks.spawn(self.handle_data_update(str(key)))

    def _on_cache_cleared(self, payload: Dict[str, Any]) -> None:
        self.generator.clear()
        logger.info("Option cache cleared after loader cache reset")

    def affected_categories(self, data_key: str) -> List[str]:
        return [d.id for d in self._definitions.values() if d.data_source == data_key]

    async def handle_data_update(self, data_key: str) -> List[str]:
        """Regenerate categories whose data source is ``data_key``."""
        self.generator.invalidate_dataset(data_key)
        affected = [c for c in self.affected_categories(data_key) if c in self._categories]
        if affected:
            logger.info(f"Dataset {data_key} changed; refreshing {', '.join(affected)}")
            await asyncio.gather(*(self.refresh_filter_category(c) for c in affected))
        self.emit(FILTERS_UPDATED, {"data_key": data_key, "affected_categories": affected})
        return affected

    async def drain(self) -> None:
        """Wait for refreshes scheduled from loader notifications."""
        await self._tasks.drain()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # --------------------------
    # Introspection / lifecycle
    # --------------------------
    def get_filter_statistics(self) -> Dict[str, Any]:
        categories = list(self._categories.values())
        last = max((c.last_updated for c in categories if c.last_updated), default=None)
        return {
            "total_categories": len(categories),
            "total_options": sum(len(c.options) for c in categories),
            "loading_states": {c.id: c.loading_state.value for c in categories},
            "cache_size": len(self.generator.cache),
            "cache_info": self.generator.cache.cache_info(),
            "last_update": last.isoformat() if last else None,
        }

    def update_config(self, **changes: Any) -> ServiceConfig:
        """Apply config changes; disabling caching drops cached options."""
        self.config = self.config.model_copy(update=changes)
        gen = self.generator
        gen.min_data_quality = DataQuality(self.config.min_data_quality)
        gen.max_options = self.config.max_options
        gen.enable_caching = self.config.enable_caching
        gen.cache.ttl_seconds = float(self.config.cache_ttl_seconds)
        gen.cache.max_entries = self.config.max_cache_entries
        if not self.config.enable_caching:
            gen.clear()
        self._flight.enabled = self.config.single_flight
        if self.config.enable_real_time_updates and not self._unsubscribe:
            self._subscribe()
        elif not self.config.enable_real_time_updates:
            self._unsubscribe_all()
        return self.config

    def _unsubscribe_all(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()

    def destroy(self) -> None:
        self._unsubscribe_all()
        self._tasks.cancel_all()
        self._categories.clear()
        self.generator.clear()
        self.remove_all_listeners()
