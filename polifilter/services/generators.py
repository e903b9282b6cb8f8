"""Turn raw dataset records into quality-scored ``FilterOption`` lists.

Each service owns its own ``OptionGenerator`` (and so its own option cache);
the raw datasets underneath are shared through the Data Loader.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..data.sources import DatasetCatalog, extract_records
from ..errors import ConfigurationError, LoadError
from ..models.options import (
    Coordinates,
    DataQuality,
    FilterOption,
    PartyMetadata,
    PlatformMetadata,
    PoliticianMetadata,
    SentimentMetadata,
    StateMetadata,
    TopicMetadata,
)
from .cache import TTLCache
from .quality import PROFILES, QualityProfile, assess_data_quality, is_quality_acceptable

logger = logging.getLogger(__name__)

DEFAULT_PARTY_COLOR = "#6B7280"

PLATFORMS: List[Dict[str, str]] = [
    {"id": "twitter", "name": "Twitter/X", "category": "microblogging", "color": "#1DA1F2"},
    {"id": "facebook", "name": "Facebook", "category": "social networking", "color": "#4267B2"},
    {"id": "instagram", "name": "Instagram", "category": "visual media", "color": "#E4405F"},
    {"id": "threads", "name": "Threads", "category": "microblogging", "color": "#000000"},
    {"id": "youtube", "name": "YouTube", "category": "video sharing", "color": "#FF0000"},
    {"id": "tiktok", "name": "TikTok", "category": "video sharing", "color": "#000000"},
    {"id": "news", "name": "News Media", "category": "traditional media", "color": "#2C3E50"},
]

# label, color, score
SENTIMENT_LABELS: List[tuple] = [
    ("Very Positive", "#22c55e", 2),
    ("Positive", "#84cc16", 1),
    ("Neutral", "#6b7280", 0),
    ("Negative", "#f97316", -1),
    ("Very Negative", "#ef4444", -2),
]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return []


def _sub(record: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = record.get(key)
    return value if isinstance(value, Mapping) else {}


def _copies(options: List[FilterOption]) -> List[FilterOption]:
    # cached options are never handed out directly
    return [o.model_copy(deep=True) for o in options]


# --------------------------
# Record -> option builders
# --------------------------
def party_option(record: Mapping[str, Any], quality: DataQuality) -> FilterOption:
    name = _text(record.get("name")) or str(record["id"])
    abbreviation = _text(record.get("abbreviation"))
    status = _text(_sub(record, "metadata").get("status"))
    return FilterOption(
        value=str(record["id"]),
        label=name,
        color=_text(_sub(record, "colors").get("primary")) or DEFAULT_PARTY_COLOR,
        description=f"{abbreviation} - {name}" if abbreviation else name,
        metadata=PartyMetadata(
            abbreviation=abbreviation,
            founded=_text(record.get("founded")),
            ideology=_str_list(record.get("ideology")),
            status=status,
        ),
        is_available=status == "active",
        data_quality=quality,
    )


def state_option(record: Mapping[str, Any], quality: DataQuality) -> FilterOption:
    capital = _text(record.get("capital"))
    slogan = _text(_sub(record, "metadata").get("slogan"))
    coords = _sub(record, "coordinates")
    lat, lon = _to_float(coords.get("latitude")), _to_float(coords.get("longitude"))
    return FilterOption(
        value=str(record["id"]),
        label=_text(record.get("name")) or str(record["id"]),
        description=" - ".join(p for p in (capital, slogan) if p) or None,
        metadata=StateMetadata(
            code=_text(record.get("code")),
            capital=capital,
            region=_text(record.get("region")),
            population=_to_int(record.get("population")),
            coordinates=(
                Coordinates(latitude=lat, longitude=lon)
                if lat is not None and lon is not None
                else None
            ),
        ),
        is_available=True,
        data_quality=quality,
    )


def politician_option(record: Mapping[str, Any], quality: DataQuality) -> FilterOption:
    meta = _sub(record, "metadata")
    first, last = _text(record.get("firstName")), _text(record.get("lastName"))
    label = (
        _text(record.get("fullName"))
        or " ".join(p for p in (first, last) if p)
        or str(record["id"])
    )
    party = _text(record.get("partyId"))
    position = _text(record.get("currentPositionId"))
    is_active = meta.get("isActive")
    return FilterOption(
        value=str(record["id"]),
        label=label,
        description=f"{position or 'Politician'} - {party or 'Independent'}",
        metadata=PoliticianMetadata(
            first_name=first,
            last_name=last,
            party=party,
            state=_text(record.get("stateOfOriginId")),
            position=position,
            gender=_text(record.get("gender")),
            is_active=is_active if isinstance(is_active, bool) else None,
            verification_status=_text(meta.get("verificationStatus")),
        ),
        is_available=is_active is not False,
        data_quality=quality,
    )


def topic_option(record: Mapping[str, Any], quality: DataQuality) -> FilterOption:
    category = _text(record.get("category"))
    direction = _text(record.get("trendDirection"))
    description = None
    if category or direction:
        description = f"{category or 'General'} - {direction or 'stable'} trend"
    return FilterOption(
        value=str(record["id"]),
        label=_text(record.get("topicName")) or str(record["id"]),
        count=_to_int(record.get("mentions")) or 0,
        description=description,
        metadata=TopicMetadata(
            category=category,
            keywords=_str_list(record.get("keywords")),
            trend_direction=direction,
            urgency=_text(record.get("urgencyLevel")),
            sentiment=_text(record.get("sentimentAssociation")),
            trending_score=_to_float(record.get("trendingScore")),
        ),
        is_available=record.get("isActive") is not False,
        data_quality=quality,
    )


def platform_options() -> List[FilterOption]:
    return [
        FilterOption(
            value=p["id"],
            label=p["name"],
            color=p["color"],
            description=f"{p['category']} platform",
            metadata=PlatformMetadata(category=p["category"]),
            data_quality=DataQuality.GOOD,
        )
        for p in PLATFORMS
    ]


def sentiment_options() -> List[FilterOption]:
    return [
        FilterOption(
            value=label,
            label=label,
            color=color,
            description=f"Sentiment: {label}",
            metadata=SentimentMetadata(score=score),
            data_quality=DataQuality.EXCELLENT,
        )
        for label, color, score in SENTIMENT_LABELS
    ]


@dataclass(frozen=True)
class SourceSpec:
    """How one generator obtains and converts its records."""

    name: str
    dataset_key: Optional[str] = None
    build: Optional[Callable[[Mapping[str, Any], DataQuality], FilterOption]] = None
    profile: Optional[QualityProfile] = None
    static: Optional[Callable[[], List[FilterOption]]] = None
    # memo TTL requested from the loader; None uses the loader default
    loader_ttl: Optional[float] = None

    @property
    def cache_key(self) -> str:
        return f"{self.name}-options"


SOURCES: Dict[str, SourceSpec] = {
    "party": SourceSpec("party", "parties", party_option, PROFILES["party"]),
    "state": SourceSpec("state", "states", state_option, PROFILES["state"]),
    "politician": SourceSpec(
        "politician", "politicians", politician_option, PROFILES["politician"]
    ),
    "platform": SourceSpec("platform", static=platform_options),
    "sentiment": SourceSpec("sentiment", static=sentiment_options),
    "topic": SourceSpec(
        "topic", "topic-trends", topic_option, PROFILES["topic"], loader_ttl=1800.0
    ),
}


class OptionGenerator:
    """Loads a source's dataset and produces its cached option list."""

    def __init__(
        self,
        loader: Any,
        catalog: Optional[DatasetCatalog] = None,
        *,
        min_data_quality: DataQuality = DataQuality.FAIR,
        max_options: int = 1000,
        enable_caching: bool = True,
        cache_ttl: float = 300.0,
        max_cache_entries: Optional[int] = None,
    ) -> None:
        self.loader = loader
        self.catalog = catalog or DatasetCatalog()
        self.min_data_quality = DataQuality(min_data_quality)
        self.max_options = max_options
        self.enable_caching = enable_caching
        self.cache: TTLCache[List[FilterOption]] = TTLCache(
            cache_ttl, max_entries=max_cache_entries
        )

    @staticmethod
    def spec(source: str) -> SourceSpec:
        try:
            return SOURCES[source]
        except KeyError:
            raise ConfigurationError(f"Unknown option source: {source}") from None

    async def generate(self, source: str) -> List[FilterOption]:
        """Return the options for ``source``, from cache when still fresh.

        Raises:
            ConfigurationError: If ``source`` is not a known generator
            LoadError: If the underlying dataset could not be loaded or parsed
        """
        spec = self.spec(source)
        if self.enable_caching:
            cached = self.cache.get(spec.cache_key)
            if cached is not None:
                return _copies(cached)

        if spec.static is not None:
            options = spec.static()
        else:
            records = await self._load_records(spec)
            options = self.build_options(records, spec)

        options = [
            o for o in options if is_quality_acceptable(o.data_quality, self.min_data_quality)
        ][: self.max_options]

        if self.enable_caching:
            self.cache.set(spec.cache_key, options)
        return _copies(options)

    async def _load_records(self, spec: SourceSpec) -> List[Dict[str, Any]]:
        key = str(spec.dataset_key)
        try:
            payload = await self.loader.load_data(
                key, self.catalog.fetcher(key), cache_ttl=spec.loader_ttl
            )
        except LoadError:
            raise
        except Exception as e:
            raise LoadError(f"Failed to load {key}: {e}", key=key) from e
        return extract_records(payload, self.catalog.root_key(key))

    @staticmethod
    def build_options(
        records: List[Dict[str, Any]], spec: SourceSpec
    ) -> List[FilterOption]:
        """Map records to options in input order, skipping id-less and repeated ids."""
        assert spec.build is not None
        profile = spec.profile or QualityProfile()
        seen = set()
        options: List[FilterOption] = []
        for record in records:
            raw_id = record.get("id")
            if raw_id is None or not str(raw_id).strip():
                logger.debug(f"Skipping {spec.name} record without id")
                continue
            value = str(raw_id)
            if value in seen:
                logger.warning(f"Duplicate {spec.name} id {value}; keeping first")
                continue
            seen.add(value)
            options.append(spec.build(record, assess_data_quality(record, profile)))
        return options

    def sources_for_dataset(self, dataset_key: str) -> List[str]:
        return [s.name for s in SOURCES.values() if s.dataset_key == dataset_key]

    def invalidate_dataset(self, dataset_key: str) -> int:
        """Drop cached option lists derived from ``dataset_key``."""
        dropped = 0
        for name in self.sources_for_dataset(dataset_key):
            if self.cache.invalidate(SOURCES[name].cache_key):
                dropped += 1
        return dropped

    def clear(self) -> None:
        self.cache.clear()
