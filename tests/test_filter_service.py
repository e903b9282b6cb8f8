"""Tests for option generation, category lifecycle and selection validation."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from polifilter.config import ServiceConfig
from polifilter.errors import ConfigurationError, LoadError, ValidationError
from polifilter.models.options import (
    DataQuality,
    LoadingState,
    PartyMetadata,
    PoliticianMetadata,
    StateMetadata,
    TopicMetadata,
)
from polifilter.services.cache import TTLCache
from polifilter.services.filters import FilterService


@pytest.fixture
def service(loader, config) -> FilterService:
    svc = FilterService(loader, config)
    yield svc
    svc.destroy()


# --------------------------
# Generators
# --------------------------
def test_party_options_mapping(service):
    options = asyncio.run(service.generate_party_options())
    by_value = {o.value: o for o in options}

    # ghost has a blank name -> poor -> dropped at the default "fair" minimum
    assert list(by_value) == ["apc", "pdp", "lp", "npp"]
    apc = by_value["apc"]
    assert apc.label == "All Progressives Congress"
    assert apc.color == "#00A651"
    assert apc.description == "APC - All Progressives Congress"
    assert apc.is_available is True
    assert apc.data_quality == DataQuality.EXCELLENT
    assert isinstance(apc.metadata, PartyMetadata)
    assert apc.metadata.ideology == ["Progressivism"]

    npp = by_value["npp"]
    assert npp.color == "#6B7280"
    assert npp.is_available is False
    assert npp.data_quality == DataQuality.GOOD


def test_state_politician_and_topic_mapping(service):
    states = asyncio.run(service.generate_state_options())
    lagos = next(o for o in states if o.value == "NG-LA")
    assert isinstance(lagos.metadata, StateMetadata)
    assert lagos.metadata.region == "south-west"
    assert lagos.metadata.coordinates.latitude == 6.52
    assert lagos.description.startswith("Ikeja")

    politicians = asyncio.run(service.generate_politician_options())
    by_value = {o.value: o for o in politicians}
    assert by_value["pol-1"].label == "Adaeze Okafor"
    assert by_value["pol-1"].description == "governor - apc"
    assert by_value["pol-3"].description == "Politician - lp"
    assert by_value["pol-3"].is_available is False
    assert isinstance(by_value["pol-2"].metadata, PoliticianMetadata)

    topics = asyncio.run(service.generate_topic_options())
    fuel = next(o for o in topics if o.value == "fuel-subsidy")
    assert fuel.count == 1200
    assert fuel.description == "economy - rising trend"
    assert isinstance(fuel.metadata, TopicMetadata)
    assert fuel.metadata.urgency == "high"
    assert next(o for o in topics if o.value == "old-census").is_available is False


def test_static_platform_and_sentiment_options(service, loader):
    platforms = asyncio.run(service.generate_platform_options())
    sentiments = asyncio.run(service.generate_sentiment_options())

    assert [p.value for p in platforms][:2] == ["twitter", "facebook"]
    assert all(p.data_quality == DataQuality.GOOD for p in platforms)
    assert [s.label for s in sentiments] == [
        "Very Positive",
        "Positive",
        "Neutral",
        "Negative",
        "Very Negative",
    ]
    assert all(s.data_quality == DataQuality.EXCELLENT for s in sentiments)
    assert sum(loader.calls.values()) == 0


def test_min_quality_threshold_is_configurable(loader):
    strict = FilterService(loader, ServiceConfig(min_data_quality="excellent"))
    lenient = FilterService(loader, ServiceConfig(min_data_quality="poor"))

    strict_values = [o.value for o in asyncio.run(strict.generate_party_options())]
    lenient_values = [o.value for o in asyncio.run(lenient.generate_party_options())]

    assert "npp" not in strict_values
    assert "ghost" in lenient_values


def test_max_options_caps_the_list(loader):
    svc = FilterService(loader, ServiceConfig(max_options=2))
    assert len(asyncio.run(svc.generate_party_options())) == 2


def test_cache_discipline_one_loader_call_within_ttl(raw_datasets):
    mock_loader = MagicMock()
    mock_loader.load_data = AsyncMock(return_value=raw_datasets["parties"])
    svc = FilterService(mock_loader, ServiceConfig(enable_real_time_updates=False))

    async def run():
        await svc.generate_party_options()
        await svc.generate_party_options()

    asyncio.run(run())
    assert mock_loader.load_data.call_count == 1


def test_expired_cache_entry_reinvokes_loader(loader):
    svc = FilterService(loader)
    now = [0.0]
    svc.generator.cache = TTLCache(300, clock=lambda: now[0])

    asyncio.run(svc.generate_party_options())
    now[0] = 301.0
    asyncio.run(svc.generate_party_options())
    assert loader.calls["parties"] == 2


def test_generation_is_idempotent(loader):
    a = FilterService(loader, ServiceConfig(enable_caching=False))
    first = asyncio.run(a.generate_politician_options())
    second = asyncio.run(a.generate_politician_options())
    assert [o.model_dump() for o in first] == [o.model_dump() for o in second]


def test_loader_failure_raises_load_error(loader):
    loader.failing.add("parties")
    svc = FilterService(loader)
    with pytest.raises(LoadError):
        asyncio.run(svc.generate_party_options())


# --------------------------
# Categories
# --------------------------
def test_get_all_filter_categories_isolates_failures(service, loader):
    loader.failing.add("politicians")
    categories = asyncio.run(service.get_all_filter_categories())

    assert set(categories) == {"party", "state", "politician", "platform", "sentiment", "topic"}
    assert categories["politician"].loading_state == LoadingState.ERROR
    assert categories["politician"].options == []
    for cid in ("party", "state", "platform", "sentiment", "topic"):
        assert categories[cid].loading_state == LoadingState.SUCCESS
        assert categories[cid].options


def test_get_filter_category_creates_lazily(service, loader):
    category = service.get_category("party")
    assert category.loading_state == LoadingState.IDLE
    assert loader.calls["parties"] == 0

    loaded = asyncio.run(service.get_filter_category("party"))
    assert loaded is category
    assert loaded.loading_state == LoadingState.SUCCESS
    assert loaded.dependencies == []
    assert service.get_category("politician").dependencies == ["party", "state"]


def test_unknown_category_on_sync_api_raises(service):
    with pytest.raises(ConfigurationError):
        service.get_category("nope")
    with pytest.raises(ConfigurationError):
        asyncio.run(service.get_filter_category("nope"))


def test_refresh_emits_events_and_keeps_options_on_failure(service, loader):
    events = []
    for name in ("category-updating", "category-updated", "category-error"):
        service.on(name, lambda p, name=name: events.append((name, p["category_id"])))

    asyncio.run(service.refresh_filter_category("party"))
    before = list(service.get_category("party").options)
    assert before

    service.generator.clear()
    loader.failing.add("parties")
    asyncio.run(service.refresh_filter_category("party"))

    category = service.get_category("party")
    assert category.loading_state == LoadingState.ERROR
    assert category.options == before
    assert events == [
        ("category-updating", "party"),
        ("category-updated", "party"),
        ("category-updating", "party"),
        ("category-error", "party"),
    ]


def test_refresh_unknown_category_is_a_no_op(service):
    asyncio.run(service.refresh_filter_category("nope"))


def test_concurrent_refreshes_are_coalesced(loader):
    svc = FilterService(loader, ServiceConfig(enable_caching=False))

    async def run():
        await asyncio.gather(
            svc.refresh_filter_category("party"), svc.refresh_filter_category("party")
        )

    asyncio.run(run())
    assert loader.calls["parties"] == 1

    racing = FilterService(loader, ServiceConfig(enable_caching=False, single_flight=False))
    loader.calls.clear()

    async def race():
        await asyncio.gather(
            racing.refresh_filter_category("party"),
            racing.refresh_filter_category("party"),
        )

    asyncio.run(race())
    assert loader.calls["parties"] == 2


# --------------------------
# Validation
# --------------------------
def test_empty_selection_is_valid(service):
    asyncio.run(service.get_all_filter_categories())
    for cid in service.list_category_ids():
        result = service.validate_filter_selection(cid, [])
        assert result.is_valid
        assert result.errors == []


def test_unknown_category_is_invalid_without_raising(service):
    result = service.validate_filter_selection("nope", ["x"])
    assert result.is_valid is False
    assert result.errors == ["Unknown filter category: nope"]


def test_unknown_and_unavailable_values_are_distinguished(service):
    asyncio.run(service.get_filter_category("party"))
    result = service.validate_filter_selection("party", ["apc", "npp", "zzz"])

    assert result.is_valid is False
    assert len(result.errors) == 2
    kinds = {i.value: i.kind for i in result.issues}
    assert kinds == {"npp": "unavailable", "zzz": "unknown"}
    messages = {i.value: i.message for i in result.issues}
    assert messages["npp"] != messages["zzz"]
    assert "unavailable" in messages["npp"]


def test_suggestions_are_substring_matches_capped_and_deduplicated(service):
    asyncio.run(service.get_filter_category("party"))
    result = service.validate_filter_selection("party", ["party", "Party"])

    # both spellings match the same three labels; each is suggested once
    assert [s.value for s in result.suggestions] == ["pdp", "lp", "npp"]


def test_suggestions_cap_per_value(service):
    asyncio.run(service.get_filter_category("state"))
    # "n" matches every state label
    result = service.validate_filter_selection("state", ["n"])
    assert len(result.suggestions) == 3


def test_poor_quality_selection_warns_but_stays_valid(loader):
    svc = FilterService(loader, ServiceConfig(min_data_quality="poor"))
    asyncio.run(svc.get_filter_category("party"))
    ghost = next(o for o in svc.get_category("party").options if o.value == "ghost")
    assert ghost.data_quality == DataQuality.POOR
    # no status on ghost, so it is unavailable until marked otherwise
    ghost.is_available = True

    result = svc.validate_filter_selection("party", ["ghost"])
    assert result.is_valid
    assert result.warnings == ["Low data quality for party: ghost"]


def test_callers_cannot_mutate_cached_options(service):
    first = asyncio.run(service.generate_party_options())
    first[0].is_available = False
    first[0].metadata.status = "dissolved"

    again = asyncio.run(service.generate_party_options())
    assert again[0].value == first[0].value
    assert again[0].is_available is True
    assert again[0].metadata.status == "active"


def test_empty_dependency_category_warns(service, loader):
    loader.datasets["parties"] = {"parties": []}
    asyncio.run(service.get_filter_category("party"))
    asyncio.run(service.get_filter_category("politician"))

    result = service.validate_filter_selection("politician", ["pol-1"])
    assert result.is_valid
    assert "Dependent filter party has no available options" in result.warnings


def test_dependency_warning_does_not_need_an_earlier_read(service, loader):
    loader.datasets["parties"] = {"parties": []}
    asyncio.run(service.get_filter_category("politician"))

    first = service.validate_filter_selection("politician", ["pol-1"])
    assert "Dependent filter party has no available options" in first.warnings

    service.get_category("party")
    second = service.validate_filter_selection("politician", ["pol-1"])
    assert second.warnings == first.warnings


# --------------------------
# Real-time updates
# --------------------------
def test_load_success_regenerates_only_affected_categories(service, loader, raw_datasets):
    updates = []
    service.on("filters-updated", updates.append)

    async def run():
        await service.get_filter_category("party")
        await service.get_filter_category("state")
        loader.calls.clear()
        new_parties = {"parties": raw_datasets["parties"]["parties"][:1]}
        loader.set_data("parties", new_parties)
        await service.drain()

    asyncio.run(run())
    assert [o.value for o in service.get_category("party").options] == ["apc"]
    assert loader.calls["parties"] == 1
    assert loader.calls["states"] == 0
    assert updates == [{"data_key": "parties", "affected_categories": ["party"]}]


def test_cache_cleared_drops_option_cache(service, loader):
    asyncio.run(service.generate_party_options())
    assert len(service.generator.cache) == 1
    loader.clear_cache()
    assert len(service.generator.cache) == 0


def test_real_time_updates_can_be_disabled(loader):
    svc = FilterService(loader, ServiceConfig(enable_real_time_updates=False))
    assert loader.listener_count("load-success") == 0
    svc.update_config(enable_real_time_updates=True)
    assert loader.listener_count("load-success") == 1
    svc.destroy()
    assert loader.listener_count("load-success") == 0


def test_update_config_disabling_cache_clears_it(service):
    asyncio.run(service.generate_party_options())
    service.update_config(enable_caching=False)
    assert len(service.generator.cache) == 0
    asyncio.run(service.generate_party_options())
    assert len(service.generator.cache) == 0


def test_filter_statistics(service):
    asyncio.run(service.get_all_filter_categories())
    stats = service.get_filter_statistics()
    assert stats["total_categories"] == 6
    assert stats["total_options"] > 0
    assert stats["loading_states"]["party"] == "success"
    assert stats["last_update"] is not None


def test_raise_for_errors(service):
    asyncio.run(service.get_filter_category("party"))
    service.validate_filter_selection("party", ["apc"]).raise_for_errors()

    with pytest.raises(ValidationError) as exc_info:
        service.validate_filter_selection("party", ["zzz"]).raise_for_errors()
    assert exc_info.value.errors == ["Invalid party selection: zzz"]
