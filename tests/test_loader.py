"""Tests for the DataLoader and the dataset fetchers."""

from __future__ import annotations

import asyncio
import gzip
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from polifilter.data.loader import DataLoader
from polifilter.data.sources import (
    DatasetCatalog,
    extract_records,
    json_file_fetcher,
    url_fetcher,
)
from polifilter.errors import DatasetShapeError, LoadError


class CountingFetch:
    def __init__(self, result=None, fail_times: int = 0, exc: Exception | None = None):
        self.calls = 0
        self.result = result if result is not None else {"parties": []}
        self.fail_times = fail_times
        self.exc = exc or RuntimeError("network down")

    def __call__(self):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise self.exc
        return self.result


def test_load_is_memoized_and_emits_load_success_once():
    loader = DataLoader(retries=0)
    events = []
    loader.on("load-success", events.append)
    hits = []
    loader.on("cache-hit", hits.append)
    fetch = CountingFetch({"parties": [{"id": "apc"}]})

    async def run():
        first = await loader.load_data("parties", fetch)
        second = await loader.load_data("parties", fetch)
        return first, second

    first, second = asyncio.run(run())
    assert first == second == {"parties": [{"id": "apc"}]}
    assert fetch.calls == 1
    assert [e["key"] for e in events] == ["parties"]
    assert hits == [{"key": "parties"}]
    metrics = loader.get_metrics()
    assert metrics["cache_hits"] == 1
    assert metrics["cache_misses"] == 1
    assert metrics["in_flight"] == 0


def test_skip_cache_always_fetches():
    loader = DataLoader(retries=0)
    fetch = CountingFetch()

    async def run():
        await loader.load_data("parties", fetch, skip_cache=True)
        await loader.load_data("parties", fetch, skip_cache=True)

    asyncio.run(run())
    assert fetch.calls == 2
    assert loader.get_cached("parties") is None


def test_concurrent_loads_share_one_fetch():
    loader = DataLoader(retries=0)
    calls = []

    async def fetch():
        calls.append(1)
        await asyncio.sleep(0.01)
        return {"states": []}

    async def run():
        return await asyncio.gather(
            loader.load_data("states", fetch), loader.load_data("states", fetch)
        )

    results = asyncio.run(run())
    assert results == [{"states": []}, {"states": []}]
    assert len(calls) == 1


def test_retries_with_backoff_then_succeeds():
    loader = DataLoader(retries=3, retry_delay=0)
    fetch = CountingFetch({"ok": True}, fail_times=2)
    assert asyncio.run(loader.load_data("x", fetch)) == {"ok": True}
    assert fetch.calls == 3


def test_exhausted_retries_raise_load_error_and_emit():
    loader = DataLoader(retries=2, retry_delay=0)
    errors = []
    loader.on("load-error", errors.append)
    fetch = CountingFetch(fail_times=10)

    with pytest.raises(LoadError) as exc_info:
        asyncio.run(loader.load_data("politicians", fetch))

    assert exc_info.value.key == "politicians"
    assert fetch.calls == 3
    assert errors and errors[0]["key"] == "politicians"
    assert loader.get_metrics()["errors"] == 1


def test_load_error_from_fetcher_is_not_retried():
    loader = DataLoader(retries=3, retry_delay=0)
    fetch = CountingFetch(fail_times=10, exc=LoadError("File not found: x.json"))
    with pytest.raises(LoadError):
        asyncio.run(loader.load_data("x", fetch))
    assert fetch.calls == 1


def test_timeout_is_not_retried():
    loader = DataLoader(retries=3, retry_delay=0, timeout=0.01)
    calls = []

    async def slow():
        calls.append(1)
        await asyncio.sleep(1)
        return {}

    with pytest.raises(LoadError):
        asyncio.run(loader.load_data("slow", slow))
    assert len(calls) == 1


def test_set_data_and_clear_cache_notify():
    loader = DataLoader()
    seen = []
    loader.on("load-success", lambda p: seen.append(("load-success", p["key"])))
    loader.on("cache-cleared", lambda p: seen.append(("cache-cleared", p)))

    loader.set_data("parties", {"parties": []})
    assert loader.get_cached("parties") == {"parties": []}
    loader.clear_cache()
    assert loader.get_cached("parties") is None
    assert seen == [("load-success", "parties"), ("cache-cleared", {})]


def test_set_data_wins_over_a_fetch_already_in_flight():
    loader = DataLoader(retries=0)
    old = {"parties": [{"id": "old"}]}
    new = {"parties": [{"id": "new"}]}
    payloads = []
    loader.on("load-success", lambda p: payloads.append(p["data"]))

    async def run():
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch():
            started.set()
            await release.wait()
            return old

        task = asyncio.ensure_future(loader.load_data("parties", slow_fetch))
        await started.wait()
        loader.set_data("parties", new)
        release.set()
        return await task

    assert asyncio.run(run()) == new
    assert loader.get_cached("parties") == new
    assert payloads == [new]


def test_invalidate_discards_a_fetch_already_in_flight():
    loader = DataLoader(retries=0)
    payloads = []
    loader.on("load-success", lambda p: payloads.append(p["data"]))

    async def run():
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch():
            started.set()
            await release.wait()
            return {"parties": []}

        task = asyncio.ensure_future(loader.load_data("parties", slow_fetch))
        await started.wait()
        loader.invalidate("parties")
        release.set()
        await task
        # the next load fetches again
        return await loader.load_data("parties", lambda: {"parties": [{"id": "apc"}]})

    assert asyncio.run(run()) == {"parties": [{"id": "apc"}]}
    assert payloads == [{"parties": [{"id": "apc"}]}]


# --------------------------
# Fetchers and payload shapes
# --------------------------
def test_json_file_fetcher_reads_plain_and_gzip(tmp_path: Path):
    plain = tmp_path / "parties.json"
    plain.write_text(json.dumps({"parties": [{"id": "apc"}]}))
    gz = tmp_path / "states.json.gz"
    with gzip.open(gz, "wt", encoding="utf-8") as f:
        json.dump({"states": [{"id": "NG-LA"}]}, f)

    assert json_file_fetcher(plain)() == {"parties": [{"id": "apc"}]}
    assert json_file_fetcher(gz)() == {"states": [{"id": "NG-LA"}]}


def test_json_file_fetcher_errors(tmp_path: Path):
    with pytest.raises(LoadError, match="not found"):
        json_file_fetcher(tmp_path / "missing.json")()
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(LoadError, match="Invalid JSON"):
        json_file_fetcher(bad)()


def test_url_fetcher_uses_requests():
    response = MagicMock()
    response.json.return_value = {"parties": []}
    with patch("polifilter.data.sources.requests.get", return_value=response) as get:
        assert url_fetcher("https://example.org/core/parties.json", timeout=5)() == {
            "parties": []
        }
    get.assert_called_once_with("https://example.org/core/parties.json", timeout=5)
    response.raise_for_status.assert_called_once()


def test_extract_records_shapes():
    assert extract_records([{"id": 1}, "junk"], "parties") == [{"id": 1}]
    assert extract_records({"parties": [{"id": 1}]}, "parties") == [{"id": 1}]
    assert extract_records({"pollingUnitss": [{"id": 1}]}, "pollingUnits") == [{"id": 1}]
    with pytest.raises(DatasetShapeError):
        extract_records({"other": []}, "parties")
    with pytest.raises(DatasetShapeError):
        extract_records(None, "parties")


def test_catalog_locations_and_overrides(tmp_path: Path):
    local = DatasetCatalog(data_dir=tmp_path)
    assert local.location("parties") == str(tmp_path / "core/parties.json")
    assert local.location("unknown") == str(tmp_path / "unknown.json")
    assert local.root_key("topic-trends") == "topicTrends"

    remote = DatasetCatalog(base_url="https://data.example.org/")
    assert remote.location("politicians") == (
        "https://data.example.org/politicians/politicians.json"
    )

    fetch = lambda: {"parties": []}  # noqa: E731
    local.register("parties", fetch)
    assert local.fetcher("parties") is fetch
    assert "parties" in local.keys()
