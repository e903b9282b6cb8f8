"""Pytest configuration and fixtures for polifilter tests."""

from __future__ import annotations

import copy
import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict

import pytest

from polifilter.config import ServiceConfig
from polifilter.data.sources import DATASET_PATHS
from polifilter.errors import LoadError
from polifilter.events import CACHE_CLEARED, LOAD_SUCCESS, EventEmitter

PARTIES = [
    {
        "id": "apc",
        "name": "All Progressives Congress",
        "abbreviation": "APC",
        "colors": {"primary": "#00A651"},
        "founded": "2013",
        "ideology": ["Progressivism"],
        "metadata": {"status": "active"},
        "headquarters": {"stateId": "NG-FC"},
    },
    {
        "id": "pdp",
        "name": "Peoples Democratic Party",
        "abbreviation": "PDP",
        "colors": {"primary": "#D71920"},
        "founded": "1998",
        "ideology": ["Conservatism"],
        "metadata": {"status": "active"},
        "headquarters": {"stateId": "NG-FC"},
    },
    {
        "id": "lp",
        "name": "Labour Party",
        "abbreviation": "LP",
        "colors": {"primary": "#006400"},
        "founded": "2002",
        "ideology": ["Social democracy"],
        "metadata": {"status": "active"},
        "headquarters": {"stateId": "NG-LA"},
    },
    {
        # 3 of 5 optional fields -> good; deregistered -> unavailable
        "id": "npp",
        "name": "National Party of Progress",
        "abbreviation": "NPP",
        "founded": "1978",
        "metadata": {"status": "deregistered"},
        "headquarters": {"stateId": "NG-LA"},
    },
    {
        # blank name -> poor
        "id": "ghost",
        "name": "",
    },
]

STATES = [
    {
        "id": "NG-LA",
        "name": "Lagos",
        "code": "LA",
        "capital": "Ikeja",
        "region": "south-west",
        "population": 15388000,
        "coordinates": {"latitude": 6.52, "longitude": 3.37},
    },
    {
        "id": "NG-KN",
        "name": "Kano",
        "code": "KN",
        "capital": "Kano",
        "region": "north-west",
        "population": 13076892,
        "coordinates": {"latitude": 12.0, "longitude": 8.52},
    },
    {
        "id": "NG-FC",
        "name": "Federal Capital Territory",
        "code": "FC",
        "capital": "Abuja",
        "region": "north-central",
        "population": 3564126,
        "coordinates": {"latitude": 9.07, "longitude": 7.49},
    },
    {
        "id": "NG-EN",
        "name": "Enugu",
        "code": "EN",
        "capital": "Enugu",
        "region": "south-east",
        "population": 4411119,
        "coordinates": {"latitude": 6.45, "longitude": 7.51},
    },
]

POLITICIANS = [
    {
        "id": "pol-1",
        "firstName": "Adaeze",
        "lastName": "Okafor",
        "fullName": "Adaeze Okafor",
        "partyId": "apc",
        "stateOfOriginId": "NG-LA",
        "currentPositionId": "governor",
        "gender": "female",
        "metadata": {"isActive": True, "verificationStatus": "verified"},
        "politicalHistory": [
            {"partyId": "apc", "positionId": "governor", "stateId": "NG-LA"}
        ],
    },
    {
        "id": "pol-2",
        "firstName": "Musa",
        "lastName": "Bello",
        "fullName": "Musa Bello",
        "partyId": "pdp",
        "stateOfOriginId": "NG-KN",
        "currentPositionId": "senator",
        "gender": "male",
        "metadata": {"isActive": True, "verificationStatus": "pending"},
        "politicalHistory": [],
    },
    {
        "id": "pol-3",
        "firstName": "Tunde",
        "lastName": "Adeyemi",
        "fullName": "Tunde Adeyemi",
        "partyId": "lp",
        "stateOfOriginId": "NG-EN",
        "gender": "male",
        "metadata": {"isActive": False},
    },
]

POSITIONS = [
    {"id": "president", "name": "President"},
    {"id": "governor", "name": "Governor"},
    {"id": "senator", "name": "Senator"},
]

TOPICS = [
    {
        "id": "fuel-subsidy",
        "topicName": "Fuel Subsidy",
        "mentions": 1200,
        "category": "economy",
        "keywords": ["petrol", "pms"],
        "trendDirection": "rising",
        "urgencyLevel": "high",
        "isActive": True,
    },
    {
        "id": "insecurity",
        "topicName": "Insecurity",
        "mentions": 900,
        "category": "security",
        "keywords": ["banditry"],
        "trendDirection": "stable",
        "urgencyLevel": "medium",
    },
    {
        "id": "old-census",
        "topicName": "Old Census Debate",
        "mentions": 3,
        "category": "economy",
        "keywords": [],
        "trendDirection": "falling",
        "urgencyLevel": "low",
        "isActive": False,
    },
]

RAW_DATASETS: Dict[str, Any] = {
    "parties": {"parties": PARTIES},
    "states": {"states": STATES},
    "politicians": {"politicians": POLITICIANS},
    "positions": {"positions": POSITIONS},
    "topic-trends": {"topicTrends": TOPICS},
    "lgas": {"lgas": [{"id": "lga-ikeja", "name": "Ikeja", "stateId": "NG-LA"}]},
    "wards": {
        "wards": [
            {"id": "ward-1", "name": "Ward 1", "lgaId": "lga-ikeja", "stateId": "NG-LA"}
        ]
    },
    "pollingUnits": {
        "pollingUnits": [
            {
                "id": "pu-1",
                "wardId": "ward-1",
                "lgaId": "lga-ikeja",
                "stateId": "NG-LA",
            }
        ]
    },
}


class FakeLoader(EventEmitter):
    """In-memory stand-in for the Data Loader that counts ``load_data`` calls."""

    def __init__(self, datasets: Dict[str, Any]) -> None:
        super().__init__()
        self.datasets = copy.deepcopy(datasets)
        self.calls: Counter = Counter()
        self.failing: set = set()

    async def load_data(self, key, fetch_fn, *, cache_ttl=None, skip_cache=False):
        self.calls[key] += 1
        if key in self.failing:
            raise LoadError(f"Simulated failure loading {key}", key=key)
        if key not in self.datasets:
            raise LoadError(f"Unknown dataset {key}", key=key)
        return self.datasets[key]

    def set_data(self, key: str, data: Any) -> None:
        self.datasets[key] = data
        self.emit(LOAD_SUCCESS, {"key": key, "data": data})

    def clear_cache(self) -> None:
        self.emit(CACHE_CLEARED, {})


@pytest.fixture
def raw_datasets() -> Dict[str, Any]:
    return copy.deepcopy(RAW_DATASETS)


@pytest.fixture
def loader(raw_datasets) -> FakeLoader:
    return FakeLoader(raw_datasets)


@pytest.fixture
def config() -> ServiceConfig:
    return ServiceConfig()


@pytest.fixture
def data_dir(tmp_path: Path, raw_datasets) -> Path:
    """Write the raw datasets to disk using the standard layout."""
    root = tmp_path / "data"
    for key, payload in raw_datasets.items():
        path = root / DATASET_PATHS[key]
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")
    return root
