"""Record completeness scoring.

Quality is a pure function of the record and the source's field profile:

- the identity fields (``id`` plus the source's name field) must be present
  and non-blank, otherwise the record is ``poor``;
- otherwise the fraction of populated optional fields picks the tier
  (>= 0.8 excellent, >= 0.6 good, >= 0.4 fair, else poor).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

from ..models.options import DataQuality


@dataclass(frozen=True)
class QualityProfile:
    name_field: str = "name"
    optional_fields: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def identity_fields(self) -> Tuple[str, str]:
        return ("id", self.name_field)


PROFILES: Dict[str, QualityProfile] = {
    "party": QualityProfile(
        "name", ("abbreviation", "colors", "metadata", "founded", "ideology")
    ),
    "state": QualityProfile(
        "name", ("code", "capital", "region", "population", "coordinates")
    ),
    "politician": QualityProfile(
        "fullName",
        (
            "firstName",
            "lastName",
            "partyId",
            "stateOfOriginId",
            "currentPositionId",
            "gender",
            "metadata",
        ),
    ),
    "topic": QualityProfile(
        "topicName",
        ("mentions", "category", "keywords", "trendDirection", "urgencyLevel"),
    ),
}

DEFAULT_PROFILE = QualityProfile("name", ("description", "metadata"))


def _is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def completeness(record: Mapping[str, Any], profile: QualityProfile) -> float:
    if not profile.optional_fields:
        return 1.0
    populated = sum(1 for f in profile.optional_fields if _is_populated(record.get(f)))
    return populated / len(profile.optional_fields)


def assess_data_quality(
    record: Mapping[str, Any] | None, profile: QualityProfile = DEFAULT_PROFILE
) -> DataQuality:
    if not isinstance(record, Mapping):
        return DataQuality.POOR
    if not all(_is_populated(record.get(f)) for f in profile.identity_fields):
        return DataQuality.POOR
    score = completeness(record, profile)
    if score >= 0.8:
        return DataQuality.EXCELLENT
    if score >= 0.6:
        return DataQuality.GOOD
    if score >= 0.4:
        return DataQuality.FAIR
    return DataQuality.POOR


def is_quality_acceptable(quality: DataQuality, minimum: DataQuality) -> bool:
    return DataQuality(quality).rank >= DataQuality(minimum).rank
