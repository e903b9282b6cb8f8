"""Relationship definitions and the results of consistency checks."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..errors import RelationshipError


class RelationshipDefinition(BaseModel):
    """A declared foreign key: ``source_entity.source_field -> target_entity.target_field``.

    Entity names may address nested arrays with dots, e.g.
    ``politicians.politicalHistory``.
    """

    id: str
    name: str = ""
    source_entity: str
    source_field: str
    target_entity: str
    target_field: str = "id"
    is_required: bool = False

    @field_validator("id", "source_entity", "source_field", "target_entity", "target_field")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("relationship fields must be non-empty strings")
        return v.strip()


class BrokenRelationship(BaseModel):
    relationship_id: str
    source_record_id: str
    source_value: str
    target_entity: str
    target_field: str
    reason: str


class OrphanedRecord(BaseModel):
    """A target record that no source record references."""

    entity: str
    record_id: str
    relationship_id: str


class DuplicateKey(BaseModel):
    entity: str
    field: str
    value: str
    occurrences: int


class RelationshipValidationResult(BaseModel):
    relationship_id: str
    is_valid: bool = True
    broken_relationships: List[BrokenRelationship] = Field(default_factory=list)
    orphaned_records: List[OrphanedRecord] = Field(default_factory=list)
    duplicate_keys: List[DuplicateKey] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def finding_count(self) -> int:
        return (
            len(self.broken_relationships)
            + len(self.orphaned_records)
            + len(self.duplicate_keys)
        )

    def raise_for_findings(self) -> None:
        """Raise ``RelationshipError`` when the relationship did not validate."""
        if self.is_valid:
            return
        details = [f"{self.finding_count} findings", *self.warnings]
        raise RelationshipError(
            f"Relationship {self.relationship_id} is invalid: {'; '.join(details)}",
            relationship_id=self.relationship_id,
        )


class ConsistencyReport(BaseModel):
    total_relationships: int = 0
    valid_relationships: int = 0
    broken_relationships: int = 0
    orphaned_records: int = 0
    duplicate_keys: int = 0
    last_checked: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    recommendations: List[str] = Field(default_factory=list)
    results: Dict[str, RelationshipValidationResult] = Field(default_factory=dict)

    def summary(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"results"}, mode="json")


class RepairSuggestion(BaseModel):
    """Closest existing target key for one broken reference; nothing is modified."""

    relationship_id: str
    source_record_id: str
    source_value: str
    suggested_value: Optional[str] = None
