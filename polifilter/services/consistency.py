"""Cross-dataset consistency checks.

Validates declared foreign keys between the reference datasets, detects
duplicate primary keys and orphaned target records, and rolls the results up
into a ``ConsistencyReport``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import yaml

from ..data.sources import DatasetCatalog, extract_records
from ..errors import ConfigurationError
from ..events import (
    DATA_UPDATED,
    LOAD_SUCCESS,
    RELATIONSHIP_ADDED,
    RELATIONSHIP_REMOVED,
    RELATIONSHIP_VALIDATED,
    EventEmitter,
)
from ..models.consistency import (
    BrokenRelationship,
    ConsistencyReport,
    DuplicateKey,
    OrphanedRecord,
    RelationshipDefinition,
    RelationshipValidationResult,
    RepairSuggestion,
)
from .single_flight import BackgroundTasks

logger = logging.getLogger(__name__)

DEFAULT_RELATIONSHIPS_FILE = Path(__file__).resolve().parent.parent / "relationships.yaml"


def load_relationships(path: Path | str | None = None) -> List[RelationshipDefinition]:
    """Read relationship definitions from a YAML file (the packaged table by default)."""
    file_path = Path(path) if path else DEFAULT_RELATIONSHIPS_FILE
    if not file_path.exists():
        raise FileNotFoundError(f"Relationships file not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    items = data.get("relationships", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ConfigurationError(f"{file_path}: 'relationships' must be a list")
    try:
        return [RelationshipDefinition(**item) for item in items]
    except Exception as e:
        raise ConfigurationError(f"Invalid relationship in {file_path}: {e}") from e


def get_field_value(record: Any, field_path: str) -> Any:
    """Follow a dotted path through nested dicts; None when any hop is missing."""
    value = record
    for part in field_path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _key(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value)
    return s if s.strip() else None


def _record_id(record: Dict[str, Any]) -> str:
    return _key(record.get("id")) or "unknown"


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def recommendation_for(
    relationship: RelationshipDefinition, result: RelationshipValidationResult
) -> Optional[str]:
    """One line of advice for a relationship, or None when it has no findings."""
    total = result.finding_count
    if total == 0:
        return None
    if total >= 50:
        priority = "High priority"
    elif total >= 10:
        priority = "Medium priority"
    else:
        priority = "Low priority"
    actions = []
    if result.broken_relationships:
        actions.append(f"fix {_plural(len(result.broken_relationships), 'broken reference')}")
    if result.orphaned_records:
        actions.append(f"review {_plural(len(result.orphaned_records), 'orphaned record')}")
    if result.duplicate_keys:
        actions.append(f"resolve {_plural(len(result.duplicate_keys), 'duplicate key')}")
    link = (
        f"{relationship.source_entity}.{relationship.source_field} -> "
        f"{relationship.target_entity}.{relationship.target_field}"
    )
    return f"{priority}: {' and '.join(actions)} in {relationship.id} ({link})"


class ConsistencyService(EventEmitter):
    """Validates declared relationships between datasets.

    Emits ``relationship-validated``, ``relationship-added``,
    ``relationship-removed`` and ``data-updated``.
    """

    def __init__(
        self,
        loader: Any,
        catalog: Optional[DatasetCatalog] = None,
        relationships: Optional[Iterable[RelationshipDefinition]] = None,
        enable_real_time_updates: bool = True,
    ) -> None:
        super().__init__()
        self.loader = loader
        self.catalog = catalog or DatasetCatalog()
        self._relationships: Dict[str, RelationshipDefinition] = {}
        # relationship id -> target key -> target record
        self._indexes: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._results: Dict[str, RelationshipValidationResult] = {}
        self._tasks = BackgroundTasks()
        self._unsubscribe: List[Callable[[], None]] = []

        defs = relationships if relationships is not None else load_relationships()
        for definition in defs:
            self._relationships[definition.id] = definition
        if enable_real_time_updates:
            on = getattr(loader, "on", None)
            if callable(on):
                self._unsubscribe.append(on(LOAD_SUCCESS, self._on_load_success))

    # --------------------------
    # Relationship registry
    # --------------------------
    def add_relationship(self, definition: RelationshipDefinition) -> None:
        self._relationships[definition.id] = definition
        self._indexes.pop(definition.id, None)
        self._results.pop(definition.id, None)
        self.emit(RELATIONSHIP_ADDED, {"relationship_id": definition.id})

    def remove_relationship(self, relationship_id: str) -> None:
        self._require(relationship_id)
        del self._relationships[relationship_id]
        self._indexes.pop(relationship_id, None)
        self._results.pop(relationship_id, None)
        self.emit(RELATIONSHIP_REMOVED, {"relationship_id": relationship_id})

    def list_relationships(self) -> List[RelationshipDefinition]:
        return list(self._relationships.values())

    def _require(self, relationship_id: str) -> RelationshipDefinition:
        definition = self._relationships.get(relationship_id)
        if definition is None:
            raise ConfigurationError(f"Unknown relationship: {relationship_id}")
        return definition

    # --------------------------
    # Data access
    # --------------------------
    async def get_entity_records(self, entity_path: str) -> List[Dict[str, Any]]:
        """Load the records of ``entity_path``; dotted paths flatten nested arrays.

        ``politicians.politicalHistory`` yields every history entry of every
        politician.
        """
        main, _, nested = entity_path.partition(".")
        payload = await self.loader.load_data(main, self.catalog.fetcher(main))
        records = extract_records(payload, self.catalog.root_key(main))
        if not nested:
            return records
        flattened: List[Dict[str, Any]] = []
        for record in records:
            items = get_field_value(record, nested)
            if isinstance(items, list):
                flattened.extend(i for i in items if isinstance(i, dict))
        return flattened

    # --------------------------
    # Validation
    # --------------------------
    async def validate_relationship(
        self, relationship_id: str, *, include_orphans: bool = False
    ) -> RelationshipValidationResult:
        """Check one relationship.

        Load failures are reported as warnings with ``is_valid=False``.

        Raises:
            ConfigurationError: If ``relationship_id`` is not declared
        """
        rel = self._require(relationship_id)
        result = RelationshipValidationResult(relationship_id=relationship_id)
        try:
            source = await self.get_entity_records(rel.source_entity)
            target = await self.get_entity_records(rel.target_entity)
        except Exception as e:
            logger.warning(f"Could not load data for {relationship_id}: {e}")
            result.is_valid = False
            result.warnings.append(f"Missing data for relationship {relationship_id}: {e}")
            self._results[relationship_id] = result
            self.emit(
                RELATIONSHIP_VALIDATED,
                {"relationship_id": relationship_id, "result": result},
            )
            return result

        index: Dict[str, Dict[str, Any]] = {}
        occurrences: Counter = Counter()
        for record in target:
            key = _key(get_field_value(record, rel.target_field))
            if key is None:
                continue
            occurrences[key] += 1
            index.setdefault(key, record)
        result.duplicate_keys = [
            DuplicateKey(
                entity=rel.target_entity, field=rel.target_field, value=k, occurrences=n
            )
            for k, n in occurrences.items()
            if n > 1
        ]

        referenced = set()
        missing = 0
        for record in source:
            raw = get_field_value(record, rel.source_field)
            values = raw if isinstance(raw, list) else [raw]
            keys = [k for k in (_key(v) for v in values) if k is not None]
            if not keys:
                if rel.is_required:
                    missing += 1
                continue
            for key in keys:
                referenced.add(key)
                if key not in index:
                    result.broken_relationships.append(
                        BrokenRelationship(
                            relationship_id=relationship_id,
                            source_record_id=_record_id(record),
                            source_value=key,
                            target_entity=rel.target_entity,
                            target_field=rel.target_field,
                            reason=f"Target record not found: {key}",
                        )
                    )
        if missing:
            result.warnings.append(
                f"missing_references: {_plural(missing, 'record')} in "
                f"{rel.source_entity} lack required field {rel.source_field}"
            )

        if include_orphans:
            result.orphaned_records = [
                OrphanedRecord(entity=rel.target_entity, record_id=k, relationship_id=relationship_id)
                for k in index
                if k not in referenced
            ]

        result.is_valid = result.finding_count == 0
        self._indexes[relationship_id] = index
        self._results[relationship_id] = result
        self.emit(RELATIONSHIP_VALIDATED, {"relationship_id": relationship_id, "result": result})
        return result

    async def validate_all_relationships(
        self, include_orphans: bool = False
    ) -> Dict[str, RelationshipValidationResult]:
        results: Dict[str, RelationshipValidationResult] = {}
        for relationship_id in list(self._relationships):
            results[relationship_id] = await self.validate_relationship(
                relationship_id, include_orphans=include_orphans
            )
        return results

    async def generate_consistency_report(
        self, include_orphans: bool = False
    ) -> ConsistencyReport:
        """Recompute every relationship and summarize the findings."""
        results = await self.validate_all_relationships(include_orphans=include_orphans)
        report = ConsistencyReport(
            total_relationships=len(results),
            last_checked=datetime.now(timezone.utc),
            results=results,
        )
        for relationship_id, result in results.items():
            if result.is_valid:
                report.valid_relationships += 1
            report.broken_relationships += len(result.broken_relationships)
            report.orphaned_records += len(result.orphaned_records)
            report.duplicate_keys += len(result.duplicate_keys)
            advice = recommendation_for(self._relationships[relationship_id], result)
            if advice:
                report.recommendations.append(advice)
        logger.info(
            f"Consistency report: {report.valid_relationships}/{report.total_relationships} "
            f"relationships valid"
        )
        return report

    async def suggest_repairs(self, relationship_id: str) -> List[RepairSuggestion]:
        """Closest existing target key for each broken reference.

        Exact case-insensitive match wins over a substring match.
        """
        result = await self.validate_relationship(relationship_id)
        keys = list(self._indexes.get(relationship_id, {}))
        suggestions = []
        for broken in result.broken_relationships:
            needle = broken.source_value.casefold()
            match = next((k for k in keys if k.casefold() == needle), None)
            if match is None:
                match = next((k for k in keys if needle in k.casefold()), None)
            suggestions.append(
                RepairSuggestion(
                    relationship_id=relationship_id,
                    source_record_id=broken.source_record_id,
                    source_value=broken.source_value,
                    suggested_value=match,
                )
            )
        return suggestions

    # --------------------------
    # Lookups
    # --------------------------
    def get_related_record(
        self, relationship_id: str, source_value: Any
    ) -> Optional[Dict[str, Any]]:
        """Target record for ``source_value`` from the last validation's key index."""
        self._require(relationship_id)
        key = _key(source_value)
        if key is None:
            return None
        return self._indexes.get(relationship_id, {}).get(key)

    def get_all_related_records(
        self, source_entity: str, source_record: Dict[str, Any]
    ) -> Dict[str, Dict[str, Any]]:
        related: Dict[str, Dict[str, Any]] = {}
        for rel in self._relationships.values():
            if rel.source_entity != source_entity:
                continue
            target = self.get_related_record(
                rel.id, get_field_value(source_record, rel.source_field)
            )
            if target is not None:
                related[rel.id] = target
        return related

    def get_validation_result(self, relationship_id: str) -> Optional[RelationshipValidationResult]:
        self._require(relationship_id)
        return self._results.get(relationship_id)

    # --------------------------
    # Real-time updates
    # --------------------------
    def affected_relationships(self, data_key: str) -> List[str]:
        prefix = f"{data_key}."
        return [
            r.id
            for r in self._relationships.values()
            if data_key in (r.source_entity, r.target_entity)
            or r.source_entity.startswith(prefix)
            or r.target_entity.startswith(prefix)
        ]

    def _on_load_success(self, payload: Dict[str, Any]) -> None:
        key = payload.get("key")
        if key:
            self._tasks.spawn(self.handle_data_update(str(key)))

    async def handle_data_update(self, data_key: str) -> List[str]:
        affected = self.affected_relationships(data_key)
        for relationship_id in affected:
            self._indexes.pop(relationship_id, None)
        await asyncio.gather(*(self.validate_relationship(r) for r in affected))
        self.emit(
            DATA_UPDATED, {"data_key": data_key, "affected_relationships": affected}
        )
        return affected

    async def drain(self) -> None:
        await self._tasks.drain()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # --------------------------
    # Introspection / lifecycle
    # --------------------------
    def clear_caches(self) -> None:
        self._indexes.clear()
        self._results.clear()

    def get_relationship_statistics(self) -> Dict[str, Any]:
        validated = list(self._results.values())
        return {
            "total_relationships": len(self._relationships),
            "validated_relationships": len(validated),
            "valid_relationships": sum(1 for r in validated if r.is_valid),
            "cached_indexes": len(self._indexes),
        }

    def destroy(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        self._tasks.cancel_all()
        self.clear_caches()
        self.remove_all_listeners()
