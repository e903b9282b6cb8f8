"""Error taxonomy shared by the data layer and the services."""

from __future__ import annotations

from typing import List, Optional


class PolifilterError(Exception):
    """Base class for all polifilter errors."""


class LoadError(PolifilterError):
    """Raised when the data loader fails to produce a dataset."""

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class DatasetShapeError(LoadError):
    """Raised when a loaded payload does not contain the expected record array."""


class ConfigurationError(PolifilterError):
    """Raised for programming mistakes: unknown ids or invalid configuration."""


class ValidationError(PolifilterError):
    """A selection references an unknown or unavailable option.

    Services report these as data; ``FilterValidationResult.raise_for_errors``
    turns a failed result into this exception.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class RelationshipError(PolifilterError):
    """A relationship has broken foreign keys, duplicate keys or orphans.

    Raised only by ``RelationshipValidationResult.raise_for_findings``.
    """

    def __init__(self, message: str, relationship_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.relationship_id = relationship_id

