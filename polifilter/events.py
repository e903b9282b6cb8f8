"""Minimal observer used by the loader and the services to publish notifications."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], Any]

# Data loader
LOAD_SUCCESS = "load-success"
LOAD_ERROR = "load-error"
CACHE_HIT = "cache-hit"
CACHE_CLEARED = "cache-cleared"

# Filter service
CATEGORY_UPDATING = "category-updating"
CATEGORY_UPDATED = "category-updated"
CATEGORY_ERROR = "category-error"
FILTERS_UPDATED = "filters-updated"

# Dropdown service
DROPDOWN_LOADING = "dropdown-loading"
DROPDOWN_LOADED = "dropdown-loaded"
DROPDOWN_ERROR = "dropdown-error"
DROPDOWN_SEARCHED = "dropdown-searched"
DROPDOWN_SELECTION_CHANGED = "dropdown-selection-changed"

# Consistency service
DATA_UPDATED = "data-updated"
RELATIONSHIP_VALIDATED = "relationship-validated"
RELATIONSHIP_ADDED = "relationship-added"
RELATIONSHIP_REMOVED = "relationship-removed"


class EventEmitter:
    """Register/unregister callbacks by event name and fan payloads out to them.

    Every listener receives a single ``dict`` payload. A listener that raises
    is logged and skipped so one faulty subscriber cannot break the emitter or
    the other subscribers.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, callback: Listener) -> Callable[[], None]:
        """Subscribe ``callback`` to ``event``; returns an unsubscribe function."""
        self._listeners.setdefault(event, []).append(callback)
        return lambda: self.off(event, callback)

    def once(self, event: str, callback: Listener) -> Callable[[], None]:
        def _wrapper(payload: Dict[str, Any]) -> Any:
            self.off(event, _wrapper)
            return callback(payload)

        return self.on(event, _wrapper)

    def off(self, event: str, callback: Listener) -> None:
        callbacks = self._listeners.get(event)
        if not callbacks:
            return
        self._listeners[event] = [cb for cb in callbacks if cb is not callback]

    def emit(self, event: str, payload: Dict[str, Any] | None = None) -> None:
        data = payload if payload is not None else {}
        # Copy so listeners may unsubscribe while being notified
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    f"Listener for '{event}' raised: {str(e)}", exc_info=True
                )

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)
