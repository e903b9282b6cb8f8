"""The three cooperating services and their shared building blocks.

Submodules are imported lazily on attribute access, so ``polifilter.data``
can depend on ``services.cache`` without pulling the services in.
"""

from importlib import import_module
from typing import Any

__all__ = [
    "FilterService",
    "DropdownService",
    "ConsistencyService",
    "OptionGenerator",
    "TTLCache",
    "SingleFlight",
    "BackgroundTasks",
    "assess_data_quality",
    "load_relationships",
]


_ATTR_TO_MODULE = {
    "FilterService": "polifilter.services.filters",
    "DropdownService": "polifilter.services.dropdowns",
    "ConsistencyService": "polifilter.services.consistency",
    "load_relationships": "polifilter.services.consistency",
    "OptionGenerator": "polifilter.services.generators",
    "TTLCache": "polifilter.services.cache",
    "SingleFlight": "polifilter.services.single_flight",
    "BackgroundTasks": "polifilter.services.single_flight",
    "assess_data_quality": "polifilter.services.quality",
}


def __getattr__(name: str) -> Any:  # PEP 562 lazy attribute access
    if name in _ATTR_TO_MODULE:
        mod = import_module(_ATTR_TO_MODULE[name])
        return getattr(mod, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
