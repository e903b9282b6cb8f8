"""Explicit wiring of the loader and the three services.

Build one ``AppContext`` at start-up and pass it (or its services) to
whatever needs them; tests build their own isolated contexts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional

from .config import ServiceConfig, configure_logging
from .data.loader import DataLoader
from .data.sources import DatasetCatalog
from .models.consistency import RelationshipDefinition
from .services.consistency import ConsistencyService, load_relationships
from .services.dropdowns import DropdownService
from .services.filters import FilterService

logger = logging.getLogger(__name__)


class AppContext:
    """Holds the loader, catalog and services built from one ``ServiceConfig``."""

    def __init__(
        self,
        config: ServiceConfig,
        loader: Any,
        catalog: DatasetCatalog,
        filters: FilterService,
        dropdowns: DropdownService,
        consistency: ConsistencyService,
    ) -> None:
        self.config = config
        self.loader = loader
        self.catalog = catalog
        self.filters = filters
        self.dropdowns = dropdowns
        self.consistency = consistency
        self._closed = False

    @classmethod
    def build(
        cls,
        config: Optional[ServiceConfig] = None,
        *,
        loader: Any = None,
        catalog: Optional[DatasetCatalog] = None,
        relationships: Optional[Iterable[RelationshipDefinition]] = None,
        register_default_dropdowns: bool = True,
        setup_logging: bool = False,
    ) -> "AppContext":
        """Construct and wire every component.

        The stock dropdowns are registered without loading; call
        ``dropdowns.load_dropdown_data`` or ``refresh_all_dropdowns`` to fill them.
        """
        config = config or ServiceConfig()
        if setup_logging:
            configure_logging(config.log_level)
        catalog = catalog or DatasetCatalog(
            data_dir=config.data_dir,
            base_url=config.base_url,
            timeout=config.loader_timeout,
        )
        if loader is None:
            loader = DataLoader(
                cache_ttl=config.loader_cache_ttl,
                retries=config.loader_retries,
                retry_delay=config.loader_retry_delay,
                timeout=config.loader_timeout,
            )
        if relationships is None:
            relationships = load_relationships(config.relationships_file)

        filters = FilterService(loader, config, catalog)
        dropdowns = DropdownService(loader, config, catalog, filter_service=filters)
        consistency = ConsistencyService(
            loader,
            catalog,
            relationships,
            enable_real_time_updates=config.enable_real_time_updates,
        )
        if register_default_dropdowns:
            dropdowns.register_default_dropdowns(load=False)
        logger.debug(f"Application context built (data_dir={config.data_dir})")
        return cls(config, loader, catalog, filters, dropdowns, consistency)

    async def drain(self) -> None:
        """Wait until refreshes triggered by notifications have settled."""
        services = (self.filters, self.dropdowns, self.consistency)
        while any(s.pending_tasks for s in services):
            await asyncio.gather(*(s.drain() for s in services))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.dropdowns.destroy()
        self.filters.destroy()
        self.consistency.destroy()
        remove_all = getattr(self.loader, "remove_all_listeners", None)
        if callable(remove_all):
            remove_all()

    def __enter__(self) -> "AppContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
