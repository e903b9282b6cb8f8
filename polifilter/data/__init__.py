"""Raw dataset access for polifilter.

Modules:
- loader: Async, memoizing Data Loader publishing load/cache notifications
- sources: JSON file and HTTP fetchers plus the dataset key catalog
"""

from .loader import DataLoader
from .sources import (
    DATASET_PATHS,
    DatasetCatalog,
    extract_records,
    json_file_fetcher,
    url_fetcher,
)

__all__ = [
    "DATASET_PATHS",
    "DataLoader",
    "DatasetCatalog",
    "extract_records",
    "json_file_fetcher",
    "url_fetcher",
]
