"""polifilter: reactive filter options for political reference data.

This package derives selectable, validated filter and dropdown options from raw
reference datasets (parties, states, politicians, topics, platforms) and
checks referential integrity between those datasets.
"""

__version__ = "0.1.0"
