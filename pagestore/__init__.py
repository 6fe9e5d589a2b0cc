"""
In-memory fake of a scraping platform's job, page and output database.

This package lets scraper scripts be tested without the platform: pages
are fingerprinted the way the platform does it, outputs get identifiers
and back-references, and jobs appear as soon as something points at them.
"""

from pagestore.common.collection import KeyedCollection
from pagestore.context import ContextKind, ExecutionContext
from pagestore.data_types import StoreConfig
from pagestore.store import RecordStore

__all__ = [
    "ContextKind",
    "ExecutionContext",
    "KeyedCollection",
    "RecordStore",
    "StoreConfig",
]
