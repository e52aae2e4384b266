from __future__ import annotations

from .collector import CollectionController, CollectionStats
from .downloads import DocumentDownloader, sanitize_file_name
from .http import PoliteHttpClient
from .listing import ListingEntry, ListingParser
from .registry import get_site, register_sites

__all__ = [
    "CollectionController",
    "CollectionStats",
    "DocumentDownloader",
    "ListingEntry",
    "ListingParser",
    "PoliteHttpClient",
    "get_site",
    "register_sites",
    "sanitize_file_name",
]
