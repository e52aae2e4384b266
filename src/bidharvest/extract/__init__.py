from __future__ import annotations

from .accessor import DocumentAccessor, Element, SoupDocument
from .record import RecordExtractor
from .resolver import resolve

__all__ = ["DocumentAccessor", "Element", "RecordExtractor", "SoupDocument", "resolve"]
