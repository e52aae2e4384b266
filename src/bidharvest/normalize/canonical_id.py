from __future__ import annotations

import hashlib
from typing import Optional

ID_LENGTH = 16


def _normalize_key(value: Optional[str]) -> str:
    if value is None:
        return ""
    return " ".join(value.strip().split())


def generate_id(value: str, prefix: Optional[str] = None) -> str:
    """First 16 hex characters of the SHA-256 of ``value``, optionally prefixed."""

    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:ID_LENGTH]
    return f"{prefix}-{digest}" if prefix else digest


def entity_id(kind: str, source: str, natural_key: Optional[str]) -> str:
    """Deterministic id for a normalized entity.

    The same ``(source, natural_key)`` always yields the same id, which is what
    lets re-runs over overlapping batches converge.
    """

    return generate_id(f"{_normalize_key(source).lower()}-{_normalize_key(natural_key)}", prefix=kind)


def contract_id(source: str, external_id: str) -> str:
    return entity_id("contract", source, external_id)


def agency_id(source: str, agency_key: str) -> str:
    return entity_id("agency", source, agency_key.lower())


def person_id(source: str, person_key: str) -> str:
    return entity_id("person", source, person_key.lower())


def document_id(source: str, document_key: str) -> str:
    return entity_id("document", source, document_key)
