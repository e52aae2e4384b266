"""Deduplicate normalized entities and validate the final aggregate."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from operator import attrgetter
from typing import Callable, Hashable, Iterable, TypeVar

from pydantic import ValidationError

from bidharvest.errors import SchemaValidationError
from .engine import TransformResult
from .schema import IntakeMetadata, OutputAggregate

logger = logging.getLogger(__name__)

T = TypeVar("T")

_VALUE_ERROR_PREFIX = "Value error, "


def deduplicate_by(items: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Keep the first item seen for each key, preserving discovery order."""

    seen: set[Hashable] = set()
    kept: list[T] = []
    for item in items:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        kept.append(item)
    return kept


def _violations(exc: ValidationError) -> list[str]:
    violations: list[str] = []
    for error in exc.errors():
        message = str(error.get("msg", ""))
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        location = ".".join(str(part) for part in error.get("loc", ()))
        for part in message.split("; "):
            violations.append(f"{location}: {part}" if location else part)
    return violations


def build_output(
    result: TransformResult,
    *,
    source: str,
    processed_at: str | None = None,
    session_id: str | None = None,
) -> OutputAggregate:
    """Collapse duplicates by id and validate; raises ``SchemaValidationError``."""

    by_id = attrgetter("id")
    contracts = deduplicate_by(result.contracts, by_id)
    agencies = deduplicate_by(result.agencies, by_id)
    documents = deduplicate_by(result.documents, by_id)
    people = deduplicate_by(result.people, by_id)

    dropped = (
        len(result.contracts) + len(result.agencies) + len(result.documents) + len(result.people)
        - len(contracts) - len(agencies) - len(documents) - len(people)
    )
    if dropped:
        logger.info("Collapsed %d duplicate entities", dropped)

    processed = processed_at or datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")
    try:
        return OutputAggregate(
            contracts=contracts,
            agencies=agencies,
            documents=documents,
            people=people,
            metadata=IntakeMetadata(
                processed_at=processed,
                source=source,
                total_contracts=len(contracts),
                total_agencies=len(agencies),
                total_documents=len(documents),
                total_people=len(people),
                session_id=session_id,
            ),
        )
    except ValidationError as exc:
        raise SchemaValidationError(_violations(exc)) from exc
