"""Immutable raw batch files, one per collected listing page."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from bidharvest.config import DateWindow, OutputLayout
from bidharvest.errors import StorageError
from bidharvest.normalize.schema import Batch, BatchItem, BatchMetadata, DateRange

logger = logging.getLogger(__name__)

BATCH_PREFIX = "batch_"
BATCH_PATTERN = re.compile(r"^batch_(\d+)\.json$")
_SOURCE_SLUG = re.compile(r"[^a-z0-9-]+")


def utc_stamp(moment: datetime | None = None) -> str:
    return (moment or datetime.now(tz=UTC)).astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def generate_session_name(source: str, window: DateWindow, started_at: datetime | None = None) -> str:
    """``session_<source>_<from>[_<to>]_<epoch ms>``; the end date is omitted for one-day windows."""

    started = started_at or datetime.now(tz=UTC)
    slug = _SOURCE_SLUG.sub("-", source.strip().lower()).strip("-") or "source"
    parts = ["session", slug, window.start.isoformat()]
    if window.end != window.start:
        parts.append(window.end.isoformat())
    parts.append(str(int(started.timestamp() * 1000)))
    return "_".join(parts)


def create_session_directory(layout: OutputLayout, session_name: str) -> Path:
    session_dir = layout.source_dir / session_name
    try:
        session_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(session_dir, "create session directory", str(exc)) from exc
    return session_dir


def batch_path(session_dir: Path, batch_number: int) -> Path:
    return session_dir / f"{BATCH_PREFIX}{batch_number}.json"


def write_json_atomic(payload: dict[str, Any], output_path: Path, *, overwrite: bool = True) -> None:
    temp_path = output_path.parent / f"{output_path.name}.{uuid4().hex}.tmp"
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        if not overwrite and output_path.exists():
            raise FileExistsError(output_path)
        temp_path.replace(output_path)
    except FileExistsError as exc:
        raise StorageError(output_path, "write", "file already exists") from exc
    except OSError as exc:
        raise StorageError(output_path, "write", str(exc)) from exc
    finally:
        if temp_path.exists():
            temp_path.unlink()


def write_batch(session_dir: Path, batch_number: int, batch: Batch) -> Path:
    """Write ``batch_<n>.json``. An existing batch file is never replaced."""

    path = batch_path(session_dir, batch_number)
    if path.exists():
        raise StorageError(path, "write batch", "batch files are immutable and this one already exists")
    write_json_atomic(batch.to_wire(), path, overwrite=False)
    logger.info("Wrote %s with %d items", path, len(batch.items))
    return path


def list_batch_files(session_dir: Path) -> list[Path]:
    numbered: list[tuple[int, Path]] = []
    for candidate in session_dir.glob(f"{BATCH_PREFIX}*.json"):
        match = BATCH_PATTERN.match(candidate.name)
        if match:
            numbered.append((int(match.group(1)), candidate))
    numbered.sort(key=lambda item: item[0])
    return [path for _, path in numbered]


def _load_json(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise StorageError(path, "read batch", str(exc)) from exc
    except json.JSONDecodeError as exc:
        raise StorageError(path, "read batch", f"invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise StorageError(path, "read batch", "expected a JSON object")
    return payload


def read_batch(path: Path) -> Batch:
    """Parse one batch file; items that fail the raw schema are dropped with a warning."""

    payload = _load_json(path)
    try:
        metadata = BatchMetadata.model_validate(payload.get("metadata") or {})
    except ValidationError as exc:
        raise StorageError(path, "read batch", f"invalid metadata: {exc.error_count()} errors") from exc

    items: list[BatchItem] = []
    raw_items = payload.get("items") or []
    for index, raw_item in enumerate(raw_items):
        try:
            items.append(BatchItem.model_validate(raw_item))
        except ValidationError as exc:
            logger.warning("Skipping item %d in %s: %s", index, path.name, exc)
    return Batch(metadata=metadata, items=items)


def read_batches(session_dir: Path) -> list[Batch]:
    if not session_dir.is_dir():
        raise StorageError(session_dir, "read session", "not a directory")
    return [read_batch(path) for path in list_batch_files(session_dir)]


@dataclass(slots=True)
class BatchWriter:
    """Numbers and writes the batches of one collection session."""

    session_dir: Path
    session_id: str
    source: str
    source_url: str
    window: DateWindow
    next_batch_number: int = 1
    written: list[Path] = field(default_factory=list)

    def write(self, items: list[BatchItem], scraped_at: datetime | None = None) -> Path:
        metadata = BatchMetadata(
            scraped_at=utc_stamp(scraped_at),
            source=self.source,
            source_url=self.source_url,
            date_range=DateRange(start=self.window.start.isoformat(), end=self.window.end.isoformat()),
            total_items=len(items),
            session_id=self.session_id,
            batch_number=self.next_batch_number,
        )
        path = write_batch(self.session_dir, self.next_batch_number, Batch(metadata=metadata, items=items))
        self.written.append(path)
        self.next_batch_number += 1
        return path
