"""Normalized intake files, contract deltas and guardrails."""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from bidharvest.config import OutputLayout
from bidharvest.errors import StorageError
from bidharvest.normalize.schema import OutputAggregate
from .batches import write_json_atomic

logger = logging.getLogger(__name__)

INTAKE_PREFIX = "intake_"
CHANGES_PREFIX = "changes_"
INTAKE_PATTERN = re.compile(r"^intake_(?P<source>.+)_(?P<stamp>\d{8}T\d{9}Z)\.json$")

CONTRACT_COLUMNS = ["id", "externalId", "title", "status", "closingAt", "amount", "sourceUrl"]
TRACKED_DIFF_FIELDS = ("title", "status", "closingAt", "amount")


def _stamp(moment: datetime | None = None) -> str:
    """UTC stamp with millisecond resolution, e.g. ``20240108T060000123Z``."""

    stamped = (moment or datetime.now(tz=UTC)).astimezone(UTC)
    return f"{stamped.strftime('%Y%m%dT%H%M%S')}{stamped.microsecond // 1000:03d}Z"


def intake_filename(source: str, moment: datetime | None = None) -> str:
    return f"{INTAKE_PREFIX}{source}_{_stamp(moment)}.json"


def write_intake_output(
    layout: OutputLayout,
    aggregate: OutputAggregate,
    *,
    written_at: datetime | None = None,
) -> Path:
    output_path = layout.intake_dir / intake_filename(aggregate.metadata.source, written_at)
    write_json_atomic(aggregate.to_wire(), output_path, overwrite=False)
    logger.info(
        "Wrote %s (%d contracts, %d agencies, %d documents, %d people)",
        output_path,
        aggregate.metadata.total_contracts,
        aggregate.metadata.total_agencies,
        aggregate.metadata.total_documents,
        aggregate.metadata.total_people,
    )
    return output_path


def write_changes(layout: OutputLayout, source: str, delta: dict[str, Any], *, written_at: datetime | None = None) -> Path:
    output_path = layout.intake_dir / f"{CHANGES_PREFIX}{source}_{_stamp(written_at)}.json"
    write_json_atomic(delta, output_path, overwrite=False)
    return output_path


def list_intake_files(intake_dir: Path, source: str) -> list[Path]:
    found: list[tuple[str, Path]] = []
    for candidate in intake_dir.glob(f"{INTAKE_PREFIX}*.json"):
        match = INTAKE_PATTERN.match(candidate.name)
        if not match or match.group("source") != source:
            continue
        found.append((match.group("stamp"), candidate))
    found.sort(key=lambda item: item[0])
    return [item[1] for item in found]


def find_prior_intake(intake_dir: Path, source: str, *, exclude: Path | None = None) -> Path | None:
    candidates = [path for path in list_intake_files(intake_dir, source) if exclude is None or path != exclude]
    return candidates[-1] if candidates else None


def load_intake_contracts(path: Path) -> pd.DataFrame:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageError(path, "read intake", str(exc)) from exc
    contracts = payload.get("contracts", []) if isinstance(payload, dict) else []
    return contracts_frame(contracts)


def contracts_frame(contracts: list[dict[str, Any]]) -> pd.DataFrame:
    if not contracts:
        return pd.DataFrame(columns=CONTRACT_COLUMNS)
    df = pd.DataFrame(contracts)
    for column in CONTRACT_COLUMNS:
        if column not in df.columns:
            df[column] = None
    return df[CONTRACT_COLUMNS]


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if pd.isna(value):
        return None
    if hasattr(value, "item"):
        return value.item()
    return value


def _records_by_id(df: pd.DataFrame) -> dict[str, dict[str, Any]]:
    if df.empty:
        return {}
    keyed = df.set_index("id", drop=False).to_dict(orient="index")
    return {str(key): value for key, value in keyed.items()}


def build_delta(current_df: pd.DataFrame, prior_df: pd.DataFrame | None) -> dict[str, Any]:
    prior = prior_df if prior_df is not None else pd.DataFrame(columns=current_df.columns)
    current_records = _records_by_id(current_df)
    prior_records = _records_by_id(prior)

    current_ids = set(current_records)
    prior_ids = set(prior_records)

    added = [_jsonable(current_records[contract_id]) for contract_id in sorted(current_ids - prior_ids)]
    removed = [_jsonable(prior_records[contract_id]) for contract_id in sorted(prior_ids - current_ids)]

    changed: list[dict[str, Any]] = []
    for contract_id in sorted(current_ids & prior_ids):
        old_record = prior_records[contract_id]
        new_record = current_records[contract_id]
        fields_changed: dict[str, Any] = {}
        for field in TRACKED_DIFF_FIELDS:
            old_value = _jsonable(old_record.get(field))
            new_value = _jsonable(new_record.get(field))
            if old_value != new_value:
                fields_changed[field] = {"old": old_value, "new": new_value}
        if fields_changed:
            changed.append({"id": contract_id, "fields_changed": fields_changed})

    return {"added": added, "removed": removed, "changed": changed}


def _missing_text(series: pd.Series) -> pd.Series:
    return series.isna() | series.astype(str).str.strip().eq("")


def missing_title_or_source_count(df: pd.DataFrame) -> int:
    if df.empty:
        return 0
    return int((_missing_text(df["title"]) | _missing_text(df["sourceUrl"])).sum())


def build_guardrail_warnings(
    *,
    prior_count: int | None,
    current_count: int,
    missing_title_or_source_count: int,
) -> list[str]:
    warnings: list[str] = []
    if prior_count and prior_count > 0 and current_count < (prior_count * 0.5):
        warnings.append(
            f"Contract count dropped by more than 50% vs prior intake "
            f"({current_count} vs {prior_count})."
        )
    if current_count > 0:
        missing_ratio = missing_title_or_source_count / current_count
        if missing_ratio > 0.05:
            warnings.append(
                f"More than 5% of contracts are missing title or sourceUrl "
                f"({missing_title_or_source_count}/{current_count}, {missing_ratio:.1%})."
            )
    return warnings
