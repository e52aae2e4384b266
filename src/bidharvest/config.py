from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from bidharvest.errors import UsageError

_RANGE_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2}),(\d{4}-\d{2}-\d{2})$")


@dataclass(frozen=True, slots=True)
class DateWindow:
    """Inclusive range of UTC calendar days used to admit listing items."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise UsageError(
                f"Start date must not be after end date ({self.start.isoformat()} > {self.end.isoformat()})."
            )

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end

    def is_before(self, value: date) -> bool:
        return value < self.start

    def to_dict(self) -> dict[str, str]:
        return {"from": self.start.isoformat(), "to": self.end.isoformat()}


def today_utc(now: datetime | None = None) -> date:
    return (now or datetime.now(tz=UTC)).astimezone(UTC).date()


def today_window(now: datetime | None = None) -> DateWindow:
    today = today_utc(now)
    return DateWindow(start=today, end=today)


def yesterday_window(now: datetime | None = None) -> DateWindow:
    yesterday = today_utc(now) - timedelta(days=1)
    return DateWindow(start=yesterday, end=yesterday)


def parse_date_range(raw: str) -> DateWindow:
    """Parse ``YYYY-MM-DD,YYYY-MM-DD`` into a window; any other shape is a usage error."""

    cleaned = re.sub(r"\s+", ",", raw.strip())
    match = _RANGE_PATTERN.match(cleaned)
    if not match:
        raise UsageError(f"Invalid date range '{raw}'. Expected YYYY-MM-DD,YYYY-MM-DD.")
    try:
        start = date.fromisoformat(match.group(1))
        end = date.fromisoformat(match.group(2))
    except ValueError as exc:
        raise UsageError(f"Invalid date in range '{raw}': {exc}") from exc
    return DateWindow(start=start, end=end)


def _frozen(mapping: Mapping[str, tuple[str, ...]] | None) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True, slots=True)
class SiteConfig:
    """Per-website settings handed to the collector and record extractor."""

    name: str
    base_url: str
    search_url: str
    listing_row_selectors: tuple[str, ...] = (
        "table tbody tr",
        ".table tbody tr",
        "table tr",
    )
    link_selectors: tuple[str, ...] = ("td:nth-of-type(2) a", "td a", "a[href]")
    id_column: int = 1
    title_column: int = 2
    date_columns: tuple[int, int] = (3, 6)
    header_row_hints: tuple[str, ...] = ("id", "title", "description", "opendate", "open date")
    sort_params: tuple[tuple[str, str], ...] = ()
    page_path_template: str = "/Index/Size/{size}/Page/{page}"
    descending_by_date: bool = True
    field_labels: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "field_labels", _frozen(self.field_labels))

    def labels_for(self, field_name: str) -> tuple[str, ...]:
        return tuple(self.field_labels.get(field_name, ()))


@dataclass(frozen=True, slots=True)
class CollectorSettings:
    page_size: int = 50
    max_pages: int = 10
    item_delay_seconds: float = 1.5
    page_delay_seconds: float = 2.0
    settle_delay_seconds: float = 0.5
    early_stop: bool | None = None
    download_documents: bool = True
    download_max_retries: int = 3
    download_initial_delay_seconds: float = 1.0

    def early_stop_for(self, site: SiteConfig) -> bool:
        # Early stop is only sound when the listing is sorted newest-first.
        if self.early_stop is None:
            return site.descending_by_date
        return self.early_stop and site.descending_by_date


@dataclass(frozen=True, slots=True)
class OutputLayout:
    root: Path

    @property
    def source_dir(self) -> Path:
        return self.root / "source"

    @property
    def intake_dir(self) -> Path:
        return self.root / "intake"

    @property
    def documents_dir(self) -> Path:
        return self.root / "documents"

    @property
    def reports_dir(self) -> Path:
        return self.root / "reports"
