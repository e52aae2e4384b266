"""Paginated collection with date-window admission.

Each page goes FETCH_PAGE -> FILTER_BY_DATE -> CONTINUE or STOP. Early stop
relies on the listing being sorted newest-first; sites without that ordering
must run with early stop disabled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from bidharvest.config import CollectorSettings, DateWindow, SiteConfig
from bidharvest.extract.accessor import DocumentAccessor
from bidharvest.extract.record import RecordExtractor
from bidharvest.io.batches import BatchWriter
from bidharvest.normalize.schema import BatchItem
from bidharvest.normalize.values import parse_flexible_date

from .downloads import DocumentDownloader
from .listing import ListingEntry, ListingParser

logger = logging.getLogger(__name__)


class Admission(Enum):
    ADMIT = "admit"
    SKIP = "skip"
    STOP = "stop"


def admit(value: date | datetime | None, window: DateWindow, *, early_stop: bool = True) -> Admission:
    """Admission test for one listing date.

    Undated items are skipped and never stop pagination. A date before the
    window stops pagination when early stop is on; a date after it is skipped.
    """

    if value is None:
        return Admission.SKIP
    day = value.date() if isinstance(value, datetime) else value
    if window.is_before(day):
        return Admission.STOP if early_stop else Admission.SKIP
    if window.contains(day):
        return Admission.ADMIT
    return Admission.SKIP


@dataclass(slots=True)
class PageOutcome:
    page_number: int
    rows_seen: int = 0
    admitted: list[ListingEntry] = field(default_factory=list)
    stop: bool = False
    fetch_failed: bool = False


@dataclass(slots=True)
class CollectionStats:
    pages_fetched: int = 0
    pages_failed: int = 0
    listings_seen: int = 0
    listings_admitted: int = 0
    skipped_out_of_window: int = 0
    skipped_undated: int = 0
    items_succeeded: int = 0
    items_failed: int = 0
    documents_found: int = 0
    documents_downloaded: int = 0
    documents_failed: int = 0
    batches_written: int = 0
    stop_reason: str | None = None
    failed_items: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CollectionController:
    def __init__(
        self,
        site: SiteConfig,
        settings: CollectorSettings,
        window: DateWindow,
        *,
        document: DocumentAccessor,
        writer: BatchWriter,
        extractor: RecordExtractor | None = None,
        downloader: DocumentDownloader | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.site = site
        self.settings = settings
        self.window = window
        self.document = document
        self.writer = writer
        self.parser = ListingParser(site)
        self.extractor = extractor or RecordExtractor(site, settle_seconds=settings.settle_delay_seconds)
        self.downloader = downloader if settings.download_documents else None
        self.early_stop = settings.early_stop_for(site)
        self.stats = CollectionStats()
        self._sleep = sleep

    async def run(self) -> CollectionStats:
        page_number = 1
        while True:
            if page_number > self.settings.max_pages:
                self.stats.stop_reason = "max_pages"
                break

            outcome = await self.fetch_page(page_number)
            items: list[BatchItem] = []
            for entry in outcome.admitted:
                item = await self.collect_item(entry)
                if item is not None:
                    items.append(item)
                await self._sleep(self.settings.item_delay_seconds)

            if items:
                path = self.writer.write(items)
                self.stats.batches_written += 1
                logger.info("Saved page %d as %s (%d items)", page_number, path.name, len(items))

            if outcome.stop:
                self.stats.stop_reason = "before_window"
                break
            if outcome.rows_seen < self.settings.page_size:
                self.stats.stop_reason = "fetch_failed" if outcome.fetch_failed else "last_page"
                break
            page_number += 1
            await self._sleep(self.settings.page_delay_seconds)

        logger.info(
            "Collection finished: pages=%d admitted=%d succeeded=%d failed=%d reason=%s",
            self.stats.pages_fetched,
            self.stats.listings_admitted,
            self.stats.items_succeeded,
            self.stats.items_failed,
            self.stats.stop_reason,
        )
        return self.stats

    async def fetch_page(self, page_number: int) -> PageOutcome:
        outcome = PageOutcome(page_number=page_number)
        url = self.parser.page_url(page_number, self.settings.page_size)
        logger.info("Fetching listing page %d: %s", page_number, url)
        try:
            await self.document.navigate(url)
            await self.document.wait_for_idle(self.settings.settle_delay_seconds)
        except Exception:
            logger.warning("Listing page %d could not be fetched", page_number, exc_info=True)
            self.stats.pages_failed += 1
            outcome.fetch_failed = True
            return outcome

        self.stats.pages_fetched += 1
        rows = self.parser.rows(self.document)
        outcome.rows_seen = len(rows)
        for ordinal, row in enumerate(rows, start=1):
            try:
                entry = self.parser.parse_row(row, page_number, ordinal)
            except Exception:
                logger.warning("Could not read listing row %d on page %d", ordinal, page_number, exc_info=True)
                continue
            if entry is None:
                continue
            self.stats.listings_seen += 1

            listed_on = parse_flexible_date(entry.open_date)
            decision = admit(listed_on, self.window, early_stop=self.early_stop)
            if decision is Admission.STOP:
                logger.info(
                    "Stopping pagination at listing %s dated %s (before %s)",
                    entry.external_id,
                    entry.open_date,
                    self.window.start.isoformat(),
                )
                outcome.stop = True
                break
            if decision is Admission.SKIP:
                if listed_on is None:
                    self.stats.skipped_undated += 1
                else:
                    self.stats.skipped_out_of_window += 1
                continue
            outcome.admitted.append(entry)

        self.stats.listings_admitted += len(outcome.admitted)
        logger.info(
            "Page %d: %d rows, %d admitted%s",
            page_number,
            outcome.rows_seen,
            len(outcome.admitted),
            ", stop" if outcome.stop else "",
        )
        return outcome

    async def collect_item(self, entry: ListingEntry) -> BatchItem | None:
        logger.info("Processing %s - %s", entry.external_id, entry.title)
        try:
            await self.document.navigate(entry.detail_link)
            await self.document.wait_for_idle(self.settings.settle_delay_seconds)
            item = await self.extractor.extract(self.document, entry)
        except Exception as exc:
            logger.warning("Skipping listing %s: detail extraction failed", entry.external_id, exc_info=True)
            self.stats.items_failed += 1
            self.stats.failed_items.append(
                {"external_id": entry.external_id, "url": entry.detail_link, "error": f"{type(exc).__name__}: {exc}"}
            )
            return None

        self.stats.items_succeeded += 1
        self.stats.documents_found += len(item.documents)
        if self.downloader is None or not item.documents:
            return item

        documents = []
        for document in item.documents:
            downloaded = await self.downloader.download(document, item.opportunity.id)
            if downloaded.local_path:
                self.stats.documents_downloaded += 1
            else:
                self.stats.documents_failed += 1
            documents.append(downloaded)
        return item.model_copy(update={"documents": documents})
