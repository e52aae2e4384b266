from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from bidharvest.config import SiteConfig
from .accessor import DocumentAccessor
from .contacts import ContactExtractor
from .documents import DocumentExtractor
from .labeled import LabeledValueExtractor
from .opportunity import OpportunityExtractor, merge_missing
from .tables import TableDecoder
from .tabs import TabbedContentExtractor
from bidharvest.normalize.canonical_id import generate_id
from bidharvest.normalize.schema import BatchItem, RawOpportunity

if TYPE_CHECKING:
    from bidharvest.ingest.listing import ListingEntry

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Opportunity"
UNKNOWN_STATUS = "Unknown"
_NUMERIC_SUFFIX = re.compile(r"(\d+)/?$")
_NON_ID_CHARS = re.compile(r"[^a-zA-Z0-9-]+")


def url_numeric_suffix(url: str | None) -> str | None:
    if not url:
        return None
    parsed = urlparse(url)
    match = _NUMERIC_SUFFIX.search(parsed.path)
    if match:
        return match.group(1)
    query_match = re.search(r"(?:^|&)id=(\d+)", parsed.query, flags=re.IGNORECASE)
    return query_match.group(1) if query_match else None


def raw_record_id(source_url: str, event_id: str | None) -> str:
    """``<host slug>-<event id>``; a URL hash when no event id can be found."""

    host = urlparse(source_url).netloc.lower() or "local"
    key = event_id or url_numeric_suffix(source_url) or generate_id(source_url)
    return _NON_ID_CHARS.sub("-", f"{host}-{key}").strip("-")


class RecordExtractor:
    """Builds one ``BatchItem`` from the currently loaded detail page."""

    def __init__(
        self,
        site: SiteConfig,
        *,
        decoder: TableDecoder | None = None,
        settle_seconds: float = 0.5,
    ) -> None:
        self.site = site
        decoder = decoder or TableDecoder()
        labeled = LabeledValueExtractor(decoder)
        self.opportunities = OpportunityExtractor(site, labeled)
        self.contacts = ContactExtractor(labeled)
        self.documents = DocumentExtractor(decoder)
        self.tabs = TabbedContentExtractor(decoder, settle_seconds=settle_seconds)

    async def extract(self, document: DocumentAccessor, listing: "ListingEntry | None" = None) -> BatchItem:
        scope = document.root()
        fields = self.opportunities.extract_fields(scope)

        if not (fields.get("buyer_name") and fields.get("buyer_email") and fields.get("buyer_phone")):
            contact = self.contacts.extract(scope)
            fields = merge_missing(
                fields,
                {"buyer_name": contact.name, "buyer_email": contact.email, "buyer_phone": contact.phone},
            )

        source_url = document.url or (listing.detail_link if listing else "")
        listing_id = listing.external_id if listing is not None and not listing.synthetic_id else None
        event_id = fields.pop("event_id", None) or listing_id or url_numeric_suffix(source_url)
        record_id = raw_record_id(source_url, event_id)

        fields["title"] = fields.get("title") or (listing.title if listing else None) or DEFAULT_TITLE
        fields["description"] = fields.get("description") or ""
        fields["status"] = fields.get("status") or UNKNOWN_STATUS

        documents = await self.documents.extract_with_tabs(document, record_id, self.tabs)
        fields["tabs"] = await self.tabs.extract(document)

        opportunity = RawOpportunity(id=record_id, event_id=event_id, source_url=source_url, **fields)
        logger.debug("Extracted %s with %d documents", record_id, len(documents))
        return BatchItem(opportunity=opportunity, documents=documents)
