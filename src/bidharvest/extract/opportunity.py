"""Field-by-field opportunity extraction from a detail page."""

from __future__ import annotations

from functools import partial
from typing import Any, Callable, Mapping

from bidharvest.config import SiteConfig
from .accessor import Element
from .fields import FieldSpec, selector_strategies, selector_value, split_codes
from .labeled import LabeledValueExtractor
from .resolver import resolve

FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("event_id", ("[data-event-id]", ".event-id", "#eventId", ".opportunity-id"),
              ("Event ID", "Event #", "Solicitation Number", "Bid Number")),
    FieldSpec("title", ("h1.title", "h1", ".opportunity-title", "[data-title]"),
              ("Title", "Project Title", "Bid Title")),
    FieldSpec("description", (".description", ".opportunity-description", "[data-description]", ".detail-content"),
              ("Description", "Scope of Work", "Summary")),
    FieldSpec("detail", (".detail", ".additional-details", ".full-description"),
              ("Additional Details", "Details")),
    FieldSpec("open_date", ("[data-open-date]", ".open-date", ".posting-date", ".start-date"),
              ("Open Date", "Posting Date", "Posted Date", "Start Date", "Issue Date")),
    FieldSpec("close_date", ("[data-close-date]", ".close-date", ".closing-date", ".end-date", ".deadline"),
              ("Close Date", "Closing Date", "Due Date", "Deadline", "Bid Due")),
    FieldSpec("due_time", ("[data-due-time]", ".due-time", ".closing-time"), ("Due Time", "Closing Time")),
    FieldSpec("created_at", ("[data-created-at]", ".created-at", ".posted-date"), ("Date Created", "Created")),
    FieldSpec("last_updated", ("[data-last-updated]", ".last-updated", ".updated-date"), ("Last Updated",)),
    FieldSpec("status", (".status", "[data-status]", ".opportunity-status", ".bid-status"), ("Status", "Bid Status")),
    FieldSpec("entity", (".entity", ".agency-name", "[data-entity]", ".issuing-agency"),
              ("Entity", "Agency Name", "Issuing Agency", "Organization")),
    FieldSpec("agency_number", ("[data-agency-number]", ".agency-number", ".agency-code"),
              ("Agency Number", "Agency Code")),
    FieldSpec("department", (".department", "[data-department]", ".agency-department"), ("Department",)),
    FieldSpec("division", (".division", "[data-division]", ".agency-division"), ("Division",)),
    FieldSpec("location", (".location", "[data-location]", ".procurement-location"),
              ("Location", "Place of Performance")),
    FieldSpec("category", (".category", "[data-category]", ".procurement-category"), ("Category",)),
    FieldSpec("ad_type", (".ad-type", "[data-ad-type]", ".advertisement-type", ".solicitation-type"),
              ("Ad Type", "Solicitation Type", "Bid Type")),
    FieldSpec("buyer_name", (".buyer-name", ".contact-name", "[data-buyer-name]", ".procurement-officer"),
              ("Buyer Name", "Contact Name")),
    FieldSpec("buyer_email", (".buyer-email", ".contact-email", "[data-buyer-email]", 'a[href^="mailto:"]'),
              ("Buyer Email", "Contact Email", "Email")),
    FieldSpec("buyer_phone", (".buyer-phone", ".contact-phone", "[data-buyer-phone]", 'a[href^="tel:"]'),
              ("Buyer Phone", "Contact Phone", "Phone")),
    FieldSpec("bid_submission_instructions",
              (".bid-submission-instructions", ".submission-instructions", "[data-submission-instructions]"),
              ("Submission Instructions", "Bid Submission")),
    FieldSpec("note", (".note", ".notes", "[data-note]", ".additional-notes"), ("Notes", "Note")),
    FieldSpec("awardee_name", (".awardee-name", "[data-awardee]", ".awarded-to"), ("Awardee", "Awarded To")),
    FieldSpec("award_amount", (".award-amount", "[data-award-amount]", ".contract-amount"),
              ("Award Amount", "Contract Amount")),
    FieldSpec("award_date", (".award-date", "[data-award-date]", ".awarded-date"), ("Award Date",)),
    FieldSpec("contract_start_date", (".contract-start-date", "[data-contract-start]"), ("Contract Start Date",)),
    FieldSpec("contract_end_date", (".contract-end-date", "[data-contract-end]"), ("Contract End Date",)),
    FieldSpec("estimated_value", (".estimated-value", "[data-estimated-value]", ".budget"),
              ("Estimated Value", "Estimated Amount", "Budget")),
)

CODE_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("unspsc_codes", (".unspsc-codes", "[data-unspsc]", ".unspsc"), ("unspsc",)),
    FieldSpec("naics_codes", (".naics-codes", "[data-naics]", ".naics"), ("naics",)),
    FieldSpec("nigp_codes", (".nigp-codes", "[data-nigp]", ".nigp"), ("nigp",)),
)


class OpportunityExtractor:
    """Resolves every raw opportunity field with a fixed attempt order.

    Source-specific labels from the site configuration go first, then the
    generic selector list, then a label lookup with generic labels.
    """

    def __init__(self, site: SiteConfig, labeled: LabeledValueExtractor | None = None) -> None:
        self.site = site
        self.labeled = labeled or LabeledValueExtractor()

    def strategies(self, scope: Element, spec: FieldSpec) -> list[Callable[[], Any]]:
        chain: list[Callable[[], Any]] = []
        site_labels = self.site.labels_for(spec.name)
        if site_labels:
            chain.append(partial(self.labeled.extract, scope, site_labels))
        chain.extend(selector_strategies(scope, spec.selectors))
        if spec.labels:
            chain.append(partial(self.labeled.extract, scope, spec.labels))
        return chain

    def extract_fields(self, scope: Element) -> dict[str, Any]:
        fields: dict[str, Any] = {spec.name: resolve(self.strategies(scope, spec)) for spec in FIELD_SPECS}
        for spec in CODE_SPECS:
            fields[spec.name] = self.extract_codes(scope, spec)
        return fields

    def extract_codes(self, scope: Element, spec: FieldSpec) -> list[str]:
        chain: list[Callable[[], list[str] | None]] = [
            partial(_codes_from_selector, scope, selector) for selector in spec.selectors
        ]
        chain.extend(partial(self._codes_from_tables, scope, label) for label in spec.labels)
        return resolve(chain) or []

    def _codes_from_tables(self, scope: Element, label: str) -> list[str]:
        decoder = self.labeled.decoder
        for table in decoder.tables_in(scope):
            decoded = decoder.decode(table)
            for row in decoded.rows:
                for header, value in row.items():
                    if label.lower() in header and value:
                        codes = split_codes(value)
                        if codes:
                            return codes
        for term, value in decoder.key_value_pairs(scope):
            if label.lower() in term.lower():
                codes = split_codes(value)
                if codes:
                    return codes
        return []


def _codes_from_selector(scope: Element, selector: str) -> list[str]:
    matches = scope.select(selector)
    if not matches:
        return []
    raw = "\n".join(matches[0].lines()) or selector_value(scope, selector)
    codes = split_codes(raw)
    if codes:
        return codes
    return [text for text in (match.text() for match in matches) if text]


def merge_missing(fields: dict[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    """Fill only the fields that are still empty."""

    merged = dict(fields)
    for key, value in extra.items():
        if value and not merged.get(key):
            merged[key] = value
    return merged
