"""Raw to normalized entity transformers.

Each transformer is a small stateless object; the engine composes them. Ids
are derived from ``(source, natural key)`` so repeated runs agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .canonical_id import agency_id, contract_id, document_id, person_id
from .schema import (
    NormalizedAgency,
    NormalizedContract,
    NormalizedDocument,
    NormalizedPerson,
    RawDocument,
    RawOpportunity,
)
from .values import (
    clean_text,
    extract_file_extension,
    normalize_agency_type,
    normalize_email,
    normalize_phone,
    normalize_status,
    parse_flexible_date,
    parse_monetary_value,
    to_iso,
)

DEFAULT_TITLE = "Untitled Opportunity"
UNKNOWN_PERSON = "Unknown"


@dataclass(frozen=True, slots=True)
class TransformContext:
    source: str
    scraped_at: str
    source_url: str = ""


def _iso_date(*candidates: Optional[str]) -> Optional[str]:
    for candidate in candidates:
        parsed = parse_flexible_date(candidate)
        if parsed is not None:
            return to_iso(parsed)
    return None


def _codes(values: list[str]) -> Optional[list[str]]:
    cleaned = [code for code in (clean_text(value) for value in values) if code]
    return cleaned or None


def external_id_for(opportunity: RawOpportunity) -> str:
    return clean_text(opportunity.event_id) or opportunity.id


class ContractTransformer:
    def transform(self, opportunity: RawOpportunity, context: TransformContext) -> NormalizedContract:
        external_id = external_id_for(opportunity)
        closing_with_time = (
            f"{opportunity.close_date} {opportunity.due_time}"
            if opportunity.close_date and opportunity.due_time
            else None
        )
        return NormalizedContract(
            id=contract_id(context.source, external_id),
            external_id=external_id,
            source=context.source,
            title=clean_text(opportunity.title) or DEFAULT_TITLE,
            description=clean_text(opportunity.description) or "",
            detail=clean_text(opportunity.detail),
            published_at=_iso_date(opportunity.open_date, opportunity.created_at),
            closing_at=_iso_date(closing_with_time, opportunity.close_date),
            status=normalize_status(opportunity.status),
            amount=parse_monetary_value(opportunity.estimated_value) or parse_monetary_value(opportunity.award_amount),
            location=clean_text(opportunity.location),
            category=clean_text(opportunity.category),
            unspsc_codes=_codes(opportunity.unspsc_codes),
            naics_codes=_codes(opportunity.naics_codes),
            nigp_codes=_codes(opportunity.nigp_codes),
            awardee_name=clean_text(opportunity.awardee_name),
            award_amount=parse_monetary_value(opportunity.award_amount),
            award_date=_iso_date(opportunity.award_date),
            contract_start_date=_iso_date(opportunity.contract_start_date),
            contract_end_date=_iso_date(opportunity.contract_end_date),
            source_url=opportunity.source_url,
            scraped_at=context.scraped_at,
        )


class AgencyTransformer:
    def transform(self, opportunity: RawOpportunity, context: TransformContext) -> Optional[NormalizedAgency]:
        name = clean_text(opportunity.entity)
        if name is None:
            return None
        natural_key = clean_text(opportunity.agency_number) or name
        return NormalizedAgency(
            id=agency_id(context.source, natural_key),
            external_id=natural_key,
            source=context.source,
            name=name,
            type=normalize_agency_type(name),
        )


class PersonTransformer:
    def transform(
        self,
        opportunity: RawOpportunity,
        contract: NormalizedContract,
        context: TransformContext,
    ) -> Optional[NormalizedPerson]:
        raw_name = clean_text(opportunity.buyer_name)
        raw_email = clean_text(opportunity.buyer_email)
        raw_phone = clean_text(opportunity.buyer_phone)
        if not (raw_name or raw_email or raw_phone):
            return None

        email = normalize_email(raw_email)
        phone = normalize_phone(raw_phone)
        natural_key = email or raw_name or phone or raw_phone
        return NormalizedPerson(
            id=person_id(context.source, natural_key),
            contract_id=contract.id,
            source=context.source,
            name=raw_name or UNKNOWN_PERSON,
            email=email,
            phone=phone,
            role="buyer",
        )


class DocumentTransformer:
    def transform(
        self,
        document: RawDocument,
        contract: NormalizedContract,
        context: TransformContext,
    ) -> NormalizedDocument:
        file_name = clean_text(document.file_name) or document.id
        return NormalizedDocument(
            id=document_id(context.source, document.download_url or document.id),
            contract_id=contract.id,
            source=context.source,
            file_name=file_name,
            file_type=extract_file_extension(file_name),
            file_size=document.file_size_bytes,
            file_url=document.download_url,
            local_path=document.local_path,
            uploaded_at=context.scraped_at,
        )
