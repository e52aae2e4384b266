"""Raw batch and normalized intake schemas.

Attributes are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RawOpportunity(CamelModel):
    """One detail-page visit, stored exactly as found on the page."""

    id: str
    event_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("eventId", "externalId", "event_id"),
        serialization_alias="eventId",
    )
    title: str = "Untitled Opportunity"
    description: str = ""
    detail: Optional[str] = None
    status: str = "Unknown"
    open_date: Optional[str] = None
    close_date: Optional[str] = None
    created_at: Optional[str] = None
    due_time: Optional[str] = None
    last_updated: Optional[str] = None
    entity: Optional[str] = None
    agency_number: Optional[str] = None
    department: Optional[str] = None
    division: Optional[str] = None
    location: Optional[str] = None
    category: Optional[str] = None
    ad_type: Optional[str] = None
    unspsc_codes: list[str] = Field(default_factory=list)
    naics_codes: list[str] = Field(default_factory=list)
    nigp_codes: list[str] = Field(default_factory=list)
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    bid_submission_instructions: Optional[str] = None
    note: Optional[str] = None
    awardee_name: Optional[str] = None
    award_amount: Optional[str] = None
    award_date: Optional[str] = None
    contract_start_date: Optional[str] = None
    contract_end_date: Optional[str] = None
    estimated_value: Optional[str] = None
    tabs: dict[str, str] = Field(default_factory=dict)
    source_url: str = Field(validation_alias=AliasChoices("sourceUrl", "detailUrl", "source_url"), serialization_alias="sourceUrl")


class RawDocument(CamelModel):
    id: str
    file_name: str
    download_url: str
    file_size_bytes: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("fileSizeBytes", "fileSize", "file_size_bytes"),
        serialization_alias="fileSizeBytes",
    )
    parent_id: str = Field(
        validation_alias=AliasChoices("parentId", "contractId", "parent_id"),
        serialization_alias="parentId",
    )
    local_path: Optional[str] = None
    download_error: Optional[str] = None


class BatchItem(CamelModel):
    opportunity: RawOpportunity
    documents: list[RawDocument] = Field(default_factory=list)


class DateRange(CamelModel):
    start: str = Field(alias="from")
    end: str = Field(alias="to")


class BatchMetadata(CamelModel):
    scraped_at: str
    source: str
    source_url: str
    date_range: Optional[DateRange] = None
    total_items: int = 0
    session_id: Optional[str] = None
    batch_number: Optional[int] = None


class Batch(CamelModel):
    metadata: BatchMetadata
    items: list[BatchItem] = Field(default_factory=list)


class NormalizedContract(CamelModel):
    id: str
    external_id: str
    source: str
    title: str
    description: str
    detail: Optional[str] = None
    published_at: Optional[str] = None
    closing_at: Optional[str] = None
    status: str
    agency_id: Optional[str] = None
    contact_ids: list[str] = Field(default_factory=list)
    amount: Optional[int] = None
    location: Optional[str] = None
    category: Optional[str] = None
    unspsc_codes: Optional[list[str]] = None
    naics_codes: Optional[list[str]] = None
    nigp_codes: Optional[list[str]] = None
    awardee_name: Optional[str] = None
    award_amount: Optional[int] = None
    award_date: Optional[str] = None
    contract_start_date: Optional[str] = None
    contract_end_date: Optional[str] = None
    source_url: str
    scraped_at: str


class AgencyLocation(CamelModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None


class NormalizedAgency(CamelModel):
    id: str
    external_id: str
    source: str
    name: str
    type: Optional[str] = None
    website: Optional[str] = None
    location: Optional[AgencyLocation] = None


class NormalizedDocument(CamelModel):
    id: str
    contract_id: str
    source: str
    file_name: str
    file_type: str
    file_size: Optional[int] = None
    file_url: str
    local_path: Optional[str] = None
    uploaded_at: str


class NormalizedPerson(CamelModel):
    id: str
    contract_id: str
    source: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None


class IntakeMetadata(CamelModel):
    processed_at: str
    source: str
    total_contracts: int
    total_agencies: int
    total_documents: int
    total_people: int
    session_id: Optional[str] = None


def _duplicate_ids(kind: str, ids: list[str]) -> list[str]:
    seen: set[str] = set()
    problems: list[str] = []
    for entity_id in ids:
        if entity_id in seen:
            problems.append(f"duplicate {kind} id {entity_id}")
        seen.add(entity_id)
    return problems


class OutputAggregate(CamelModel):
    """The intake artifact. Ids are unique per collection and every reference resolves."""

    contracts: list[NormalizedContract] = Field(default_factory=list)
    agencies: list[NormalizedAgency] = Field(default_factory=list)
    documents: list[NormalizedDocument] = Field(default_factory=list)
    people: list[NormalizedPerson] = Field(default_factory=list)
    metadata: IntakeMetadata

    @model_validator(mode="after")
    def _check_integrity(self) -> "OutputAggregate":
        problems: list[str] = []
        problems += _duplicate_ids("contract", [item.id for item in self.contracts])
        problems += _duplicate_ids("agency", [item.id for item in self.agencies])
        problems += _duplicate_ids("document", [item.id for item in self.documents])
        problems += _duplicate_ids("person", [item.id for item in self.people])

        contract_ids = {item.id for item in self.contracts}
        agency_ids = {item.id for item in self.agencies}
        person_ids = {item.id for item in self.people}
        for contract in self.contracts:
            if contract.agency_id is not None and contract.agency_id not in agency_ids:
                problems.append(f"contract {contract.id} references missing agency {contract.agency_id}")
            for contact_id in contract.contact_ids:
                if contact_id not in person_ids:
                    problems.append(f"contract {contract.id} references missing person {contact_id}")
        for document in self.documents:
            if document.contract_id not in contract_ids:
                problems.append(f"document {document.id} references missing contract {document.contract_id}")
        for person in self.people:
            if person.contract_id not in contract_ids:
                problems.append(f"person {person.id} references missing contract {person.contract_id}")

        if problems:
            raise ValueError("; ".join(problems))
        return self
