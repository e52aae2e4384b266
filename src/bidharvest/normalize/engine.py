"""Batch items to normalized entities in a single pass."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .schema import (
    Batch,
    BatchItem,
    NormalizedAgency,
    NormalizedContract,
    NormalizedDocument,
    NormalizedPerson,
)
from .transformers import (
    AgencyTransformer,
    ContractTransformer,
    DocumentTransformer,
    PersonTransformer,
    TransformContext,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TransformResult:
    contracts: list[NormalizedContract] = field(default_factory=list)
    agencies: list[NormalizedAgency] = field(default_factory=list)
    documents: list[NormalizedDocument] = field(default_factory=list)
    people: list[NormalizedPerson] = field(default_factory=list)

    def extend(self, other: "TransformResult") -> None:
        self.contracts.extend(other.contracts)
        self.agencies.extend(other.agencies)
        self.documents.extend(other.documents)
        self.people.extend(other.people)


class TransformationEngine:
    def __init__(
        self,
        contracts: ContractTransformer | None = None,
        agencies: AgencyTransformer | None = None,
        documents: DocumentTransformer | None = None,
        people: PersonTransformer | None = None,
    ) -> None:
        self.contracts = contracts or ContractTransformer()
        self.agencies = agencies or AgencyTransformer()
        self.documents = documents or DocumentTransformer()
        self.people = people or PersonTransformer()

    def transform_item(self, item: BatchItem, context: TransformContext) -> TransformResult:
        """One contract plus its agency, buyer and documents, already linked."""

        opportunity = item.opportunity
        contract = self.contracts.transform(opportunity, context)
        result = TransformResult()

        agency = self.agencies.transform(opportunity, context)
        if agency is not None:
            contract = contract.model_copy(update={"agency_id": agency.id})
            result.agencies.append(agency)

        person = self.people.transform(opportunity, contract, context)
        if person is not None:
            contract = contract.model_copy(update={"contact_ids": [*contract.contact_ids, person.id]})
            result.people.append(person)

        result.contracts.append(contract)
        result.documents.extend(self.documents.transform(document, contract, context) for document in item.documents)
        return result

    def transform_batch(self, batch: Batch) -> TransformResult:
        metadata = batch.metadata
        context = TransformContext(
            source=metadata.source,
            scraped_at=metadata.scraped_at,
            source_url=metadata.source_url,
        )
        result = TransformResult()
        for item in batch.items:
            result.extend(self.transform_item(item, context))
        return result

    def transform_batches(self, batches: Iterable[Batch]) -> TransformResult:
        result = TransformResult()
        for batch in batches:
            batch_result = self.transform_batch(batch)
            logger.info(
                "Batch %s: %d contracts, %d documents",
                batch.metadata.batch_number,
                len(batch_result.contracts),
                len(batch_result.documents),
            )
            result.extend(batch_result)
        return result
