"""Document-to-shipment linking cascade.

Strict priority, first hit wins:
1. booking_number
2. bl_number
3. any container_number

Secondary references (job numbers, PO numbers, customs references) are never
used: they are not unique across shipments. A step that finds more than one
shipment links nothing and reports AMBIGUOUS for manual review.
"""

import enum
import logging
import uuid
from dataclasses import dataclass

from shiplink.errors import AmbiguousLinkError, ReasonCode
from shiplink.extraction.aggregator import EntitySet
from shiplink.linking.index import ShipmentIndex
from shiplink.schemas.classification import DocumentType
from shiplink.schemas.entities import EntityType

logger = logging.getLogger("shiplink.linking")

SHIPMENT_CREATING_TYPES = frozenset({
    DocumentType.BOOKING_CONFIRMATION.value,
    DocumentType.BOOKING_AMENDMENT.value,
})


class LinkOutcome(str, enum.Enum):
    MATCHED = "matched"
    CREATE_NEW = "create_new"
    ORPHAN = "orphan"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class LinkResult:
    outcome: LinkOutcome
    reason_code: ReasonCode
    reason: str
    shipment_id: uuid.UUID | None = None
    matched_by: str | None = None
    matched_value: str | None = None
    candidate_shipment_ids: tuple[uuid.UUID, ...] = ()


def _single(matched_by: str, value: str, candidates: list[uuid.UUID]) -> uuid.UUID | None:
    unique = list(dict.fromkeys(candidates))
    if len(unique) > 1:
        raise AmbiguousLinkError(matched_by, value, unique)
    return unique[0] if unique else None


class ShipmentLinker:
    def __init__(
        self,
        index: ShipmentIndex,
        shipment_creating_types: frozenset[str] = SHIPMENT_CREATING_TYPES,
    ):
        self.index = index
        self.shipment_creating_types = shipment_creating_types

    async def link(self, document, entities: EntitySet) -> LinkResult:
        """Resolve ``document`` to exactly one shipment, a new shipment, or none.

        ``document`` only needs a ``document_type`` attribute.
        """
        document_type = getattr(document.document_type, "value", document.document_type)
        try:
            result = await self._cascade(entities)
        except AmbiguousLinkError as e:
            logger.warning("Ambiguous link: %s", e)
            return LinkResult(
                outcome=LinkOutcome.AMBIGUOUS,
                reason_code=ReasonCode.AMBIGUOUS_MATCH,
                reason=(
                    f"{e.matched_by} {e.matched_value} matches {len(e.candidate_ids)} shipments; "
                    f"flagged for manual review"
                ),
                matched_by=e.matched_by,
                matched_value=e.matched_value,
                candidate_shipment_ids=tuple(e.candidate_ids),
            )

        if result is not None:
            return result

        if document_type in self.shipment_creating_types and entities.booking_number:
            return LinkResult(
                outcome=LinkOutcome.CREATE_NEW,
                reason_code=ReasonCode.CREATED_SHIPMENT,
                reason=(
                    f"No shipment for booking {entities.booking_number}; "
                    f"{document_type} creates one"
                ),
                matched_by=EntityType.BOOKING_NUMBER.value,
                matched_value=entities.booking_number,
            )

        if not entities.has_identifiers():
            return LinkResult(
                outcome=LinkOutcome.ORPHAN,
                reason_code=ReasonCode.NO_IDENTIFIERS,
                reason="Document carries no usable booking, BL or container number",
            )

        return LinkResult(
            outcome=LinkOutcome.ORPHAN,
            reason_code=ReasonCode.NO_MATCH,
            reason=(
                f"No shipment matches booking={entities.booking_number} bl={entities.bl_number} "
                f"containers={entities.container_numbers}; {document_type} does not create shipments"
            ),
        )

    async def _cascade(self, entities: EntitySet) -> LinkResult | None:
        booking = entities.booking_number
        if booking:
            shipment_id = _single(
                EntityType.BOOKING_NUMBER.value, booking, await self.index.find_by_booking(booking)
            )
            if shipment_id:
                return LinkResult(
                    outcome=LinkOutcome.MATCHED,
                    reason_code=ReasonCode.MATCHED_BOOKING,
                    reason=f"Matched on booking_number {booking}",
                    shipment_id=shipment_id,
                    matched_by=EntityType.BOOKING_NUMBER.value,
                    matched_value=booking,
                )

        bl = entities.bl_number
        if bl:
            shipment_id = _single(EntityType.BL_NUMBER.value, bl, await self.index.find_by_bl(bl))
            if shipment_id:
                return LinkResult(
                    outcome=LinkOutcome.MATCHED,
                    reason_code=ReasonCode.MATCHED_BL,
                    reason=f"Matched on bl_number {bl}",
                    shipment_id=shipment_id,
                    matched_by=EntityType.BL_NUMBER.value,
                    matched_value=bl,
                )

        if entities.container_numbers:
            hits = await self.index.find_by_containers(entities.container_numbers)
            candidates: list[uuid.UUID] = []
            first_container = None
            for container in entities.container_numbers:
                if container in hits:
                    first_container = first_container or container
                    candidates.extend(hits[container])
            if first_container:
                shipment_id = _single(
                    EntityType.CONTAINER_NUMBER.value, first_container, candidates
                )
                return LinkResult(
                    outcome=LinkOutcome.MATCHED,
                    reason_code=ReasonCode.MATCHED_CONTAINER,
                    reason=f"Matched on container_number {first_container}",
                    shipment_id=shipment_id,
                    matched_by=EntityType.CONTAINER_NUMBER.value,
                    matched_value=first_container,
                )

        return None
