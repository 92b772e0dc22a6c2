import enum

from pydantic import BaseModel, Field


class EntityType(str, enum.Enum):
    """Shipment facts the extractor is asked for and the aggregator understands."""

    BOOKING_NUMBER = "booking_number"
    BL_NUMBER = "bl_number"
    CONTAINER_NUMBER = "container_number"
    VESSEL_NAME = "vessel_name"
    VOYAGE_NUMBER = "voyage_number"
    PORT_OF_LOADING = "port_of_loading"
    PORT_OF_DISCHARGE = "port_of_discharge"
    ETD = "etd"
    ETA = "eta"
    SI_CUTOFF = "si_cutoff"
    VGM_CUTOFF = "vgm_cutoff"
    CARGO_CUTOFF = "cargo_cutoff"
    SHIPPER_NAME = "shipper_name"
    CONSIGNEE_NAME = "consignee_name"
    CARRIER_NAME = "carrier_name"


IDENTIFIER_ENTITIES = {
    EntityType.BOOKING_NUMBER,
    EntityType.BL_NUMBER,
    EntityType.CONTAINER_NUMBER,
}

DATE_ENTITIES = {
    EntityType.ETD,
    EntityType.ETA,
    EntityType.SI_CUTOFF,
    EntityType.VGM_CUTOFF,
    EntityType.CARGO_CUTOFF,
}

# Scalar shipment slots written through the authority resolver.
SHIPMENT_FIELDS = [e for e in EntityType if e is not EntityType.CONTAINER_NUMBER]


class ExtractedEntity(BaseModel):
    """One entity as returned by the AI extraction collaborator."""

    model_config = {"coerce_numbers_to_str": True}

    entity_type: str
    value: str
    confidence: int = Field(default=0, ge=0, le=100)
