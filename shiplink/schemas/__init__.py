from shiplink.schemas.classification import (
    ClassificationMethod,
    Direction,
    DocumentType,
    SenderCategory,
    ThreadRole,
)
from shiplink.schemas.entities import EntityType, ExtractedEntity

__all__ = [
    "ClassificationMethod",
    "Direction",
    "DocumentType",
    "EntityType",
    "ExtractedEntity",
    "SenderCategory",
    "ThreadRole",
]
