from pydantic import BaseModel, Field

from shiplink.schemas.classification import DocumentType
from shiplink.schemas.entities import EntityType


class AuthorityRuleResponse(BaseModel):
    model_config = {"from_attributes": True}

    document_type: str
    entity_type: str
    authority_level: int
    can_override_from: list[str] = Field(default_factory=list)
    is_active: bool = True


class AuthorityRuleUpsert(BaseModel):
    document_type: DocumentType
    entity_type: EntityType
    authority_level: int = Field(ge=1, le=99)
    can_override_from: list[DocumentType] = Field(default_factory=list)
    is_active: bool = True


class CacheRefreshResponse(BaseModel):
    rules_loaded: int
    load_count: int
