from functools import lru_cache

from sqlalchemy.ext.asyncio import async_sessionmaker

from shiplink.authority.cache import AuthorityRuleCache
from shiplink.authority.rules import db_rule_loader
from shiplink.config import settings
from shiplink.database import async_session, get_db
from shiplink.document_classifier.service import DocumentClassificationService
from shiplink.extraction.ai_extractor import EntityExtractionService
from shiplink.hitl_workflow.service import HITLService
from shiplink.ingestion.pipeline import DocumentIngestionPipeline
from shiplink.shipments.locks import KeyedLock
from shiplink.shipments.service import ShipmentReconciliationService

# Re-export get_db for use in Depends()
get_db = get_db


# Rule cache and shipment locks are process-wide: every request and batch
# worker must see the same instances.
@lru_cache
def get_rule_cache() -> AuthorityRuleCache:
    return AuthorityRuleCache(
        db_rule_loader(async_session),
        ttl_seconds=settings.authority_cache_ttl_seconds,
    )


@lru_cache
def get_shipment_locks() -> KeyedLock:
    return KeyedLock()


@lru_cache
def get_classification_service() -> DocumentClassificationService:
    return DocumentClassificationService(settings)


@lru_cache
def get_extraction_service() -> EntityExtractionService:
    return EntityExtractionService(settings)


def get_hitl_service() -> HITLService:
    return HITLService()


def get_reconciliation_service() -> ShipmentReconciliationService:
    return ShipmentReconciliationService(
        settings,
        get_rule_cache(),
        locks=get_shipment_locks(),
        hitl=get_hitl_service(),
    )


def get_ingestion_pipeline() -> DocumentIngestionPipeline:
    return DocumentIngestionPipeline(
        get_classification_service(),
        get_extraction_service(),
        get_reconciliation_service(),
    )


def get_session_factory() -> async_sessionmaker:
    return async_session
