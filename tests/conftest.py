import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from unittest.mock import AsyncMock

from shiplink.authority.cache import AuthorityRuleCache
from shiplink.authority.rules import default_rule_specs
from shiplink.config import Settings
from shiplink.document_classifier.service import DocumentClassificationService
from shiplink.ingestion.pipeline import DocumentIngestionPipeline
from shiplink.models.base import Base
# Import all models so they register with Base.metadata for create_all
import shiplink.models  # noqa: F401
from shiplink.schemas.entities import ExtractedEntity
from shiplink.shipments.locks import KeyedLock
from shiplink.shipments.service import ShipmentReconciliationService


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


# Services commit while holding shipment locks, so each test gets its own
# SQLite file instead of a shared database rolled back at the end.
@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings():
    return Settings(
        anthropic_api_key="test-key",
        own_org_domains={"intoglo.com"},
        store_retry_base_delay=1.0,
        store_retry_attempts=3,
        batch_concurrency=1,
        store_page_size=50,
    )


@pytest.fixture
def rule_cache():
    async def load():
        return default_rule_specs()

    return AuthorityRuleCache(load, ttl_seconds=300)


@pytest.fixture
def reconciler(test_settings, rule_cache):
    return ShipmentReconciliationService(test_settings, rule_cache, locks=KeyedLock())


class StubExtractor:
    """Returns canned entities for any text containing a registered marker."""

    def __init__(self, entities_by_marker: dict[str, list[tuple[str, str]]] | None = None):
        self.entities_by_marker = dict(entities_by_marker or {})
        self.calls: list[tuple[str, str | None]] = []

    def add(self, marker: str, *entities: tuple[str, str]) -> None:
        self.entities_by_marker[marker] = list(entities)

    async def extract(self, text: str, document_type_hint: str | None = None) -> list[ExtractedEntity]:
        self.calls.append((text, document_type_hint))
        for marker, entities in self.entities_by_marker.items():
            if marker in (text or ""):
                return [
                    ExtractedEntity(entity_type=entity_type, value=value, confidence=95)
                    for entity_type, value in entities
                ]
        return []


@pytest.fixture
def ai_classifier():
    classifier = AsyncMock()
    classifier.model = "claude-haiku-test"
    return classifier


@pytest.fixture
def stub_extractor():
    return StubExtractor()


@pytest.fixture
def classification_service(test_settings, ai_classifier):
    return DocumentClassificationService(test_settings, ai_classifier=ai_classifier)


@pytest.fixture
def pipeline(classification_service, stub_extractor, reconciler):
    return DocumentIngestionPipeline(classification_service, stub_extractor, reconciler)


@pytest.fixture
async def client(db_session, session_factory, rule_cache, reconciler, pipeline):
    from shiplink.dependencies import (
        get_db,
        get_ingestion_pipeline,
        get_reconciliation_service,
        get_rule_cache,
        get_session_factory,
    )
    from shiplink.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rule_cache] = lambda: rule_cache
    app.dependency_overrides[get_reconciliation_service] = lambda: reconciler
    app.dependency_overrides[get_ingestion_pipeline] = lambda: pipeline
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
