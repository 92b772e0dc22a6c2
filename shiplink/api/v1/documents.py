"""Document endpoints: ingest a message, inspect it, re-run classification."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.dependencies import get_db, get_ingestion_pipeline
from shiplink.errors import StoreUnavailable
from shiplink.ingestion.pipeline import DocumentIngestionPipeline, IngestResult
from shiplink.models.document import Document, LinkStatus
from shiplink.schemas.document import (
    DocumentDetail,
    DocumentIngest,
    DocumentIngestResponse,
    DocumentListResponse,
)
from shiplink.shipments import repository

router = APIRouter()


def _to_response(result: IngestResult) -> DocumentIngestResponse:
    reconciliation = result.reconciliation
    state = None
    if reconciliation and reconciliation.state and reconciliation.state.state:
        state = reconciliation.state.state.value
    return DocumentIngestResponse(
        document=DocumentDetail.model_validate(result.document),
        created=result.created,
        link_outcome=reconciliation.link.outcome.value if reconciliation else None,
        link_reason=reconciliation.link.reason if reconciliation else None,
        shipment_id=reconciliation.shipment_id if reconciliation else None,
        created_shipment=reconciliation.created_shipment if reconciliation else False,
        workflow_state=state,
        review_item_id=(reconciliation.review_item_id if reconciliation else None) or result.review_item_id,
        rejected_entities=[
            {
                "entity_type": r.entity_type,
                "raw_value": r.raw_value,
                "source": r.source,
                "reason_code": r.reason_code.value,
                "reason": r.reason,
            }
            for r in result.aggregation.rejected
        ],
    )


@router.post("", response_model=DocumentIngestResponse, status_code=201)
async def ingest_document(
    payload: DocumentIngest,
    db: AsyncSession = Depends(get_db),
    pipeline: DocumentIngestionPipeline = Depends(get_ingestion_pipeline),
) -> DocumentIngestResponse:
    """Classify, extract and link one message. Re-posting a message id updates it in place."""
    try:
        result = await pipeline.ingest(db, payload)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {e}")
    await db.refresh(result.document)
    return _to_response(result)


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    link_status: LinkStatus | None = None,
    document_type: str | None = None,
    page: int = 1,
    per_page: int = 20,
    db: AsyncSession = Depends(get_db),
) -> DocumentListResponse:
    query = select(Document)
    count_query = select(func.count(Document.id))
    if link_status:
        query = query.where(Document.link_status == link_status)
        count_query = count_query.where(Document.link_status == link_status)
    if document_type:
        query = query.where(Document.document_type == document_type)
        count_query = count_query.where(Document.document_type == document_type)

    total = (await db.execute(count_query)).scalar_one()
    query = query.order_by(Document.created_at.desc(), Document.id).offset((page - 1) * per_page).limit(per_page)
    documents = (await db.execute(query)).scalars().all()
    return DocumentListResponse(
        documents=[DocumentDetail.model_validate(d) for d in documents],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{document_id}", response_model=DocumentDetail)
async def get_document(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> DocumentDetail:
    document = await repository.get_document(db, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return DocumentDetail.model_validate(document)


@router.post("/{document_id}/reclassify", response_model=DocumentIngestResponse)
async def reclassify_document(
    document_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    pipeline: DocumentIngestionPipeline = Depends(get_ingestion_pipeline),
) -> DocumentIngestResponse:
    """Re-run classification, extraction and linking on a stored document."""
    document = await repository.get_document(db, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    try:
        result = await pipeline.reprocess(db, document)
    except StoreUnavailable as e:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {e}")
    await db.refresh(result.document)
    return _to_response(result)
