"""Batch job endpoints: run a job in-process and read its checkpoint."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shiplink.batch.jobs import RebuildWorkflowJob, ReclassifyUnknownJob, RelinkOrphansJob
from shiplink.batch.runner import BatchRunner, load_checkpoint
from shiplink.config import settings
from shiplink.dependencies import (
    get_db,
    get_ingestion_pipeline,
    get_reconciliation_service,
    get_session_factory,
)
from shiplink.errors import BatchAborted
from shiplink.ingestion.pipeline import DocumentIngestionPipeline
from shiplink.schemas.job import (
    ItemErrorResponse,
    JobCheckpointResponse,
    JobReportResponse,
    JobRunRequest,
)
from shiplink.shipments.service import ShipmentReconciliationService

router = APIRouter()

JOB_NAMES = (ReclassifyUnknownJob.name, RelinkOrphansJob.name, RebuildWorkflowJob.name)


@router.post("/{job_name}/run", response_model=JobReportResponse)
async def run_job(
    job_name: str,
    request: JobRunRequest | None = None,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    pipeline: DocumentIngestionPipeline = Depends(get_ingestion_pipeline),
    reconciler: ShipmentReconciliationService = Depends(get_reconciliation_service),
) -> JobReportResponse:
    """Run one batch job to completion (or resume it) and return its report."""
    request = request or JobRunRequest()
    if job_name == ReclassifyUnknownJob.name:
        job = ReclassifyUnknownJob(pipeline)
    elif job_name == RelinkOrphansJob.name:
        job = RelinkOrphansJob(reconciler)
    elif job_name == RebuildWorkflowJob.name:
        job = RebuildWorkflowJob(reconciler)
    else:
        raise HTTPException(status_code=404, detail=f"Unknown job {job_name}. Must be one of {', '.join(JOB_NAMES)}")

    runner = BatchRunner(session_factory, settings)
    try:
        report = await runner.run(job, resume=request.resume, page_size=request.page_size)
    except BatchAborted as e:
        raise HTTPException(status_code=503, detail=str(e))

    return JobReportResponse(
        job_name=report.job_name,
        status=report.status.value,
        resumed_from=report.resumed_from,
        cursor=report.cursor,
        pages=report.pages,
        processed=report.processed,
        failed=report.failed,
        errors=[ItemErrorResponse(item_id=e.item_id, error=e.error) for e in report.errors],
    )


@router.get("/{job_name}", response_model=JobCheckpointResponse)
async def get_checkpoint(
    job_name: str,
    db: AsyncSession = Depends(get_db),
) -> JobCheckpointResponse:
    checkpoint = await load_checkpoint(db, job_name)
    if checkpoint is None:
        raise HTTPException(status_code=404, detail=f"Job {job_name} has never run")
    return JobCheckpointResponse(
        job_name=checkpoint.job_name,
        cursor=checkpoint.cursor,
        processed_count=checkpoint.processed_count,
        failed_count=checkpoint.failed_count,
        status=checkpoint.status.value,
        last_error=checkpoint.last_error,
    )
