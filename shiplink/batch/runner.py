"""
Resumable, keyset-paginated batch runner.

A job yields pages of item ids ordered by primary key; the runner processes
each page with bounded concurrency, one session per item, then persists the
last id of the page as the job's cursor. Restarting a job with resume picks
up after the last completed page. Items are processed idempotently, so a page
interrupted half way is simply redone.

Store outages are retried with exponential backoff. When retries run out the
job is marked aborted and BatchAborted is raised with the cursor left at the
last completed page. Any other per-item error is recorded and the batch moves on.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shiplink.config import Settings
from shiplink.errors import BatchAborted, StoreUnavailable, is_store_unavailable
from shiplink.models.job_checkpoint import JobCheckpoint, JobStatus

logger = logging.getLogger("shiplink.batch")

T = TypeVar("T")


class BatchJob(Protocol):
    name: str

    async def fetch_page(self, db: AsyncSession, after: uuid.UUID | None, page_size: int) -> list[uuid.UUID]: ...

    async def process_item(self, db: AsyncSession, item_id: uuid.UUID) -> None: ...


@dataclass(frozen=True)
class ItemError:
    item_id: str
    error: str


@dataclass
class BatchReport:
    job_name: str
    status: JobStatus = JobStatus.RUNNING
    resumed_from: str | None = None
    cursor: str | None = None
    pages: int = 0
    processed: int = 0
    failed: int = 0
    errors: list[ItemError] = field(default_factory=list)

    @property
    def stopped_early(self) -> bool:
        return self.status is JobStatus.STOPPED


async def load_checkpoint(db: AsyncSession, job_name: str) -> JobCheckpoint | None:
    result = await db.execute(select(JobCheckpoint).where(JobCheckpoint.job_name == job_name))
    return result.scalar_one_or_none()


class BatchRunner:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings: Settings,
        stop_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.stop_event = stop_event or asyncio.Event()
        self._sleep = sleep

    async def run(
        self,
        job: BatchJob,
        *,
        resume: bool = True,
        page_size: int | None = None,
        concurrency: int | None = None,
    ) -> BatchReport:
        page_size = page_size or self.settings.store_page_size
        semaphore = asyncio.Semaphore(concurrency or self.settings.batch_concurrency)
        report = BatchReport(job_name=job.name)

        try:
            cursor, processed, failed = await self._with_retry(
                f"{job.name}: load checkpoint", lambda: self._start(job.name, resume)
            )
            report.cursor = report.resumed_from = cursor
            report.processed = processed
            report.failed = failed
            logger.info("Starting job %s from cursor %s (page size %d)", job.name, report.cursor, page_size)

            while True:
                if self.stop_event.is_set():
                    report.status = JobStatus.STOPPED
                    break

                after = uuid.UUID(report.cursor) if report.cursor else None
                ids = await self._with_retry(
                    f"{job.name}: fetch page after {report.cursor}",
                    lambda: self._fetch(job, after, page_size),
                )
                if not ids:
                    report.status = JobStatus.COMPLETED
                    break

                results = await asyncio.gather(
                    *(self._run_item(job, item_id, semaphore) for item_id in ids),
                    return_exceptions=True,
                )
                for outcome in results:
                    if isinstance(outcome, BaseException):
                        raise outcome
                if any(outcome is None for outcome in results):
                    # Stop requested mid-page: keep the cursor so the page is redone.
                    report.status = JobStatus.STOPPED
                    break

                for item_id, error in zip(ids, results):
                    if error:
                        report.failed += 1
                        report.errors.append(ItemError(item_id=str(item_id), error=error))
                    else:
                        report.processed += 1

                report.pages += 1
                report.cursor = str(ids[-1])
                await self._with_retry(f"{job.name}: save checkpoint", lambda: self._save(report))

            await self._with_retry(f"{job.name}: save checkpoint", lambda: self._save(report))
        except StoreUnavailable as e:
            report.status = JobStatus.ABORTED
            await self._record_abort(report, e)
            raise BatchAborted(job.name, report.cursor, e) from e

        logger.info(
            "Job %s %s: %d processed, %d failed, %d pages, cursor %s",
            job.name, report.status.value, report.processed, report.failed, report.pages, report.cursor,
        )
        return report

    async def _start(self, job_name: str, resume: bool) -> tuple[str | None, int, int]:
        async with self.session_factory() as db:
            checkpoint = await load_checkpoint(db, job_name)
            if checkpoint is None:
                checkpoint = JobCheckpoint(id=uuid.uuid4(), job_name=job_name)
                db.add(checkpoint)
            if not resume or checkpoint.status is JobStatus.COMPLETED:
                checkpoint.cursor = None
                checkpoint.processed_count = 0
                checkpoint.failed_count = 0
            checkpoint.status = JobStatus.RUNNING
            checkpoint.last_error = None
            cursor, processed, failed = checkpoint.cursor, checkpoint.processed_count, checkpoint.failed_count
            await db.commit()
            return cursor, processed or 0, failed or 0

    async def _save(self, report: BatchReport) -> None:
        async with self.session_factory() as db:
            checkpoint = await load_checkpoint(db, report.job_name)
            checkpoint.cursor = report.cursor
            checkpoint.processed_count = report.processed
            checkpoint.failed_count = report.failed
            checkpoint.status = report.status
            await db.commit()

    async def _record_abort(self, report: BatchReport, error: Exception) -> None:
        try:
            async with self.session_factory() as db:
                checkpoint = await load_checkpoint(db, report.job_name)
                if checkpoint is not None:
                    checkpoint.status = JobStatus.ABORTED
                    checkpoint.last_error = str(error)[:2000]
                    await db.commit()
        except DBAPIError as e:
            logger.error("Could not mark job %s aborted: %s", report.job_name, e)

    async def _fetch(self, job: BatchJob, after: uuid.UUID | None, page_size: int) -> list[uuid.UUID]:
        async with self.session_factory() as db:
            return await job.fetch_page(db, after, page_size)

    async def _run_item(self, job: BatchJob, item_id: uuid.UUID, semaphore: asyncio.Semaphore) -> str | None:
        """Returns "" on success, an error message on failure, None if skipped for a stop request."""
        async with semaphore:
            if self.stop_event.is_set():
                return None

            async def attempt() -> None:
                async with self.session_factory() as db:
                    await job.process_item(db, item_id)
                    await db.commit()

            try:
                await self._with_retry(f"{job.name}: item {item_id}", attempt)
            except StoreUnavailable:
                raise
            except Exception as e:
                logger.exception("Job %s failed on item %s", job.name, item_id)
                return f"{type(e).__name__}: {e}"
            return ""

    async def _with_retry(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempts = max(1, self.settings.store_retry_attempts)
        attempt = 0
        while True:
            try:
                return await fn()
            except (StoreUnavailable, DBAPIError) as e:
                if not is_store_unavailable(e):
                    raise
                if attempt >= attempts - 1:
                    logger.error("Store unavailable during %s after %d attempts: %s", operation, attempts, e)
                    if isinstance(e, StoreUnavailable):
                        raise
                    raise StoreUnavailable(str(e)) from e
                wait_time = self.settings.store_retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Store unavailable during %s (attempt %d/%d), retrying in %.1fs: %s",
                    operation, attempt + 1, attempts, wait_time, e,
                )
                await self._sleep(wait_time)
                attempt += 1
