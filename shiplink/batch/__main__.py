"""Command line entry point for batch jobs.

    python -m shiplink.batch relink_orphans
    python -m shiplink.batch rebuild_workflow --restart --page-size 200
    python -m shiplink.batch reclassify_unknown --concurrency 4

SIGINT/SIGTERM request a cooperative stop: in-flight items finish, the
checkpoint stays at the last completed page, and the next run resumes there.
"""

import argparse
import asyncio
import logging
import signal
import sys

from shiplink.batch.jobs import RebuildWorkflowJob, ReclassifyUnknownJob, RelinkOrphansJob
from shiplink.batch.runner import BatchRunner
from shiplink.config import settings
from shiplink.database import async_session
from shiplink.dependencies import get_ingestion_pipeline, get_reconciliation_service
from shiplink.errors import BatchAborted

logger = logging.getLogger("shiplink.batch")

JOBS = {
    ReclassifyUnknownJob.name: lambda: ReclassifyUnknownJob(get_ingestion_pipeline()),
    RelinkOrphansJob.name: lambda: RelinkOrphansJob(get_reconciliation_service()),
    RebuildWorkflowJob.name: lambda: RebuildWorkflowJob(get_reconciliation_service()),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m shiplink.batch", description="Run a shiplink batch job")
    parser.add_argument("job", choices=sorted(JOBS), help="Job to run")
    parser.add_argument(
        "--restart",
        action="store_true",
        help="Ignore the saved checkpoint and start from the beginning",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=settings.store_page_size,
        help=f"Items per page (default: {settings.store_page_size})",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.batch_concurrency,
        help=f"Items processed in parallel (default: {settings.batch_concurrency})",
    )
    return parser


async def run(args: argparse.Namespace) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    runner = BatchRunner(async_session, settings, stop_event=stop)
    job = JOBS[args.job]()
    try:
        report = await runner.run(
            job, resume=not args.restart, page_size=args.page_size, concurrency=args.concurrency
        )
    except BatchAborted as e:
        logger.error("%s", e)
        return 2

    print(
        f"{report.job_name}: {report.status.value}, {report.processed} processed, "
        f"{report.failed} failed, cursor {report.cursor}"
    )
    for error in report.errors:
        print(f"  {error.item_id}: {error.error}", file=sys.stderr)
    return 0 if report.failed == 0 else 1


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )
    args = build_parser().parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
