"""Command-line entrypoint.

Usage:
    python -m x402_transfer_sync list-jobs
    python -m x402_transfer_sync run base-sync-transfers-bitquery
    python -m x402_transfer_sync run --all
    python -m x402_transfer_sync init-db
    python -m x402_transfer_sync show-config

`run` is what the external scheduler invokes on each cron tick. It exits 1
when a sync fails (so the scheduler records a failed run) and 2 on
configuration errors.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING

from pydantic import ValidationError

from x402_transfer_sync.errors import FacilitatorConfigError, SyncError

if TYPE_CHECKING:
    import httpx

    from x402_transfer_sync.config import Settings
    from x402_transfer_sync.jobs import ChainSyncConfig
    from x402_transfer_sync.models import Provider

logger = logging.getLogger("x402_transfer_sync")

EXIT_OK = 0
EXIT_SYNC_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _configure_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="x402-transfer-sync",
        description="Incrementally sync facilitator USDC transfers into the database.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list-jobs", help="List configured sync jobs")

    run = sub.add_parser("run", help="Run one invocation of a sync job")
    target = run.add_mutually_exclusive_group(required=True)
    target.add_argument("job_id", nargs="?", help="Job id, e.g. base-sync-transfers-bitquery")
    target.add_argument("--all", action="store_true", help="Run every enabled job in turn")

    sub.add_parser("init-db", help="Create tables (use Alembic for managed databases)")
    sub.add_parser("show-config", help="Print settings with secrets redacted")
    return parser


def _prepare_run(
    settings: Settings, job_ids: Sequence[str] | None
) -> tuple[list[ChainSyncConfig], dict[Provider, str | httpx.Auth]]:
    """Resolve jobs and their credentials before any sync I/O.

    Raises:
        KeyError: Unknown job id.
        ValueError: Missing endpoint or credential.
    """
    from x402_transfer_sync.jobs import JOBS, get_job

    jobs = [get_job(j) for j in job_ids] if job_ids else [j for j in JOBS if j.enabled]
    auths: dict[Provider, str | httpx.Auth] = {}
    for job in jobs:
        if job.enabled:
            settings.validate_requirements(job)
            auths[job.provider] = settings.auth_for(job.provider)
    return jobs, auths


async def _run_jobs(
    settings: Settings,
    jobs: Sequence[ChainSyncConfig],
    auths: dict[Provider, str | httpx.Auth],
) -> int:
    from x402_transfer_sync.client import IndexerClient
    from x402_transfer_sync.orchestrator import SyncOrchestrator
    from x402_transfer_sync.storage.database import DatabaseManager

    def client_factory(job: ChainSyncConfig) -> IndexerClient:
        return IndexerClient(
            settings.api_url_for(job),
            auths[job.provider],
            timeout_seconds=settings.timeout_for(job.provider),
        )

    db = DatabaseManager(settings.database.url)
    orchestrator = SyncOrchestrator(db.session_factory, client_factory)
    exit_code = EXIT_OK
    try:
        for job in jobs:
            try:
                result = await orchestrator.run_with_budget(job)
            except SyncError as e:
                logger.error("Sync job failed: job=%s error=%s", job.job_id, e)
                exit_code = EXIT_SYNC_FAILED
                continue
            except Exception:
                logger.exception("Sync job failed unexpectedly: job=%s", job.job_id)
                exit_code = EXIT_SYNC_FAILED
                continue
            if not result.skipped:
                logger.info(
                    "Job complete: job=%s fetched=%d saved=%d",
                    result.job_id,
                    result.total_fetched,
                    result.total_saved,
                )
    finally:
        await db.dispose_async()
    return exit_code


async def _init_db(settings: Settings) -> int:
    from x402_transfer_sync.storage.database import DatabaseManager

    db = DatabaseManager(settings.database.url)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    # Configuration phase: failures here exit 2 before any job runs.
    try:
        # Importing the job table validates the facilitator registry.
        from x402_transfer_sync.config import get_settings
        from x402_transfer_sync.jobs import JOBS

        if args.command == "list-jobs":
            _configure_logging(logging.INFO)
            for job in JOBS:
                status = "enabled" if job.enabled else "disabled"
                print(
                    f"{job.job_id}\t{status}\tcron={job.cron}\tpagination={job.pagination.value}"
                    f"\tpage_size={job.page_size}\tfacilitators={len(job.facilitators())}"
                )
            return EXIT_OK

        settings = get_settings()
        _configure_logging(settings.get_logging_level())

        if args.command == "show-config":
            print(json.dumps(settings.redacted_summary(), indent=2))
            return EXIT_OK
        if args.command == "run":
            jobs, auths = _prepare_run(settings, None if args.all else [args.job_id])
    except (FacilitatorConfigError, ValidationError, ValueError, KeyError) as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    if args.command == "init-db":
        return asyncio.run(_init_db(settings))
    return asyncio.run(_run_jobs(settings, jobs, auths))


if __name__ == "__main__":
    sys.exit(main())
