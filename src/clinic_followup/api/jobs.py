"""Batch job triggers.

Each named job is one stateless pass; an external cron (or the
in-process scheduler) calls these on a cadence. Re-running a job is
always safe.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from clinic_followup.core.logging import get_logger
from clinic_followup.dependencies import ChannelsDep, DatabaseDep, SettingsDep
from clinic_followup.workflows.jobs import JOBS, run_job

log = get_logger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("")
async def list_jobs() -> dict[str, Any]:
    """List the registered job names."""
    return {"jobs": sorted(JOBS)}


@router.post("/{job_name}")
async def trigger_job(
    job_name: str,
    db: DatabaseDep,
    channels: ChannelsDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    """Run one batch job now.

    Returns:
        ``{processed, results}`` with one entry per appointment attempted
    """
    log.info("Job triggered", job=job_name)
    batch = await run_job(job_name, db, channels, settings)
    return batch.to_dict()
