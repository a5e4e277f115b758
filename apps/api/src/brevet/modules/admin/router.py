"""
Admin Jobs Router

Inspect and operate the background consistency jobs. Every endpoint requires
an authenticated admin.

Endpoints:
- GET /admin/jobs - List registered jobs
- POST /admin/jobs/{job_id}/trigger - Run a job now (single-flight applies)
- POST /admin/jobs/{job_id}/pause - Stop scheduled firings of a job
- POST /admin/jobs/{job_id}/resume - Resume scheduled firings of a job
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from brevet.core.auth import AuthContext, RoleGate, get_auth_context
from brevet.core.scheduler import JobScheduler
from brevet.modules.users.models import UserRole

logger = logging.getLogger(__name__)

require_admin = RoleGate({UserRole.ADMIN})

router = APIRouter(dependencies=[Depends(get_auth_context), Depends(require_admin)])


def get_scheduler(request: Request) -> JobScheduler:
    """FastAPI dependency returning the scheduler started at startup."""
    return request.app.state.scheduler


def _job_not_found(job_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "JOB_NOT_FOUND",
            "message": f"Job '{job_id}' is not registered.",
        },
    )


@router.get("/jobs")
async def list_jobs(scheduler: JobScheduler = Depends(get_scheduler)) -> dict[str, Any]:
    """List registered jobs with their running/paused state and next run time."""
    return {"jobs": scheduler.list_registered_jobs()}


@router.post("/jobs/{job_id}/trigger")
async def trigger_job(
    job_id: str,
    scheduler: JobScheduler = Depends(get_scheduler),
    admin: AuthContext = Depends(require_admin),
) -> dict[str, Any]:
    """
    Run a job immediately and return its outcome.

    A job that is already running is not started again; the response status
    is then "skipped".
    """
    logger.info(f"Admin {admin.user_id} triggered job {job_id}")
    try:
        return await scheduler.trigger_job_manually(job_id)
    except ValueError as e:
        raise _job_not_found(job_id) from e


@router.post("/jobs/{job_id}/pause")
async def pause_job(
    job_id: str,
    scheduler: JobScheduler = Depends(get_scheduler),
    admin: AuthContext = Depends(require_admin),
) -> dict[str, Any]:
    """Pause scheduled firings of a job."""
    if not scheduler.pause_job(job_id):
        raise _job_not_found(job_id)
    logger.info(f"Admin {admin.user_id} paused job {job_id}")
    return {"job_id": job_id, "is_paused": True}


@router.post("/jobs/{job_id}/resume")
async def resume_job(
    job_id: str,
    scheduler: JobScheduler = Depends(get_scheduler),
    admin: AuthContext = Depends(require_admin),
) -> dict[str, Any]:
    """Resume scheduled firings of a job."""
    if not scheduler.resume_job(job_id):
        raise _job_not_found(job_id)
    logger.info(f"Admin {admin.user_id} resumed job {job_id}")
    return {"job_id": job_id, "is_paused": False}
