"""
Admin API for Scheduled Jobs

Endpoints for managing and monitoring the background sweeps.
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import List
from pydantic import BaseModel

from freightbridge.core.deps import get_current_user
from freightbridge.services.scheduler_service import scheduler_service
from freightbridge.utils.permissions import ActorRole, CurrentUser, require_role

router = APIRouter(prefix="/api/admin/jobs", tags=["admin", "jobs"])


class JobStatus(BaseModel):
    """Job status response."""
    id: str
    name: str
    next_run: str | None
    trigger: str


class JobTriggerRequest(BaseModel):
    """Request to manually trigger a job."""
    job_id: str


@router.get("/", response_model=List[JobStatus])
def list_scheduled_jobs(current_user: CurrentUser = Depends(get_current_user)):
    """
    List all scheduled jobs with their status.
    Admin only.
    """
    require_role(current_user, ActorRole.ADMIN)
    return scheduler_service.get_job_status()


@router.post("/trigger")
def trigger_job(
    request: JobTriggerRequest,
    current_user: CurrentUser = Depends(get_current_user),
):
    """
    Bring a scheduled job's next run forward to now.
    Admin only.
    """
    require_role(current_user, ActorRole.ADMIN)

    success = scheduler_service.trigger_job(request.job_id)

    if not success:
        raise HTTPException(status_code=404, detail="Job not found")

    return {"message": f"Job {request.job_id} triggered successfully"}


@router.get("/health")
def scheduler_health(current_user: CurrentUser = Depends(get_current_user)):
    """
    Get scheduler health status.
    Admin only.
    """
    require_role(current_user, ActorRole.ADMIN)

    return {
        "scheduler_running": scheduler_service.scheduler.running,
        "total_jobs": len(scheduler_service.scheduler.get_jobs()),
        "jobs": scheduler_service.get_job_status()
    }


@router.post("/selection-sweep/run")
def run_selection_sweep(current_user: CurrentUser = Depends(get_current_user)):
    """
    Run the bidding window sweep now.
    Admin only.
    """
    require_role(current_user, ActorRole.ADMIN)
    selected = scheduler_service.run_selection_sweep()
    return {"message": "Bidding window sweep completed", "selected": selected}


@router.post("/booking-confirmation/run")
def run_booking_confirmation(current_user: CurrentUser = Depends(get_current_user)):
    """
    Confirm bookings still in flight now.
    Admin only.
    """
    require_role(current_user, ActorRole.ADMIN)
    confirmed = scheduler_service.run_booking_confirmation()
    return {"message": "Booking confirmation completed", "confirmed": confirmed}
