"""
Generate Router
Starts, cancels and inspects video generation jobs.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..models.job import Job, JobAccepted, JobCreate, JobSummary
from ..services.event_broker import EventBroker, get_event_broker
from ..services.job_runner import JobRunner, get_job_runner
from ..utils.exceptions import JobNotFoundError
from ..utils.logger import get_logger

router = APIRouter(prefix="/generate", tags=["generate"])
logger = get_logger()


@router.post(
    "/video",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobAccepted,
    response_model_by_alias=True
)
async def generate_video(
    request: JobCreate,
    runner: JobRunner = Depends(get_job_runner)
):
    """Accept a prompt and start generating its video in the background."""
    job = runner.submit(request.prompt)
    return JobAccepted(event_id=job.id)


@router.post("/cancel/{job_id}")
async def cancel_generation(
    job_id: str,
    runner: JobRunner = Depends(get_job_runner),
    broker: EventBroker = Depends(get_event_broker)
):
    """Request cancellation of a running job."""
    if broker.get(job_id) is None:
        raise JobNotFoundError(job_id)

    if not runner.cancel(job_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found or already completed."
        )
    return {"message": "Video generation cancelled"}


@router.get("/jobs", response_model=List[JobSummary])
async def list_jobs(broker: EventBroker = Depends(get_event_broker)):
    """List all jobs of this process, newest first."""
    return [JobSummary.from_job(job) for job in broker.list_jobs()]


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str, broker: EventBroker = Depends(get_event_broker)):
    """Full job snapshot including its log buffer."""
    job = broker.get(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job
