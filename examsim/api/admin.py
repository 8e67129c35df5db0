from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from rq.exceptions import NoSuchJobError
from rq.job import Job
from examsim.api.deps import require_admin_token
from examsim.core.config import settings
from examsim.jobs.queue import queue, redis
from examsim.jobs.stats_job import rebuild_counters_job

router = APIRouter(dependencies=[Depends(require_admin_token)])

class StartRebuild(BaseModel):
    dry_run: bool = False

class RebuildStatus(BaseModel):
    state: str
    questions: int | None = None
    attempts: int | None = None
    result: dict | None = None

@router.post("/stats/rebuild", status_code=status.HTTP_202_ACCEPTED)
def start_rebuild(payload: StartRebuild | None = None):
    dry_run = payload.dry_run if payload else False
    job = queue.enqueue(rebuild_counters_job, dry_run, job_timeout=settings.RQ_JOB_TIMEOUT)
    return {"job_id": job.get_id()}

@router.get("/stats/rebuild/{job_id}", response_model=RebuildStatus)
def rebuild_status(job_id: str):
    try:
        job = Job.fetch(job_id, connection=redis)
    except NoSuchJobError:
        raise HTTPException(404, "Job not found")
    meta = job.meta or {}
    job_status = job.get_status()
    state = meta.get("state") or getattr(job_status, "value", str(job_status))
    return RebuildStatus(
        state=state,
        questions=meta.get("questions"),
        attempts=meta.get("attempts"),
        result=job.return_value() if state == "done" else None,
    )
