from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import JSONResponse
from typing import Any, Dict, List
from app.internal.errors import JobNodeError
from app.models.job import Job
from app.models.jobrequest import JobRequest

from app.utils.jobpipeline import JobPipeline
from app.internal.dependencies import http_error, pipeline

router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
)

responses = {
    202: {"detail": ""},
    404: {"detail": ""},
    409: {"detail": ""},
    422: {"detail": ""},
    500: {"detail": ""},
    503: {"detail": ""},
}


@router.get("/", response_model=List[Job], responses=responses)
async def read_jobs(
    pipeline: JobPipeline = Depends(pipeline),
):
    return await pipeline.list_jobs()


@router.post("/", responses=responses)
async def create_job(
    request: JobRequest,
    pipeline: JobPipeline = Depends(pipeline),
):
    try:
        job = await pipeline.submit(request)
    except JobNodeError as e:
        raise http_error(e)
    return JSONResponse(
        status_code=202,
        content={"detail": f"jobId: {job.id}", "jobId": job.id},
    )


@router.get("/{jobId}", response_model=Job, responses=responses)
async def read_job(
    jobId: str,
    pipeline: JobPipeline = Depends(pipeline),
):
    try:
        return await pipeline.get(jobId)
    except JobNodeError as e:
        raise http_error(e)


@router.get("/{jobId}/status", responses=responses)
async def read_job_status(
    jobId: str,
    pipeline: JobPipeline = Depends(pipeline),
) -> Dict[str, Any]:
    try:
        job = await pipeline.get(jobId)
    except JobNodeError as e:
        raise http_error(e)
    return {
        "id": job.id,
        "status": job.status.value,
        "statusMsg": job.statusMsg,
        "failureKind": job.failureKind.value if job.failureKind else None,
        "failureStage": job.failureStage.value if job.failureStage else None,
    }


@router.delete("/{jobId}", responses=responses)
async def delete_job(
    jobId: str,
    pipeline: JobPipeline = Depends(pipeline),
):
    try:
        killed = await pipeline.kill(jobId, "Job was killed by user")
    except JobNodeError as e:
        raise http_error(e)
    if not killed:
        raise HTTPException(
            status_code=409, detail=f"job {jobId} is already finishing"
        )
    return JSONResponse(status_code=202, content={"detail": f"jobId: {jobId}"})
