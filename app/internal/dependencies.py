from fastapi import HTTPException, Request

from app.adapters.tagrepository import AbstractTagRepository
from app.internal.errors import JobNodeError
from app.utils.admissioncontroller import AdmissionController
from app.utils.jobpipeline import JobPipeline


async def pipeline(request: Request) -> JobPipeline:
    p = getattr(request.app.state, "pipeline", None)
    if p is None:
        raise HTTPException(500, "job pipeline not configured")
    return p


async def tags(request: Request) -> AbstractTagRepository:
    return (await pipeline(request)).tags


async def admission(request: Request) -> AdmissionController:
    return (await pipeline(request)).admission


def http_error(e: JobNodeError) -> HTTPException:
    return HTTPException(status_code=e.code, detail=e.detail)
