from contextlib import asynccontextmanager
import logging
from typing import Optional
from fastapi import FastAPI

from app.adapters import jobrepository, tagrepository
from app.adapters.filefetcher import SchemeFileFetcher
from app.internal.config import NodeConfig
from app.routers import jobs, resources
from app.utils.jobpipeline import JobPipeline

logger = logging.getLogger(__name__)


def make_pipeline(config: NodeConfig) -> JobPipeline:
    return JobPipeline(
        config,
        tagrepository.factory(config.tagStore, config.tagStoreFile),
        jobrepository.factory("MEMORY"),
        SchemeFileFetcher(),
    )


def make_app(
    config: Optional[NodeConfig] = None,
    pipeline: Optional[JobPipeline] = None,
    root_path: str = "/",
) -> FastAPI:
    if pipeline is None:
        pipeline = make_pipeline(config or NodeConfig.from_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        recovered = await pipeline.recover()
        if recovered:
            logger.info(f"resumed supervision of {recovered} jobs")
        yield
        await pipeline.shutdown()

    app = FastAPI(root_path=root_path, lifespan=lifespan)
    app.state.pipeline = pipeline
    app.include_router(jobs.router)
    app.include_router(resources.router)
    return app
