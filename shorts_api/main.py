import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import FileResponse, JSONResponse

from shorts_api.auth import require_token
from shorts_api.config import Settings, get_settings
from shorts_api.container import Components, build_components, build_runner
from shorts_api.exceptions import InputError
from shorts_api.models import JobStatus
from shorts_api.orchestrator.job_orchestrator import JobOrchestrator
from shorts_api.schemas import HealthResponse, Job, JobCreateRequest

logging.basicConfig(level=get_settings().log_level, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

ComponentsFactory = Callable[[Settings], Awaitable[Components]]


async def build_app_components(settings: Settings) -> Components:
    return await build_components(settings, runner=build_runner(settings))


def get_orchestrator(request: Request) -> JobOrchestrator:
    return request.app.state.components.orchestrator


# --- API ENDPOINTS ---

router = APIRouter(prefix="/api/jobs", tags=["jobs"], dependencies=[Depends(require_token)])


@router.post("", response_model=Job, status_code=status.HTTP_201_CREATED)
async def create_job_endpoint(payload: JobCreateRequest, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    """Creates a pending job; processing continues in the background."""
    logger.info(f"Received request to create job: {payload.topic[:30]}...")
    return await orchestrator.create_job(payload.topic, payload.duration)


@router.get("", response_model=List[Job])
async def list_jobs_endpoint(orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    """All jobs, most recent first."""
    return await orchestrator.list_jobs()


@router.get("/{job_id}", response_model=Job)
async def read_job_endpoint(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    job = await orchestrator.get_job(job_id)
    if job is None:
        logger.warning(f"Job with id {job_id} not found.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job_endpoint(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    """Deletes the job and its video. Deleting an unknown id is not an error."""
    await orchestrator.delete_job(job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{job_id}/download")
async def download_job_video_endpoint(job_id: str, orchestrator: JobOrchestrator = Depends(get_orchestrator)):
    job = await orchestrator.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if job.status != JobStatus.COMPLETED or not job.video_path:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Video not ready")
    if not os.path.exists(job.video_path):
        logger.error(f"Video file missing for completed job {job_id}: {job.video_path}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video file not found")
    return FileResponse(job.video_path, media_type="video/mp4", filename=f"short-{job_id}.mp4")


# --- APPLICATION SETUP ---

def create_app(settings: Optional[Settings] = None, components_factory: Optional[ComponentsFactory] = None) -> FastAPI:
    settings = settings or get_settings()
    components_factory = components_factory or build_app_components

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manages application startup and shutdown events.
        - On startup: builds the store, providers, runner and orchestrator once.
        - On shutdown: stops the runner and releases clients and the store.
        """
        logger.info("Application starting up...")
        app.state.components = await components_factory(settings)
        logger.info("Application startup complete.")
        yield  # The application runs here

        logger.info("Application shutting down...")
        await app.state.components.close()

    app = FastAPI(
        title="AI Shorts Generator API",
        description="Turns a topic into a narrated, subtitled vertical video.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.exception_handler(InputError)
    async def input_error_handler(request: Request, exc: InputError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.get("/health", response_model=HealthResponse)
    async def health_endpoint():
        return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc))

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
