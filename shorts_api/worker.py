import logging

from arq.connections import RedisSettings

from shorts_api.config import get_settings
from shorts_api.container import build_components

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


# ---------- ARQ lifecycle ----------

async def startup(ctx):
    # Worker-side components never submit jobs, they only process them
    ctx["components"] = await build_components(settings, runner=None)
    logger.info("Worker components ready.")


async def shutdown(ctx):
    components = ctx.get("components")
    if components is not None:
        await components.close()


# ---------- ARQ tasks ----------

async def process_job_task(ctx, job_id: str):
    """
    Runs the full pipeline for one job. The orchestrator records failures on
    the job itself, so nothing here is retried by ARQ.
    """
    logger.info(f"ARQ job: process_job_task job_id={job_id}")
    orchestrator = ctx["components"].orchestrator
    await orchestrator.process_job(job_id)
    job = await orchestrator.get_job(job_id)
    status = job.status.value if job else "deleted"
    logger.info(f"ARQ job finished job_id={job_id} status={status}")
    return status


class WorkerSettings:
    functions = [process_job_task]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_jobs = settings.max_concurrent_jobs
    job_timeout = 86_400  # 24h


if __name__ == "__main__":
    from arq.worker import run_worker
    run_worker(WorkerSettings)
