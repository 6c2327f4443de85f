import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

logger = logging.getLogger(__name__)


# ---------- Async subprocess helper (non-blocking, streamed logs) ----------
async def run_subprocess_streamed(
    cmd: List[str],
    timeout: Optional[int] = None,
    env: Optional[dict] = None,
    cwd: Optional[str] = None,
) -> Tuple[int, str, str]:
    """
    Run a subprocess without blocking the event loop.
    Streams stdout/stderr to debug logs and also returns full captured text.
    """
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
        cwd=cwd,
    )
    stdout_chunks, stderr_chunks = [], []

    async def _pipe(stream, sink):
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode(errors="ignore")
            sink.append(text)
            logger.debug(text.rstrip("\n"))

    try:
        await asyncio.wait_for(
            asyncio.gather(
                _pipe(proc.stdout, stdout_chunks),
                _pipe(proc.stderr, stderr_chunks),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise TimeoutError(f"Subprocess timed out after {timeout}s: {' '.join(cmd)}")
    rc = await proc.wait()
    return rc, "".join(stdout_chunks), "".join(stderr_chunks)


JobHandler = Callable[[str], Awaitable[None]]


# ---------- In-process runner ----------
class LocalJobRunner:
    """
    Runs jobs as asyncio tasks in the API process.
    At most `max_concurrent_jobs` run at once; the rest stay pending until a slot frees.
    `shutdown()` waits for every submitted job. Jobs still running after
    `shutdown_timeout` seconds are interrupted, which fails them.
    """

    def __init__(self, max_concurrent_jobs: int = 2, shutdown_timeout: Optional[float] = None):
        self.max_concurrent_jobs = max_concurrent_jobs
        self.shutdown_timeout = shutdown_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent_jobs)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    async def submit(
        self,
        job_id: str,
        handler: JobHandler,
        on_interrupted: Optional[JobHandler] = None,
    ) -> None:
        task = asyncio.create_task(self._run(job_id, handler, on_interrupted), name=f"job-{job_id}")
        # Strong reference until done, or the task can be garbage collected mid-run
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.info(f"Job {job_id} queued locally ({len(self._tasks)} in flight)")

    async def _run(self, job_id: str, handler: JobHandler, on_interrupted: Optional[JobHandler]) -> None:
        started = False
        try:
            async with self._semaphore:
                started = True
                await handler(job_id)
        except asyncio.CancelledError:
            # A started handler records its own interruption
            if not started and on_interrupted is not None:
                await on_interrupted(job_id)
            raise

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} crashed: {exc}", exc_info=exc)

    async def join(self) -> None:
        """Waits for every submitted job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} background jobs to finish...")
        if self.shutdown_timeout is None:
            await self.join()
        elif self._tasks:
            # asyncio.wait never cancels what it waits on
            _, pending = await asyncio.wait(list(self._tasks), timeout=self.shutdown_timeout)
            if pending:
                logger.warning(f"Interrupting {len(pending)} jobs still running after {self.shutdown_timeout}s")
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Local job runner stopped")


# ---------- ARQ runner ----------
class ArqJobRunner:
    """Enqueues jobs on Redis; `worker.WorkerSettings` picks them up."""

    task_name = "process_job_task"

    def __init__(self, redis_url: str):
        self.redis_settings = RedisSettings.from_dsn(redis_url)
        self._pool: Optional[ArqRedis] = None

    async def submit(
        self,
        job_id: str,
        handler: JobHandler,
        on_interrupted: Optional[JobHandler] = None,
    ) -> None:
        if self._pool is None:
            logger.info("Initializing ARQ Redis connection pool")
            self._pool = await create_pool(self.redis_settings)
        await self._pool.enqueue_job(self.task_name, job_id, _job_id=job_id)
        logger.info(f"Job {job_id} enqueued on ARQ")

    async def shutdown(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("ARQ Redis pool closed.")
