# shorts_api/orchestrator/job_orchestrator.py
"""
Job Orchestrator
----------------
Owns the per-job state machine `pending -> processing -> completed | failed`
and sequences the stages of one short:

  script -> scenes -> narration -> images (one by one) -> subtitles -> media

Every stage writes its result into the job record before the next one
starts. Any failure is caught by the outer handler, recorded on the job,
and the working directory is purged in every case.
"""

import asyncio
import logging
import math
import os
import uuid
from typing import Awaitable, Callable, List, Optional, Protocol

from shorts_api import files
from shorts_api.engine.parser import split_script_into_scenes
from shorts_api.engine.subtitles import write_subtitle_file
from shorts_api.exceptions import InputError
from shorts_api.job_store import JobStore, format_log_entry, utcnow
from shorts_api.models import JobStatus
from shorts_api.providers.base import ScriptProvider, VoiceProvider
from shorts_api.providers.fallback import FallbackImageGenerator
from shorts_api.schemas import Job, Scene
from shorts_api.video_generator import MediaPipeline

logger = logging.getLogger(__name__)

# Progress policy, on the job's 0-100 scale
PROGRESS_STARTED = 5
PROGRESS_SCRIPT = 15
PROGRESS_VOICE = 25
PROGRESS_IMAGES_SPAN = 35
PROGRESS_SUBTITLES = 65
SEGMENT_PROGRESS_RANGE = (65.0, 75.0)

INTERRUPTED_MESSAGE = "Interrupted by shutdown"


class JobRunner(Protocol):
    async def submit(
        self,
        job_id: str,
        handler: Callable[[str], Awaitable[None]],
        on_interrupted: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> None:
        ...


def image_progress(completed: int, total: int) -> int:
    return PROGRESS_VOICE + math.floor(completed / total * PROGRESS_IMAGES_SPAN)


def _progress_bar(percent: float) -> str:
    filled = min(10, int(percent // 10))
    return "█" * filled + "░" * (10 - filled)


class JobOrchestrator:
    def __init__(
        self,
        store: JobStore,
        script_provider: ScriptProvider,
        voice_provider: VoiceProvider,
        image_generator: FallbackImageGenerator,
        media_pipeline: MediaPipeline,
        uploads_dir: str,
        outputs_dir: str,
        runner: Optional[JobRunner] = None,
    ):
        self.store = store
        self.script_provider = script_provider
        self.voice_provider = voice_provider
        self.image_generator = image_generator
        self.media_pipeline = media_pipeline
        self.uploads_dir = uploads_dir
        self.outputs_dir = outputs_dir
        self.runner = runner

    # ------------------------------------------------------
    # CLIENT-FACING OPERATIONS
    # ------------------------------------------------------
    async def create_job(self, topic: str, duration: int) -> Job:
        """Stores a pending job and hands it to the runner. Returns without waiting for processing."""
        if not isinstance(topic, str) or not topic.strip():
            raise InputError("Topic must be a non-empty string")
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise InputError("Duration must be a positive integer number of seconds")

        topic = topic.strip()
        created_at = utcnow()
        job = Job(
            id=str(uuid.uuid4()),
            topic=topic,
            duration=duration,
            status=JobStatus.PENDING,
            progress=0,
            created_at=created_at,
            logs=[format_log_entry(f"Job created for topic: {topic}", created_at)],
        )
        job = await self.store.create(job)
        logger.info(f"Job {job.id} created (topic='{topic}', duration={duration}s)")

        if self.runner is not None:
            await self.runner.submit(job.id, self.process_job, on_interrupted=self.interrupt_job)
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self.store.get(job_id)

    async def list_jobs(self) -> List[Job]:
        return await self.store.get_all()

    async def delete_job(self, job_id: str) -> None:
        """Removes the record and the final video. Unknown ids are a no-op."""
        job = await self.store.get(job_id)
        if job is None:
            return
        if job.video_path:
            files.delete_file(job.video_path)
        await self.store.delete(job_id)
        logger.info(f"Job {job_id} deleted")

    # ------------------------------------------------------
    # BACKGROUND EXECUTION
    # ------------------------------------------------------
    async def _update_progress(self, job_id: str, percent: float, step_name: str) -> None:
        await self.store.update(job_id, {"progress": int(percent)})
        logger.info(f"PROGRESS: [{_progress_bar(percent)}] {percent:.1f}% - {step_name} ({job_id})")

    async def process_job(self, job_id: str) -> None:
        """Runs every stage for one job. Failures end up on the job record; only cancellation propagates."""
        job = await self.store.get(job_id)
        if job is None:
            logger.warning(f"Job {job_id} not found, nothing to process")
            return
        if job.status != JobStatus.PENDING:
            logger.warning(f"Job {job_id} is already {job.status.value}, skipping")
            return

        logger.info(f"TASK STARTED for job_id={job_id}")
        job_dir = files.get_job_dir(job_id, self.uploads_dir)
        output_path = files.get_output_path(job_id, self.outputs_dir)
        completed = False
        try:
            # 1) WORKING STORAGE
            await self.store.update(job_id, {"status": JobStatus.PROCESSING})
            await self.store.add_log(job_id, "Starting video generation...")
            files.ensure_dir(job_dir)
            files.ensure_dir(self.outputs_dir)
            await self._update_progress(job_id, PROGRESS_STARTED, "Started")

            # 2) SCRIPT -> SCENES
            await self.store.add_log(job_id, "Generating script...")
            script = await self.script_provider.generate(job.topic, job.duration)
            scenes = split_script_into_scenes(script, job.duration)
            await self.store.update(job_id, {"metadata": {"script": script, "scenes": scenes}})
            await self.store.add_log(job_id, f"Script generated with {len(scenes)} scenes.")
            await self._update_progress(job_id, PROGRESS_SCRIPT, "Script generated")

            # 3) NARRATION (one call for the whole script)
            await self.store.add_log(job_id, "Generating voice narration...")
            narration = " ".join(scene.text for scene in scenes)
            audio_path = await self.voice_provider.synthesize(narration, job_dir)
            await self.store.update(job_id, {"metadata": {"audio_path": audio_path}})
            await self.store.add_log(job_id, "Voice narration generated.")
            await self._update_progress(job_id, PROGRESS_VOICE, "Narration generated")

            # 4) IMAGES, sequential across scenes
            await self.store.add_log(job_id, "Generating images...")
            scenes = await self._generate_images(job_id, scenes, job_dir)

            # 5) SUBTITLES
            subtitle_path = write_subtitle_file(scenes, job_dir)
            await self.store.update(job_id, {"metadata": {"subtitle_path": subtitle_path}})
            await self.store.add_log(job_id, "Subtitles generated.")
            await self._update_progress(job_id, PROGRESS_SUBTITLES, "Subtitles generated")

            # 6) MEDIA PIPELINE
            await self.store.add_log(job_id, "Assembling video...")

            async def report(percent: float) -> None:
                await self._update_progress(job_id, percent, "Assembling video")

            video_path = await self.media_pipeline.run(
                scenes,
                audio_path,
                subtitle_path,
                job_dir,
                output_path,
                report=report,
                segment_range=SEGMENT_PROGRESS_RANGE,
            )

            # 7) COMPLETED
            await self.store.update(job_id, {
                "status": JobStatus.COMPLETED,
                "progress": 100,
                "completed_at": utcnow(),
                "video_path": video_path,
            })
            completed = True
            await self.store.add_log(job_id, "Job completed successfully!")
            if await self.store.get(job_id) is None:
                # Deleted while processing: the artifact has no owner
                logger.warning(f"Job {job_id} was deleted during processing, discarding {video_path}")
                files.delete_file(video_path)
            logger.info(f"TASK SUCCESS for job {job_id}. Path: {video_path}")
        except asyncio.CancelledError:
            if not completed:
                logger.warning(f"TASK INTERRUPTED for job {job_id}")
                await self._record_failure(job_id, INTERRUPTED_MESSAGE)
                files.delete_file(output_path)
            raise
        except Exception as e:
            # 8) FAILED
            message = str(e) or e.__class__.__name__
            logger.error(f"TASK FAILED for job {job_id}: {message}", exc_info=True)
            await self._record_failure(job_id, message)
            if not completed:
                files.delete_file(output_path)
        finally:
            files.cleanup_job_files(job_id, self.uploads_dir)
            logger.info(f"TASK FINISHED for job_id={job_id}")

    async def interrupt_job(self, job_id: str) -> None:
        """Fails a job that was stopped before it could run."""
        job = await self.store.get(job_id)
        if job is None or job.status.is_terminal:
            return
        logger.warning(f"Job {job_id} interrupted while {job.status.value}")
        await self._record_failure(job_id, INTERRUPTED_MESSAGE)

    async def _record_failure(self, job_id: str, message: str) -> None:
        try:
            await self.store.update(job_id, {"status": JobStatus.FAILED, "error": message})
            await self.store.add_log(job_id, f"ERROR: {message}")
        except Exception as store_err:
            logger.error(f"Could not record failure of job {job_id}: {store_err}")

    async def _generate_images(self, job_id: str, scenes: List[Scene], job_dir: str) -> List[Scene]:
        """One image per scene, in index order. Paths are persisted after every scene."""
        done: List[Scene] = []
        image_paths: List[str] = []
        total = len(scenes)
        for i, scene in enumerate(scenes):
            image_path = await self.image_generator.generate_for_scene(scene, job_dir)
            if not os.path.isfile(image_path):
                raise FileNotFoundError(f"Image for scene {scene.index} was not written: {image_path}")
            image_paths.append(image_path)
            done.append(scene.model_copy(update={"image_path": image_path}))
            await self.store.update(job_id, {
                "metadata": {"image_paths": list(image_paths), "scenes": done + scenes[i + 1:]},
            })
            await self.store.add_log(job_id, f"Image {i + 1}/{total} generated.")
            await self._update_progress(job_id, image_progress(i + 1, total), f"Image {i + 1}/{total}")
        return done
