# file: shorts_api/container.py
"""
Builds the long-lived collaborators once per process: job store, providers
(sharing one aiohttp session), media pipeline, runner and orchestrator.
Used by the API lifespan, the ARQ worker and the CLI.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from shorts_api.config import Settings
from shorts_api.crud import SqlJobStore
from shorts_api.database import create_engine, init_models
from shorts_api.job_store import InMemoryJobStore, JobStore
from shorts_api.orchestrator.job_orchestrator import JobOrchestrator, JobRunner
from shorts_api.providers.base import VoiceProvider
from shorts_api.providers.fallback import FallbackImageGenerator
from shorts_api.providers.images import GeminiImageProvider, OpenAIImageProvider
from shorts_api.providers.script import GroqScriptProvider
from shorts_api.providers.voice import ElevenLabsVoiceProvider, GTTSVoiceProvider
from shorts_api.tasks import ArqJobRunner, LocalJobRunner
from shorts_api.video_generator import FFmpegEncoder, MediaPipeline

logger = logging.getLogger(__name__)


@dataclass
class Components:
    settings: Settings
    store: JobStore
    orchestrator: JobOrchestrator
    runner: Optional[JobRunner]
    session: Optional[aiohttp.ClientSession] = None
    script_provider: Optional[GroqScriptProvider] = None

    async def close(self) -> None:
        if self.runner is not None and hasattr(self.runner, "shutdown"):
            await self.runner.shutdown()
        if self.script_provider is not None:
            await self.script_provider.close()
        if self.session is not None and not self.session.closed:
            await self.session.close()
        await self.store.close()
        logger.info("Components closed.")


async def build_store(settings: Settings) -> JobStore:
    if settings.job_store_backend == "database":
        engine = create_engine(settings.database_url.get_secret_value())
        await init_models(engine)
        logger.info("Using database job store")
        return SqlJobStore(engine)
    logger.info("Using in-memory job store")
    return InMemoryJobStore()


def build_runner(settings: Settings) -> JobRunner:
    if settings.task_backend == "arq":
        return ArqJobRunner(settings.redis_url)
    return LocalJobRunner(settings.max_concurrent_jobs, shutdown_timeout=settings.shutdown_timeout)


def build_voice_provider(settings: Settings, session: aiohttp.ClientSession) -> VoiceProvider:
    if settings.voice_provider == "gtts":
        return GTTSVoiceProvider()
    return ElevenLabsVoiceProvider(
        session,
        settings.elevenlabs_api_key.get_secret_value(),
        voice_id=settings.elevenlabs_voice_id,
        model_id=settings.elevenlabs_model_id,
        timeout=settings.http_timeout,
    )


async def build_components(
    settings: Settings,
    runner: Optional[JobRunner] = None,
    store: Optional[JobStore] = None,
) -> Components:
    """`runner=None` builds a worker-side orchestrator that never submits jobs."""
    missing = settings.missing_credentials()
    if missing:
        # Not fatal: the affected provider call fails the job with a configuration error
        logger.warning(f"Missing provider credentials: {', '.join(missing)}")

    store = store or await build_store(settings)
    session = aiohttp.ClientSession()
    script_provider = GroqScriptProvider(
        settings.groq_api_key.get_secret_value(),
        model=settings.script_model,
        timeout=settings.http_timeout,
    )
    image_generator = FallbackImageGenerator(
        primary=OpenAIImageProvider(
            session, settings.openai_api_key.get_secret_value(), model=settings.image_model, timeout=settings.http_timeout
        ),
        secondary=GeminiImageProvider(
            session, settings.gemini_api_key.get_secret_value(), model=settings.gemini_model, timeout=settings.http_timeout
        ),
    )
    pipeline = MediaPipeline(FFmpegEncoder(settings.ffmpeg_binary, timeout=settings.ffmpeg_timeout))

    orchestrator = JobOrchestrator(
        store=store,
        script_provider=script_provider,
        voice_provider=build_voice_provider(settings, session),
        image_generator=image_generator,
        media_pipeline=pipeline,
        uploads_dir=settings.uploads_dir,
        outputs_dir=settings.outputs_dir,
        runner=runner,
    )
    return Components(
        settings=settings,
        store=store,
        orchestrator=orchestrator,
        runner=runner,
        session=session,
        script_provider=script_provider,
    )
