# tests/conftest.py
import os
from typing import Dict, List, Optional

import pytest

from shorts_api.exceptions import EncoderError
from shorts_api.job_store import InMemoryJobStore
from shorts_api.orchestrator.job_orchestrator import JobOrchestrator
from shorts_api.providers.base import ImageProvider, ScriptProvider, VoiceProvider
from shorts_api.providers.fallback import FallbackImageGenerator
from shorts_api.video_generator import MediaPipeline, VideoEncoder

THREE_SCENE_SCRIPT = (
    "SCENE 1: Octopuses have three hearts.\n"
    "SCENE 2: Their blood is blue, thanks to copper.\n"
    "SCENE 3: Follow for more ocean facts!"
)


def touch(path: str, data: bytes = b"") -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(data)
    return path


class FakeScriptProvider(ScriptProvider):
    name = "fake-script"

    def __init__(self, script: str = THREE_SCENE_SCRIPT, error: Optional[Exception] = None):
        self.script = script
        self.error = error
        self.calls: List[tuple] = []

    async def generate(self, topic, duration_seconds):
        self.calls.append((topic, duration_seconds))
        if self.error is not None:
            raise self.error
        return self.script


class FakeVoiceProvider(VoiceProvider):
    name = "fake-voice"

    def __init__(self, on_call=None):
        self.texts: List[str] = []
        self.on_call = on_call

    async def synthesize(self, text, output_dir):
        self.texts.append(text)
        if self.on_call is not None:
            await self.on_call()
        return touch(os.path.join(output_dir, "narration.mp3"), b"ID3")


class FakeImageProvider(ImageProvider):
    def __init__(self, name: str, failures: Optional[Dict[str, Exception]] = None):
        self.name = name
        self.failures = failures or {}
        self.calls: List[str] = []

    async def generate(self, prompt, output_dir, stem):
        self.calls.append(stem)
        error = self.failures.get(stem)
        if error is not None:
            raise error
        return touch(os.path.join(output_dir, f"{stem}_{self.name}.png"), b"png")


class FakeEncoder(VideoEncoder):
    """Writes empty files where ffmpeg would write videos."""

    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.calls: List[str] = []

    async def _produce(self, operation: str, output_path: str) -> None:
        self.calls.append(operation)
        if operation == self.fail_on:
            raise EncoderError(operation, 1, "Invalid data found when processing input")
        touch(output_path)

    async def make_clip_from_image(self, image_path, duration, output_path):
        await self._produce("make_clip_from_image", output_path)

    async def concat(self, clip_paths, output_path):
        await self._produce("concat", output_path)

    async def mux_audio(self, video_path, audio_path, output_path):
        await self._produce("mux_audio", output_path)

    async def burn_subtitles(self, video_path, subtitle_path, output_path):
        await self._produce("burn_subtitles", output_path)


class RecordingJobStore(InMemoryJobStore):
    """In-memory store that keeps every (status, progress) a job passed through."""

    def __init__(self):
        super().__init__()
        self.history: Dict[str, List[tuple]] = {}

    async def update(self, job_id, fields):
        await super().update(job_id, fields)
        job = await self.get(job_id)
        if job is not None:
            self.history.setdefault(job_id, []).append((job.status, job.progress))


@pytest.fixture
def dirs(tmp_path):
    return {"uploads_dir": str(tmp_path / "uploads"), "outputs_dir": str(tmp_path / "outputs")}


@pytest.fixture
def make_orchestrator(dirs):
    """Builds an orchestrator over fakes; any collaborator can be overridden by keyword."""

    def _make(**overrides) -> JobOrchestrator:
        parts = {
            "store": RecordingJobStore(),
            "script_provider": FakeScriptProvider(),
            "voice_provider": FakeVoiceProvider(),
            "image_generator": FallbackImageGenerator(
                FakeImageProvider("primary"), FakeImageProvider("secondary")
            ),
            "media_pipeline": MediaPipeline(FakeEncoder()),
            "runner": None,
            **dirs,
        }
        parts.update(overrides)
        return JobOrchestrator(**parts)

    return _make
