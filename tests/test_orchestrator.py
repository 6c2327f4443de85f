# tests/test_orchestrator.py
import asyncio
import os

import pytest

from conftest import FakeEncoder, FakeImageProvider, FakeScriptProvider, FakeVoiceProvider, RecordingJobStore
from shorts_api.exceptions import InputError, ProviderError, ScriptGenerationFailed
from shorts_api.models import JobStatus
from shorts_api.providers.fallback import FallbackImageGenerator
from shorts_api.video_generator import MediaPipeline


def _run_job(orchestrator, topic="octopus facts", duration=60):
    async def scenario():
        job = await orchestrator.create_job(topic, duration)
        await orchestrator.process_job(job.id)
        return await orchestrator.get_job(job.id)

    return asyncio.run(scenario())


def _messages(job):
    return [entry.split("] ", 1)[1] for entry in job.logs]


def test_create_job_returns_pending_record(make_orchestrator):
    orchestrator = make_orchestrator()

    async def scenario():
        job = await orchestrator.create_job("  octopus facts ", 45)
        return job, await orchestrator.get_job(job.id)

    job, stored = asyncio.run(scenario())
    assert job.status == JobStatus.PENDING
    assert job.progress == 0
    assert job.id and job.created_at is not None
    assert job.topic == "octopus facts"
    assert stored == job
    assert _messages(job) == ["Job created for topic: octopus facts"]


@pytest.mark.parametrize("topic,duration", [("", 60), ("   ", 60), ("x", 0), ("x", -5), ("x", True), ("x", 1.5)])
def test_create_job_rejects_bad_input(make_orchestrator, topic, duration):
    with pytest.raises(InputError):
        asyncio.run(make_orchestrator().create_job(topic, duration))


def test_ids_are_unique(make_orchestrator):
    orchestrator = make_orchestrator()

    async def scenario():
        return [(await orchestrator.create_job("t", 30)).id for _ in range(20)]

    assert len(set(asyncio.run(scenario()))) == 20


def test_successful_job(make_orchestrator, dirs):
    store = RecordingJobStore()
    voice = FakeVoiceProvider()
    orchestrator = make_orchestrator(store=store, voice_provider=voice)

    job = _run_job(orchestrator)

    assert job.status == JobStatus.COMPLETED
    assert job.progress == 100
    assert job.completed_at is not None
    assert job.error is None
    assert job.video_path == os.path.join(dirs["outputs_dir"], f"{job.id}.mp4")
    assert os.path.exists(job.video_path)
    assert not os.path.exists(os.path.join(dirs["uploads_dir"], job.id))

    history = store.history[job.id]
    progress = [p for _, p in history]
    assert progress == sorted(progress)
    statuses = [s for s, _ in history]
    assert statuses[0] == JobStatus.PROCESSING
    assert statuses[-1] == JobStatus.COMPLETED
    assert 36 in progress and 48 in progress and 60 in progress

    meta = job.metadata
    assert meta.script.startswith("SCENE 1:")
    assert len(meta.scenes) == 3
    assert all(s.image_path for s in meta.scenes)
    assert len(meta.image_paths) == 3
    assert meta.audio_path.endswith("narration.mp3")
    assert meta.subtitle_path.endswith("subtitles.srt")
    assert abs(sum(s.duration for s in meta.scenes) - 60) < 1e-6

    assert voice.texts == [" ".join(s.text for s in meta.scenes)]
    messages = _messages(job)
    assert "Script generated with 3 scenes." in messages
    assert "Image 3/3 generated." in messages
    assert messages[-1] == "Job completed successfully!"


def test_non_eligible_image_failure_on_scene_two(make_orchestrator, dirs):
    primary = FakeImageProvider("primary", {"scene_2": PermissionError("read-only file system")})
    secondary = FakeImageProvider("secondary")
    encoder = FakeEncoder()
    orchestrator = make_orchestrator(
        image_generator=FallbackImageGenerator(primary, secondary),
        media_pipeline=MediaPipeline(encoder),
    )

    job = _run_job(orchestrator)

    assert job.status == JobStatus.FAILED
    assert "read-only file system" in job.error
    assert len(job.metadata.image_paths) == 1
    assert job.metadata.image_paths[0].endswith("scene_1_primary.png")
    assert job.progress == 36
    assert job.completed_at is None and job.video_path is None
    assert secondary.calls == []
    assert encoder.calls == []
    assert _messages(job)[-1] == "ERROR: read-only file system"
    assert not os.path.exists(os.path.join(dirs["uploads_dir"], job.id))
    assert not os.path.exists(os.path.join(dirs["outputs_dir"], f"{job.id}.mp4"))


def test_quota_error_falls_back_per_scene(make_orchestrator):
    primary = FakeImageProvider("primary", {"scene_1": ProviderError("insufficient quota", status_code=429)})
    orchestrator = make_orchestrator(
        image_generator=FallbackImageGenerator(primary, FakeImageProvider("secondary")),
    )

    job = _run_job(orchestrator)

    assert job.status == JobStatus.COMPLETED
    assert job.metadata.image_paths[0].endswith("scene_1_secondary.png")
    assert job.metadata.image_paths[1].endswith("scene_2_primary.png")


def test_script_failure(make_orchestrator):
    orchestrator = make_orchestrator(
        script_provider=FakeScriptProvider(error=ScriptGenerationFailed("Script generation failed (401): bad key")),
    )

    job = _run_job(orchestrator)

    assert job.status == JobStatus.FAILED
    assert job.error == "Script generation failed (401): bad key"
    assert job.progress == 5
    assert job.metadata.script is None


def test_empty_script_fails_the_job(make_orchestrator):
    job = _run_job(make_orchestrator(script_provider=FakeScriptProvider(script="  \n\n ")))

    assert job.status == JobStatus.FAILED
    assert "empty" in job.error.lower()


def test_media_failure_discards_partial_output(make_orchestrator, dirs):
    orchestrator = make_orchestrator(media_pipeline=MediaPipeline(FakeEncoder(fail_on="mux_audio")))

    job = _run_job(orchestrator)

    assert job.status == JobStatus.FAILED
    assert "stage 'audio'" in job.error
    assert job.progress == 80
    assert job.metadata.subtitle_path is not None
    assert not os.path.exists(os.path.join(dirs["uploads_dir"], job.id))
    assert not os.path.exists(os.path.join(dirs["outputs_dir"], f"{job.id}.mp4"))


def test_process_job_is_not_rerun_on_terminal_job(make_orchestrator):
    script = FakeScriptProvider()
    orchestrator = make_orchestrator(script_provider=script)

    async def scenario():
        job = await orchestrator.create_job("t", 30)
        await orchestrator.process_job(job.id)
        await orchestrator.process_job(job.id)
        await orchestrator.process_job("unknown-id")

    asyncio.run(scenario())
    assert len(script.calls) == 1


def test_delete_job_twice_is_safe(make_orchestrator):
    orchestrator = make_orchestrator()

    async def scenario():
        job = await orchestrator.create_job("t", 30)
        await orchestrator.process_job(job.id)
        video_path = (await orchestrator.get_job(job.id)).video_path
        await orchestrator.delete_job(job.id)
        await orchestrator.delete_job(job.id)
        return video_path, await orchestrator.get_job(job.id), await orchestrator.list_jobs()

    video_path, job, jobs = asyncio.run(scenario())
    assert job is None
    assert jobs == []
    assert not os.path.exists(video_path)


def test_delete_while_processing_does_not_crash(make_orchestrator, dirs):
    store = RecordingJobStore()
    holder = {}

    async def delete_mid_run():
        await store.delete(holder["id"])

    orchestrator = make_orchestrator(store=store, voice_provider=FakeVoiceProvider(on_call=delete_mid_run))

    async def scenario():
        job = await orchestrator.create_job("t", 30)
        holder["id"] = job.id
        await orchestrator.process_job(job.id)
        return job.id

    job_id = asyncio.run(scenario())
    assert asyncio.run(store.get(job_id)) is None
    assert not os.path.exists(os.path.join(dirs["outputs_dir"], f"{job_id}.mp4"))
    assert not os.path.exists(os.path.join(dirs["uploads_dir"], job_id))
