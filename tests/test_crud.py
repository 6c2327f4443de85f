# tests/test_crud.py
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from shorts_api.crud import SqlJobStore
from shorts_api.database import create_engine, init_models
from shorts_api.exceptions import DuplicateJobId
from shorts_api.models import JobStatus
from shorts_api.schemas import Job, Scene

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _job(job_id, created_at=T0):
    return Job(
        id=job_id,
        topic="volcanoes",
        duration=45,
        created_at=created_at,
        logs=["[2024-05-01T12:00:00+00:00] Job created for topic: volcanoes"],
    )


async def _open_store(tmp_path) -> SqlJobStore:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    await init_models(engine)
    return SqlJobStore(engine)


def test_sql_store_round_trip(tmp_path):
    async def scenario():
        store = await _open_store(tmp_path)
        try:
            await store.create(_job("a"))
            with pytest.raises(DuplicateJobId):
                await store.create(_job("a"))

            scene = Scene(index=1, text="Lava", image_prompt="p", duration=45.0)
            await store.update("a", {"status": JobStatus.PROCESSING, "progress": 15})
            await store.update("a", {"metadata": {"script": "SCENE 1: Lava", "scenes": [scene]}})
            await store.update("a", {"metadata": {"audio_path": "/w/narration.mp3"}})
            await store.add_log("a", "Script generated with 1 scenes.")
            return await store.get("a")
        finally:
            await store.close()

    job = asyncio.run(scenario())
    assert job.status == JobStatus.PROCESSING
    assert job.progress == 15
    assert job.metadata.script == "SCENE 1: Lava"
    assert job.metadata.audio_path == "/w/narration.mp3"
    assert job.metadata.scenes[0].text == "Lava"
    assert len(job.logs) == 2
    assert job.logs[1].endswith("Script generated with 1 scenes.")


def test_sql_store_terminal_state_and_ordering(tmp_path):
    async def scenario():
        store = await _open_store(tmp_path)
        try:
            await store.create(_job("old", T0))
            await store.create(_job("new", T0 + timedelta(minutes=2)))
            await store.update("old", {"status": JobStatus.FAILED, "error": "boom"})
            await store.update("old", {"status": JobStatus.COMPLETED, "video_path": "/o/old.mp4"})
            await store.update("ghost", {"progress": 99})
            await store.add_log("ghost", "ignored")
            return [j.id for j in await store.get_all()], await store.get("old")
        finally:
            await store.close()

    order, old = asyncio.run(scenario())
    assert order == ["new", "old"]
    assert old.status == JobStatus.FAILED
    assert old.error == "boom"
    assert old.video_path is None


def test_sql_store_delete_is_idempotent(tmp_path):
    async def scenario():
        store = await _open_store(tmp_path)
        try:
            await store.create(_job("a"))
            await store.delete("a")
            await store.delete("a")
            return await store.get("a")
        finally:
            await store.close()

    assert asyncio.run(scenario()) is None
