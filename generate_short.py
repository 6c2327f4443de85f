# generate_short.py  (repo root)
import argparse
import asyncio
import json
import logging

from shorts_api.config import get_settings
from shorts_api.container import build_components

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - [CLI] - %(message)s"
)
logger = logging.getLogger("generate_short")


async def main(topic: str, duration: int) -> int:
    settings = get_settings()
    # No runner: the job is processed inline, in this process
    components = await build_components(settings, runner=None)
    try:
        orchestrator = components.orchestrator
        job = await orchestrator.create_job(topic, duration)
        logger.info(f"=== Generating short {job.id} ===")
        await orchestrator.process_job(job.id)
        job = await orchestrator.get_job(job.id)
    finally:
        await components.close()

    print(json.dumps(job.model_dump(mode="json", by_alias=True), indent=2))
    if job.status.value != "completed":
        logger.error(f"Generation failed: {job.error}")
        return 1
    logger.info(f"=== Video ready: {job.video_path} ===")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Generate one YouTube Short from a topic, without the API server."
    )
    parser.add_argument("-t", "--topic", required=True, help="Topic of the short.")
    parser.add_argument(
        "-d", "--duration",
        type=int,
        default=60,
        help="Video length in seconds.",
    )

    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(args.topic, args.duration)))
