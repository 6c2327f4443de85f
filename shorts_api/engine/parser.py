# shorts_api/engine/parser.py
import logging
import re
from typing import List

from shorts_api.engine.prompt_builder import build_image_prompt
from shorts_api.exceptions import EmptyScript
from shorts_api.schemas import Scene

logger = logging.getLogger(__name__)

# "SCENE <n>: <text>" up to the next delimiter or the end of the script
SCENE_PATTERN = re.compile(r"SCENE\s+(\d+):\s*(.+?)(?=SCENE\s+\d+:|\Z)", re.IGNORECASE | re.DOTALL)
PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def _split_on_delimiters(script: str) -> List[str]:
    # Input order is kept, scene numbers are not used for sorting or dedup
    return [match.group(2).strip() for match in SCENE_PATTERN.finditer(script)]


def _split_on_paragraphs(script: str) -> List[str]:
    return [p.strip() for p in PARAGRAPH_BREAK.split(script) if p.strip()]


def split_script_into_scenes(script: str, total_duration: float) -> List[Scene]:
    """
    Splits a generated script into timed scenes.

    Uses explicit `SCENE n:` markers when present, blank-line paragraphs otherwise.
    Every scene gets `total_duration / count` seconds regardless of its text length.
    Raises EmptyScript when neither strategy yields a scene.
    """
    texts = _split_on_delimiters(script or "")
    strategy = "delimiters"
    if not texts:
        texts = _split_on_paragraphs(script or "")
        strategy = "paragraphs"

    if not texts:
        raise EmptyScript("Script is empty; no scenes could be extracted.")

    scene_duration = total_duration / len(texts)
    scenes = [
        Scene(
            index=i,
            text=text,
            image_prompt=build_image_prompt(text),
            duration=scene_duration,
        )
        for i, text in enumerate(texts, start=1)
    ]
    logger.info(f"split_script_into_scenes -> {len(scenes)} scenes via {strategy}, {scene_duration:.2f}s each")
    return scenes
