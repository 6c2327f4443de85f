# shorts_api/engine/subtitles.py
"""
SRT cue generation from timed scenes.

Each scene's text is wrapped into chunks of at most 40 characters and the
scene's duration is shared evenly between its chunks. Cue numbers run from 1
across the whole job.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable, List

from shorts_api.schemas import Scene

logger = logging.getLogger(__name__)

MAX_CHARS_PER_CUE = 40
SUBTITLE_FILENAME = "subtitles.srt"


@dataclass
class SubtitleCue:
    index: int
    start: float  # seconds
    end: float
    text: str

    def to_srt(self) -> str:
        return f"{self.index}\n{format_srt_time(self.start)} --> {format_srt_time(self.end)}\n{self.text}\n"


def format_srt_time(seconds: float) -> str:
    """HH:MM:SS,mmm"""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def wrap_subtitle_text(text: str, max_chars: int = MAX_CHARS_PER_CUE) -> List[str]:
    words = (text or "").split()
    chunks: List[str] = []
    current = ""
    for word in words:
        # A single word longer than a cue is cut into cue-sized pieces
        while len(word) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(word[:max_chars])
            word = word[max_chars:]
        if not word:
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_chars:
            chunks.append(current)
            current = word
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def build_subtitle_cues(scenes: Iterable[Scene]) -> List[SubtitleCue]:
    cues: List[SubtitleCue] = []
    scene_start = 0.0
    for scene in scenes:
        chunks = wrap_subtitle_text(scene.text)
        if chunks:
            chunk_duration = scene.duration / len(chunks)
            for i, chunk in enumerate(chunks):
                start = scene_start + i * chunk_duration
                end = scene_start + scene.duration if i == len(chunks) - 1 else start + chunk_duration
                cues.append(SubtitleCue(index=len(cues) + 1, start=start, end=end, text=chunk))
        scene_start += scene.duration
    return cues


def render_srt(cues: Iterable[SubtitleCue]) -> str:
    return "\n".join(cue.to_srt() for cue in cues)


def write_subtitle_file(scenes: List[Scene], job_dir: str) -> str:
    cues = build_subtitle_cues(scenes)
    srt_path = os.path.join(job_dir, SUBTITLE_FILENAME)
    with open(srt_path, "w", encoding="utf-8") as f:
        f.write(render_srt(cues))
    logger.info(f"Subtitles generated: {srt_path} ({len(cues)} cues)")
    return srt_path
