# file: shorts_api/video_generator.py
"""
Media pipeline: images + narration + subtitles -> one vertical MP4.

Four ordered stages, all driven through the ffmpeg CLI:
  1. segments  - one 1080x1920, 30 fps, H.264/yuv420p clip per scene
  2. concat    - lossless join in scene order (stream copy)
  3. audio     - mux narration, AAC, output length follows the video
  4. subtitles - burn the SRT in, bottom-centered white text with outline
"""

import abc
import logging
import os
import shutil
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from shorts_api.exceptions import EncoderError, MediaPipelineFailure, MissingImage
from shorts_api.schemas import Scene
from shorts_api.tasks import run_subprocess_streamed

logger = logging.getLogger(__name__)

# ================= CONFIGURATION ================= #
WIDTH, HEIGHT = 1080, 1920
FPS = 30
VIDEO_CODEC = "libx264"
PIXEL_FORMAT = "yuv420p"
AUDIO_CODEC = "aac"
SUBTITLE_STYLE = (
    "Alignment=2,FontSize=20,Bold=1,"
    "PrimaryColour=&H00FFFFFF,OutlineColour=&H00000000,Outline=2,Shadow=1"
)
SCALE_AND_PAD = (
    f"scale={WIDTH}:{HEIGHT}:force_original_aspect_ratio=decrease,"
    f"pad={WIDTH}:{HEIGHT}:(ow-iw)/2:(oh-ih)/2"
)

ProgressSink = Callable[[float], Awaitable[None]]


class VideoEncoder(abc.ABC):
    """The four encoder operations the pipeline is built from."""

    @abc.abstractmethod
    async def make_clip_from_image(self, image_path: str, duration: float, output_path: str) -> None:
        ...

    @abc.abstractmethod
    async def concat(self, clip_paths: Sequence[str], output_path: str) -> None:
        ...

    @abc.abstractmethod
    async def mux_audio(self, video_path: str, audio_path: str, output_path: str) -> None:
        ...

    @abc.abstractmethod
    async def burn_subtitles(self, video_path: str, subtitle_path: str, output_path: str) -> None:
        ...


def escape_subtitles_path(path: str) -> str:
    """Path as accepted inside ffmpeg's `subtitles=` filter argument."""
    return path.replace("\\", "/").replace(":", "\\:").replace("'", "\\'")


def _concat_list_line(path: str) -> str:
    # concat demuxer quoting: ' becomes '\''
    return "file '" + os.path.abspath(path).replace("'", "'\\''") + "'"


class FFmpegEncoder(VideoEncoder):
    def __init__(self, ffmpeg_binary: str = "ffmpeg", timeout: Optional[int] = 1800):
        self.ffmpeg_binary = ffmpeg_binary
        self.timeout = timeout

    async def _run(self, operation: str, args: List[str]) -> None:
        cmd = [self.ffmpeg_binary, "-y", "-hide_banner", "-loglevel", "error", *args]
        logger.debug(f"ffmpeg [{operation}]: {' '.join(cmd)}")
        rc, _, stderr = await run_subprocess_streamed(cmd, timeout=self.timeout)
        if rc != 0:
            lines = [line for line in stderr.strip().splitlines() if line.strip()]
            detail = lines[-1] if lines else "no diagnostic output"
            raise EncoderError(operation, rc, detail)

    async def make_clip_from_image(self, image_path: str, duration: float, output_path: str) -> None:
        await self._run("make_clip_from_image", [
            "-loop", "1",
            "-i", image_path,
            "-vf", SCALE_AND_PAD,
            "-c:v", VIDEO_CODEC,
            "-t", f"{duration:.3f}",
            "-pix_fmt", PIXEL_FORMAT,
            "-r", str(FPS),
            output_path,
        ])

    async def concat(self, clip_paths: Sequence[str], output_path: str) -> None:
        list_path = os.path.join(os.path.dirname(os.path.abspath(output_path)), "concat.txt")
        with open(list_path, "w", encoding="utf-8") as fh:
            fh.write("\n".join(_concat_list_line(p) for p in clip_paths) + "\n")
        await self._run("concat", [
            "-f", "concat",
            "-safe", "0",
            "-i", list_path,
            "-c", "copy",
            output_path,
        ])

    async def mux_audio(self, video_path: str, audio_path: str, output_path: str) -> None:
        # apad + shortest: longer narration is cut, shorter narration leaves a silent tail
        await self._run("mux_audio", [
            "-i", video_path,
            "-i", audio_path,
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", AUDIO_CODEC,
            "-af", "apad",
            "-shortest",
            output_path,
        ])

    async def burn_subtitles(self, video_path: str, subtitle_path: str, output_path: str) -> None:
        vf = f"subtitles='{escape_subtitles_path(subtitle_path)}':force_style='{SUBTITLE_STYLE}'"
        await self._run("burn_subtitles", [
            "-i", video_path,
            "-vf", vf,
            "-c:v", VIDEO_CODEC,
            "-pix_fmt", PIXEL_FORMAT,
            "-c:a", "copy",
            output_path,
        ])


class _MonotonicReporter:
    """Forwards progress values to the sink, dropping any that would go backwards."""

    def __init__(self, sink: Optional[ProgressSink]):
        self.sink = sink
        self.last = 0.0

    async def __call__(self, percent: float) -> None:
        if self.sink is None or percent < self.last:
            return
        self.last = percent
        await self.sink(percent)


class MediaPipeline:
    """
    Runs the four stages for one job. Intermediate files go to the job's
    working directory; only the finished video is moved to `output_path`.
    """

    def __init__(
        self,
        encoder: VideoEncoder,
        concat_done: float = 80.0,
        audio_done: float = 90.0,
        subtitles_done: float = 100.0,
    ):
        self.encoder = encoder
        self.concat_done = concat_done
        self.audio_done = audio_done
        self.subtitles_done = subtitles_done

    async def run(
        self,
        scenes: List[Scene],
        audio_path: str,
        subtitle_path: str,
        work_dir: str,
        output_path: str,
        report: Optional[ProgressSink] = None,
        segment_range: Tuple[float, float] = (65.0, 75.0),
    ) -> str:
        """`segment_range` is the progress span covered by stage 1, split evenly per scene."""
        progress = _MonotonicReporter(report)
        ordered = sorted(scenes, key=lambda s: s.index)
        if not ordered:
            raise MediaPipelineFailure("segments", "no scenes to encode")

        # --- Stage 1: per-scene segments ---
        lo, hi = segment_range
        segment_paths: List[str] = []
        for i, scene in enumerate(ordered):
            if not scene.image_path:
                raise MissingImage(scene.index)
            segment_path = os.path.join(work_dir, f"segment_{scene.index}.mp4")
            await self._stage("segments", self.encoder.make_clip_from_image(scene.image_path, scene.duration, segment_path))
            segment_paths.append(segment_path)
            await progress(lo + (hi - lo) * (i + 1) / len(ordered))
        logger.info(f"Encoded {len(segment_paths)} scene segments")

        # --- Stage 2: concatenate ---
        concat_path = os.path.join(work_dir, "concatenated.mp4")
        await self._stage("concat", self.encoder.concat(segment_paths, concat_path))
        await progress(self.concat_done)

        # --- Stage 3: narration ---
        with_audio_path = os.path.join(work_dir, "with_audio.mp4")
        await self._stage("audio", self.encoder.mux_audio(concat_path, audio_path, with_audio_path))
        await progress(self.audio_done)

        # --- Stage 4: subtitles, then publish ---
        final_tmp_path = os.path.join(work_dir, "final.mp4")
        await self._stage("subtitles", self.encoder.burn_subtitles(with_audio_path, subtitle_path, final_tmp_path))
        try:
            os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
            shutil.move(final_tmp_path, output_path)
        except OSError as e:
            raise MediaPipelineFailure("subtitles", e) from e
        await progress(self.subtitles_done)

        logger.info(f"Final video written: {output_path}")
        return output_path

    @staticmethod
    async def _stage(stage: str, operation: Awaitable[None]) -> None:
        try:
            await operation
        except MediaPipelineFailure:
            raise
        except Exception as e:
            logger.error(f"Media stage '{stage}' failed: {e}")
            raise MediaPipelineFailure(stage, e) from e
