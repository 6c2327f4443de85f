# file: shorts_api/exceptions.py
"""
Error taxonomy for the shorts pipeline.

Everything raised inside a job ends up as the job's `error` string; the
API layer maps the input-side errors to HTTP status codes.
"""

from typing import Optional


class ShortsError(Exception):
    """Base class for every error raised by the pipeline."""


class InputError(ShortsError):
    """Invalid topic, duration or script content."""


class EmptyScript(InputError):
    """The generated script produced zero scenes."""


class DuplicateJobId(ShortsError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} already exists")
        self.job_id = job_id


# --- External providers ---

class ProviderError(ShortsError):
    """
    Failure of an external AI service.
    `status_code` and `code` are kept so the fallback gate can classify the error.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.provider = provider


class ScriptGenerationFailed(ProviderError):
    pass


class VoiceGenerationFailed(ProviderError):
    pass


class ImageGenerationFailed(ProviderError):
    pass


class ConfigurationError(ProviderError):
    """A required credential is missing. Raised before any request is made."""


# --- Media ---

class EncoderError(ShortsError):
    """The encoding tool exited non-zero; `detail` is its last diagnostic line."""

    def __init__(self, operation: str, returncode: int, detail: str):
        super().__init__(f"{operation} failed (rc={returncode}): {detail}")
        self.operation = operation
        self.returncode = returncode
        self.detail = detail


class MediaPipelineFailure(ShortsError):
    def __init__(self, stage: str, cause: object):
        super().__init__(f"Media pipeline failed at stage '{stage}': {cause}")
        self.stage = stage
        self.cause = cause


class MissingImage(MediaPipelineFailure):
    def __init__(self, scene_index: int):
        super().__init__("segments", f"Scene {scene_index} missing image path")
        self.scene_index = scene_index
