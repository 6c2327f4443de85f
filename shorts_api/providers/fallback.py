# shorts_api/providers/fallback.py
"""
Image provider fallback.

`is_fallback_eligible` is pure decision logic over an exception value: it only
inspects attributes and the message, it never performs I/O.
"""

import logging
from typing import Any, Optional

from shorts_api.exceptions import ImageGenerationFailed
from shorts_api.providers.base import ImageProvider
from shorts_api.providers.images import scene_stem
from shorts_api.schemas import Scene

logger = logging.getLogger(__name__)

BILLING_ERROR_CODES = {
    "billing_hard_limit_reached",
    "quota_exceeded",
    "insufficient_quota",
    "rate_limit_exceeded",
    "RESOURCE_EXHAUSTED",
}
BILLING_CODE_FAMILIES = ("billing", "quota", "rate_limit")
MESSAGE_HINTS = ("billing", "quota", "limit")


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _status_of(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "http_status"):
        status = _as_int(getattr(error, attr, None))
        if status is not None:
            return status
    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            status = _as_int(getattr(response, attr, None))
            if status is not None:
                return status
    return None


def _code_of(error: BaseException) -> Optional[str]:
    code = getattr(error, "code", None)
    if isinstance(code, str) and code:
        return code
    # SDK-style errors carry the JSON body: {"error": {"code": ...}}
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and isinstance(inner.get("code"), str):
            return inner["code"]
    return None


def is_fallback_eligible(error: BaseException) -> bool:
    """
    True when a primary image provider failure may be retried on the secondary:
    429, any 5xx, 400, a billing/quota error code, or as a last resort a message
    mentioning billing/quota/limit. Local I/O errors are never eligible.
    """
    if isinstance(error, OSError):
        return False

    code = _code_of(error)
    if code and (code in BILLING_ERROR_CODES or any(f in code.lower() for f in BILLING_CODE_FAMILIES)):
        return True

    status = _status_of(error)
    if status is not None and (status in (400, 429) or 500 <= status <= 599):
        return True

    message = str(error).lower()
    return any(hint in message for hint in MESSAGE_HINTS)


class FallbackImageGenerator:
    """Primary provider first; the secondary is tried once, only for eligible errors."""

    def __init__(self, primary: ImageProvider, secondary: ImageProvider):
        self.primary = primary
        self.secondary = secondary

    async def generate_for_scene(self, scene: Scene, output_dir: str) -> str:
        stem = scene_stem(scene.index)
        try:
            logger.info(f"[{self.primary.name}] Generating image for scene {scene.index}")
            return await self.primary.generate(scene.image_prompt, output_dir, stem)
        except Exception as primary_error:
            if not is_fallback_eligible(primary_error):
                logger.error(f"{self.primary.name} failed with non-fallback error for scene {scene.index}: {primary_error}")
                raise

            logger.warning(
                f"{self.primary.name} failed, falling back to {self.secondary.name} "
                f"for scene {scene.index}. Error: {primary_error}"
            )
            try:
                return await self.secondary.generate(scene.image_prompt, output_dir, stem)
            except Exception as secondary_error:
                logger.error(f"{self.secondary.name} also failed for scene {scene.index}: {secondary_error}")
                raise ImageGenerationFailed(
                    f"Both {self.primary.name} and {self.secondary.name} failed to generate image "
                    f"for scene {scene.index}. {self.primary.name} error: {primary_error}. "
                    f"{self.secondary.name} error: {secondary_error}",
                    provider=self.secondary.name,
                ) from secondary_error
