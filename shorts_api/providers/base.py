# shorts_api/providers/base.py
"""
Narrow contracts the orchestrator depends on, plus the HTTP error helpers
shared by the aiohttp-based providers.
"""

import abc
import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Tuple, Type

import aiohttp

from shorts_api.exceptions import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


class ScriptProvider(abc.ABC):
    name = "script"

    @abc.abstractmethod
    async def generate(self, topic: str, duration_seconds: int) -> str:
        """Returns the narration script. Raises ScriptGenerationFailed."""


class VoiceProvider(abc.ABC):
    name = "voice"

    @abc.abstractmethod
    async def synthesize(self, text: str, output_dir: str) -> str:
        """Writes narration audio into `output_dir` and returns its path."""


class ImageProvider(abc.ABC):
    name = "image"

    @abc.abstractmethod
    async def generate(self, prompt: str, output_dir: str, stem: str) -> str:
        """Writes `<stem>_<provider>.png` into `output_dir` and returns its path."""


def require_credential(value: str, env_name: str, provider: str) -> str:
    if not value or not value.strip():
        raise ConfigurationError(f"{env_name} is not configured", provider=provider)
    return value.strip()


async def _extract_error(response: aiohttp.ClientResponse) -> Tuple[str, Optional[str]]:
    """Best effort (message, code) from a provider's JSON error body."""
    try:
        body: Any = await response.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        text = await response.text(errors="ignore")
        return (text.strip()[:300] or response.reason or "Unknown error"), None

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        code = error.get("code") if isinstance(error.get("code"), str) else error.get("status")
        return str(error.get("message") or error), code
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("message") or detail), detail.get("status")
    return str(detail or body), None


async def raise_for_provider_status(
    response: aiohttp.ClientResponse,
    error_cls: Type[ProviderError],
    provider: str,
    action: str,
) -> None:
    if response.status < 400:
        return
    message, code = await _extract_error(response)
    raise error_cls(
        f"{action} failed ({response.status}): {message}",
        status_code=response.status,
        code=code,
        provider=provider,
    )


async def write_bytes(path: str, data: bytes) -> str:
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, out_path.write_bytes, data)
    return str(out_path)
