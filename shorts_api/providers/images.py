# shorts_api/providers/images.py
import asyncio
import base64
import io
import logging
from pathlib import Path

import aiohttp
from PIL import Image, UnidentifiedImageError

from shorts_api.engine.prompt_builder import build_gemini_prompt
from shorts_api.exceptions import ImageGenerationFailed
from shorts_api.providers.base import ImageProvider, raise_for_provider_status, require_credential

logger = logging.getLogger(__name__)

OPENAI_IMAGES_URL = "https://api.openai.com/v1/images/generations"
GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"
VERTICAL_SIZE = "1024x1792"  # closest DALL-E size to 9:16


def _save_as_png(data: bytes, out_path: Path) -> None:
    """Decodes provider bytes and re-encodes them as RGB PNG. Raises ValueError on garbage."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            out_path.parent.mkdir(parents=True, exist_ok=True)
            img.convert("RGB").save(out_path, format="PNG")
    except UnidentifiedImageError as e:
        raise ValueError(f"Provider returned data that is not an image ({len(data)} bytes)") from e


async def save_image(data: bytes, output_dir: str, filename: str, provider: str) -> str:
    out_path = Path(output_dir) / filename
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, _save_as_png, data, out_path)
    except ValueError as e:
        raise ImageGenerationFailed(str(e), provider=provider) from e
    return str(out_path)


class OpenAIImageProvider(ImageProvider):
    name = "openai"

    def __init__(self, session: aiohttp.ClientSession, api_key: str, model: str = "dall-e-3", timeout: int = 120):
        self.session = session
        self.api_key = api_key
        self.model = model
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def generate(self, prompt: str, output_dir: str, stem: str) -> str:
        api_key = require_credential(self.api_key, "OPENAI_API_KEY", self.name)
        payload = {
            "model": self.model,
            "prompt": prompt,
            "n": 1,
            "size": VERTICAL_SIZE,
            "quality": "standard",
        }
        headers = {"Authorization": f"Bearer {api_key}"}
        try:
            async with self.session.post(OPENAI_IMAGES_URL, json=payload, headers=headers, timeout=self.timeout) as response:
                await raise_for_provider_status(response, ImageGenerationFailed, self.name, "OpenAI image generation")
                body = await response.json(content_type=None)

            data = body.get("data") or []
            image_url = data[0].get("url") if data else None
            if not image_url:
                raise ImageGenerationFailed("No image URL in OpenAI response", provider=self.name)

            async with self.session.get(image_url, timeout=self.timeout) as image_response:
                await raise_for_provider_status(image_response, ImageGenerationFailed, self.name, "Image download")
                image_bytes = await image_response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ImageGenerationFailed(f"OpenAI image generation failed: {e}", provider=self.name) from e

        image_path = await save_image(image_bytes, output_dir, f"{stem}_{self.name}.png", self.name)
        logger.info(f"[OpenAI] Image saved: {image_path}")
        return image_path


class GeminiImageProvider(ImageProvider):
    name = "gemini"

    def __init__(self, session: aiohttp.ClientSession, api_key: str, model: str = "gemini-1.5-flash", timeout: int = 120):
        self.session = session
        self.api_key = api_key
        self.model = model
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def generate(self, prompt: str, output_dir: str, stem: str) -> str:
        api_key = require_credential(self.api_key, "GEMINI_API_KEY", self.name)
        url = f"{GEMINI_API_URL}/{self.model}:generateContent"
        payload = {"contents": [{"parts": [{"text": build_gemini_prompt(prompt)}]}]}

        logger.info(f"[Gemini] Attempting to generate image with model: {self.model}")
        try:
            async with self.session.post(
                url, json=payload, params={"key": api_key}, timeout=self.timeout
            ) as response:
                await raise_for_provider_status(response, ImageGenerationFailed, self.name, "Gemini image generation")
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ImageGenerationFailed(f"Gemini image generation failed: {e}", provider=self.name) from e

        candidates = body.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        image_part = next(
            (p for p in parts if str((p.get("inlineData") or {}).get("mimeType", "")).startswith("image/")),
            None,
        )
        if image_part is None or not image_part["inlineData"].get("data"):
            text_part = next((p.get("text") for p in parts if p.get("text")), None)
            if text_part:
                raise ImageGenerationFailed(
                    f"Model {self.model} returned text instead of image: \"{text_part[:100]}...\"",
                    provider=self.name,
                )
            raise ImageGenerationFailed("No image data in Gemini response", provider=self.name)

        image_bytes = base64.b64decode(image_part["inlineData"]["data"])
        image_path = await save_image(image_bytes, output_dir, f"{stem}_{self.name}.png", self.name)
        logger.info(f"[Gemini] Image saved: {image_path} using model {self.model}")
        return image_path


def scene_stem(scene_index: int) -> str:
    return f"scene_{scene_index}"

