# shorts_api/providers/voice.py
import asyncio
import logging
import os
from pathlib import Path

import aiohttp
from gtts import gTTS

from shorts_api.exceptions import VoiceGenerationFailed
from shorts_api.providers.base import VoiceProvider, raise_for_provider_status, require_credential, write_bytes

logger = logging.getLogger(__name__)

ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1"
NARRATION_FILENAME = "narration.mp3"


class ElevenLabsVoiceProvider(VoiceProvider):
    """Text-to-speech over the ElevenLabs REST API, one call for the whole narration."""

    name = "elevenlabs"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: str,
        voice_id: str,
        model_id: str = "eleven_monolingual_v1",
        timeout: int = 120,
    ):
        self.session = session
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def synthesize(self, text: str, output_dir: str) -> str:
        api_key = require_credential(self.api_key, "ELEVENLABS_API_KEY", self.name)
        if not text or not text.strip():
            raise VoiceGenerationFailed("Voice generation failed: narration text is empty", provider=self.name)

        logger.info(f"Generating voice narration (Key: {api_key[:4]}****, {len(text)} chars)...")
        url = f"{ELEVENLABS_API_URL}/text-to-speech/{self.voice_id}"
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": api_key,
        }
        try:
            async with self.session.post(url, json=payload, headers=headers, timeout=self.timeout) as response:
                await raise_for_provider_status(response, VoiceGenerationFailed, self.name, "Voice generation")
                audio = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise VoiceGenerationFailed(f"Voice generation failed: {e}", provider=self.name) from e

        if not audio:
            raise VoiceGenerationFailed("Voice generation failed: empty audio response", provider=self.name)

        audio_path = await write_bytes(os.path.join(output_dir, NARRATION_FILENAME), audio)
        logger.info(f"Voice narration saved: {audio_path}")
        return audio_path


class GTTSVoiceProvider(VoiceProvider):
    """Credential-free narration through gTTS, for local runs."""

    name = "gtts"

    def __init__(self, lang: str = "en"):
        self.lang = lang

    async def synthesize(self, text: str, output_dir: str) -> str:
        if not text or not text.strip():
            raise VoiceGenerationFailed("Voice generation failed: narration text is empty", provider=self.name)

        out_path = Path(output_dir) / NARRATION_FILENAME
        out_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Generating audio with gTTS for text: {text[:50]}...")

        def _blocking_gtts():
            tts = gTTS(text, lang=self.lang, slow=False)
            tts.save(str(out_path))

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _blocking_gtts)
        except Exception as e:
            raise VoiceGenerationFailed(f"Voice generation failed: {e}", provider=self.name) from e

        logger.info(f"Audio saved to: {out_path}")
        return str(out_path)
