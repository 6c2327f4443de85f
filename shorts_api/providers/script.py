# shorts_api/providers/script.py
import logging
from typing import Optional

from groq import APIStatusError, AsyncGroq, GroqError

from shorts_api.exceptions import ScriptGenerationFailed
from shorts_api.providers.base import ScriptProvider, require_credential

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an expert YouTube Shorts scriptwriter who creates viral, engaging short-form content."

USER_PROMPT_TEMPLATE = """Create a viral YouTube Shorts script about "{topic}".

Requirements:
- Duration: {duration} seconds
- Include a STRONG hook in the first 3 seconds that grabs attention
- Split into 4-5 distinct scenes
- Each scene should be engaging and visual
- Use simple, conversational language
- End with a call-to-action or thought-provoking statement

Format your response as:
SCENE 1: [text for scene 1]
SCENE 2: [text for scene 2]
...

Make it viral-worthy!"""


class GroqScriptProvider(ScriptProvider):
    """Chat-completion script writer. The client is built once and reused for every job."""

    name = "groq"

    def __init__(self, api_key: str, model: str, timeout: int = 120, client: Optional[AsyncGroq] = None):
        self.api_key = api_key
        self.model = model
        self.client = client
        if self.client is None and api_key.strip():
            self.client = AsyncGroq(api_key=api_key.strip(), timeout=timeout)

    async def generate(self, topic: str, duration_seconds: int) -> str:
        if self.client is None:
            require_credential(self.api_key, "GROQ_API_KEY", self.name)

        logger.info(f"Generating script for topic: {topic!r}, duration: {duration_seconds}s")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT_TEMPLATE.format(topic=topic, duration=duration_seconds)},
                ],
                temperature=0.8,
                max_tokens=500,
            )
        except APIStatusError as e:
            raise ScriptGenerationFailed(
                f"Script generation failed ({e.status_code}): {e.message}",
                status_code=e.status_code,
                provider=self.name,
            ) from e
        except GroqError as e:
            raise ScriptGenerationFailed(f"Script generation failed: {e}", provider=self.name) from e

        script = ""
        if response.choices:
            script = (response.choices[0].message.content or "").strip()
        if not script:
            raise ScriptGenerationFailed("Failed to generate script - empty response", provider=self.name)

        logger.info(f"Script generated ({len(script)} chars)")
        return script

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
