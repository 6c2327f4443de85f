# tests/test_providers.py
import asyncio
import io
from types import SimpleNamespace

import pytest
from PIL import Image

from shorts_api.exceptions import ConfigurationError, ImageGenerationFailed, ProviderError, ScriptGenerationFailed
from shorts_api.providers.images import GeminiImageProvider, OpenAIImageProvider, save_image
from shorts_api.providers.script import GroqScriptProvider
from shorts_api.providers.voice import ElevenLabsVoiceProvider, GTTSVoiceProvider


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _groq(content):
    completions = FakeCompletions(content)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return GroqScriptProvider("gsk-test", model="llama-3.1-8b-instant", client=client), completions


def test_script_provider_prompt_and_sampling():
    provider, completions = _groq("  SCENE 1: Hook\nSCENE 2: Payoff  ")

    script = asyncio.run(provider.generate("black holes", 50))

    assert script == "SCENE 1: Hook\nSCENE 2: Payoff"
    assert completions.kwargs["temperature"] == 0.8
    assert completions.kwargs["max_tokens"] == 500
    user_prompt = completions.kwargs["messages"][1]["content"]
    assert '"black holes"' in user_prompt
    assert "50 seconds" in user_prompt


def test_script_provider_empty_response():
    provider, _ = _groq("   ")
    with pytest.raises(ScriptGenerationFailed):
        asyncio.run(provider.generate("black holes", 50))


def test_missing_credentials_fail_before_any_request(tmp_path):
    # session=None: any attempted request would raise AttributeError instead
    with pytest.raises(ConfigurationError):
        asyncio.run(GroqScriptProvider("", model="m").generate("t", 30))
    with pytest.raises(ConfigurationError):
        asyncio.run(ElevenLabsVoiceProvider(None, "  ", voice_id="v").synthesize("hello", str(tmp_path)))
    with pytest.raises(ConfigurationError):
        asyncio.run(OpenAIImageProvider(None, "").generate("p", str(tmp_path), "scene_1"))
    with pytest.raises(ConfigurationError):
        asyncio.run(GeminiImageProvider(None, "").generate("p", str(tmp_path), "scene_1"))


def test_configuration_error_is_a_provider_error():
    assert issubclass(ConfigurationError, ProviderError)


def test_voice_providers_reject_empty_text(tmp_path):
    with pytest.raises(ProviderError):
        asyncio.run(ElevenLabsVoiceProvider(None, "key", voice_id="v").synthesize("  ", str(tmp_path)))
    with pytest.raises(ProviderError):
        asyncio.run(GTTSVoiceProvider().synthesize("", str(tmp_path)))


def test_save_image_normalizes_to_png(tmp_path):
    buffer = io.BytesIO()
    Image.new("RGBA", (8, 14), (255, 0, 0, 128)).save(buffer, format="PNG")

    path = asyncio.run(save_image(buffer.getvalue(), str(tmp_path), "scene_1_gemini.png", "gemini"))

    with Image.open(path) as img:
        assert img.format == "PNG"
        assert img.mode == "RGB"
        assert img.size == (8, 14)


def test_save_image_rejects_garbage(tmp_path):
    with pytest.raises(ImageGenerationFailed):
        asyncio.run(save_image(b"<html>quota exceeded</html>", str(tmp_path), "scene_1_openai.png", "openai"))
