# shorts_api/engine/prompt_builder.py
import re

MAX_PROMPT_TEXT = 200

IMAGE_PROMPT_TEMPLATE = (
    "Cinematic vertical shot (9:16), {text}, professional photography, "
    "vibrant colors, no text, no words, high quality"
)
GEMINI_PROMPT_TEMPLATE = (
    "Cinematic 9:16 vertical shot, {prompt}, professional photography, vibrant colors, "
    "no text, no words, story scene based, high quality, highly detailed"
)

_PUNCTUATION = re.compile(r"[^\w\s]")


def build_image_prompt(scene_text: str) -> str:
    """Deterministic visual prompt: punctuation stripped, text capped at 200 chars."""
    clean_text = _PUNCTUATION.sub("", scene_text or "")[:MAX_PROMPT_TEXT]
    return IMAGE_PROMPT_TEMPLATE.format(text=clean_text)


def build_gemini_prompt(image_prompt: str) -> str:
    return GEMINI_PROMPT_TEMPLATE.format(prompt=image_prompt)
