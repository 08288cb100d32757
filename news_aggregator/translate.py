"""Language detection and Bangla → English translation via Gemini."""

import logging
import re
import time
from typing import Callable, Optional

import google.generativeai as genai
from google.api_core import exceptions

from .config import get_settings

log = logging.getLogger(__name__)

_BANGLA = re.compile(r"[\u0980-\u09FF]")

SYSTEM_PROMPT = """You are a professional news translator.
Translate the user's Bangla news text into clear, neutral English.
Preserve names, numbers and quotations exactly.
Output ONLY the translated text, with no preamble or notes."""

Translator = Callable[[str], Optional[str]]


def detect_language(text: Optional[str]) -> str:
    return "bangla" if text and _BANGLA.search(text) else "english"


def _gemini_request(
    user_prompt: str,
    api_key: str,
    model_name: str = "gemini-3-flash-preview",
    temperature: float = 0.1,
) -> str:
    genai.configure(api_key=api_key)
    model = genai.GenerativeModel(
        model_name=model_name,
        system_instruction=SYSTEM_PROMPT,
        generation_config={"temperature": temperature, "max_output_tokens": 4096},
    )

    # Retry rate limits (429) and server errors (500/503) only
    max_retries = 2
    base_delay = 2
    for attempt in range(max_retries):
        try:
            response = model.generate_content(user_prompt)
            return response.text
        except (exceptions.ResourceExhausted, exceptions.ServiceUnavailable, exceptions.InternalServerError):
            if attempt == max_retries - 1:
                raise
            time.sleep(base_delay * (2 ** attempt))
    return ""


class GeminiTranslator:
    """Callable translator. Returns None when translation is unavailable."""

    def __init__(self, api_key: Optional[str] = None, model_name: str = "gemini-3-flash-preview"):
        if api_key is None:
            try:
                api_key = get_settings().gemini_api_key
            except RuntimeError:
                api_key = None
        self.api_key = api_key
        self.model_name = model_name

    def __call__(self, text: str) -> Optional[str]:
        if not self.api_key or not text:
            return None
        try:
            translated = _gemini_request(text, self.api_key, self.model_name).strip()
        except exceptions.GoogleAPICallError as exc:
            log.warning("Gemini translation failed: %s", exc)
            return None
        return translated or None


def translate_to_english(text: Optional[str], translator: Translator) -> Optional[str]:
    """Translate Bangla text; English (or untranslatable) text yields None."""
    if detect_language(text) != "bangla":
        return None
    return translator(text)
