"""
Gemini text generation (prompt ideas, captions) via the Google GenAI SDK.
"""

import os
import logging

import google.generativeai as genai

from .errors import ConfigurationError, ProviderError, RequestValidationError

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-1.5-flash")

_configured_key = None


def _model() -> genai.GenerativeModel:
    global _configured_key
    if not GEMINI_API_KEY:
        raise ConfigurationError("GEMINI_API_KEY is not set")
    if _configured_key != GEMINI_API_KEY:
        genai.configure(api_key=GEMINI_API_KEY)
        _configured_key = GEMINI_API_KEY
    return genai.GenerativeModel(model_name=GEMINI_MODEL)


async def generate_text(prompt: str) -> str:
    if not prompt:
        raise RequestValidationError("Prompt is required")

    model = _model()
    logger.info(f"Gemini request: model={GEMINI_MODEL} prompt={prompt[:80]!r}")
    try:
        response = await model.generate_content_async(prompt)
        text = response.text
    except ValueError as e:
        # .text raises when the candidate was blocked or empty
        raise ProviderError("Gemini returned no text", detail=str(e))
    except Exception as e:
        logger.error(f"Gemini API error: {e}")
        raise ProviderError("Failed to generate content", detail=str(e))
    return text
