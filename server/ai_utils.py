"""ai_utils.py - Shared AI helpers (safety settings, text generation).

This module centralizes the mapping from a safety level to the Google Gemini
SDK's safety_settings structure and wraps a Gemini model behind TextGenerator,
which never raises: every failure degrades to a short canned string.

Keep it safe to import even when the Google SDK isn't installed; in that case
the safety helper returns None and callers omit the parameter.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import constants as C

logger = logging.getLogger(__name__)

# Optional Gemini SDK enums (we detect presence at runtime)
try:
    from google.generativeai.types import HarmCategory, HarmBlockThreshold  # type: ignore
except Exception:  # pragma: no cover - optional at runtime
    HarmCategory = None  # type: ignore
    HarmBlockThreshold = None  # type: ignore

DEFAULT_MODEL_NAME = 'gemini-flash-lite-latest'


def safety_settings_for_level(level: Optional[str]) -> Optional[list[dict[str, Any]]]:
    """Return a safety_settings list for Gemini based on the given level.

    Levels: 'G' | 'PG-13' | 'R' | 'OFF' (case-insensitive). If the SDK enums
    are not available, returns None so callers can omit the parameter.
    """
    if HarmCategory is None or HarmBlockThreshold is None:
        return None
    lvl = (level or 'G').upper()

    def mk(threshold):
        cats: list[dict[str, Any]] = []
        for nm in [
            'HARM_CATEGORY_HARASSMENT',
            'HARM_CATEGORY_HATE_SPEECH',
            'HARM_CATEGORY_SEXUAL',
            'HARM_CATEGORY_SEXUAL_AND_MINORS',
            'HARM_CATEGORY_DANGEROUS_CONTENT',
        ]:
            c = getattr(HarmCategory, nm, None)
            if c is not None:
                cats.append({'category': c, 'threshold': threshold})
        return cats or None

    if lvl == 'OFF':
        return mk(HarmBlockThreshold.BLOCK_NONE)
    if lvl == 'R':
        return mk(getattr(HarmBlockThreshold, 'BLOCK_ONLY_HIGH', HarmBlockThreshold.BLOCK_NONE))
    if lvl in ('PG-13', 'PG13', 'PG'):
        return mk(getattr(HarmBlockThreshold, 'BLOCK_MEDIUM_AND_ABOVE', HarmBlockThreshold.BLOCK_NONE))
    return mk(getattr(HarmBlockThreshold, 'BLOCK_LOW_AND_ABOVE', HarmBlockThreshold.BLOCK_NONE))


def create_model(genai_module: Any, api_key: Optional[str], model_name: str = DEFAULT_MODEL_NAME) -> Any:
    """Configure the SDK and return a GenerativeModel, or None when AI is disabled."""
    if genai_module is None or not api_key:
        return None
    try:
        genai_module.configure(api_key=api_key)
        return genai_module.GenerativeModel(model_name)
    except Exception as e:
        logger.warning(f"Error configuring the Gemini API, AI disabled: {e}")
        return None


class TextGenerator:
    """Prompt in, text out; any model exposing generate_content() works (see mock_ai)."""

    def __init__(self, model: Any = None, safety_level: str = C.DEFAULT_SAFETY_LEVEL) -> None:
        self.model = model
        self.safety_level = safety_level

    @property
    def available(self) -> bool:
        return self.model is not None

    def generate(self, prompt: str) -> str:
        if self.model is None:
            return C.AI_OFFLINE_TEXT
        try:
            safety = safety_settings_for_level(self.safety_level)
            if safety is not None:
                response = self.model.generate_content(prompt, safety_settings=safety)
            else:
                response = self.model.generate_content(prompt)
            text = getattr(response, 'text', None)
            if text is None:
                text = str(response or '')
            text = text.strip()
            return text or C.AI_EMPTY_TEXT
        except Exception as e:
            logger.warning(f"Text generation failed: {e}")
            return C.AI_SILENT_TEXT

    def generate_json_text(self, prompt: str) -> Optional[str]:
        """Raw model text for structured prompts; None on any failure."""
        if self.model is None:
            return None
        try:
            response = self.model.generate_content(prompt)
            return getattr(response, 'text', None) or None
        except Exception as e:
            logger.warning(f"Structured generation failed: {e}")
            return None
