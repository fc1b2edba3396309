"""
Configuration for the Gemini-backed generation services.

Values are read from the environment (the team's .env is expected to be
loaded by the process launcher). Nothing is read at import time; callers
build a GeminiSettings explicitly and pass it to the client and services.
"""
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

DEFAULT_TEXT_MODEL = "gemini-3-flash-preview"
DEFAULT_IMAGE_MODEL = "imagen-4.0-generate-001"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _env_flag(value: Optional[str], default: bool) -> bool:
    """Parse a boolean-ish environment value."""
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


class GeminiSettings(BaseModel):
    """
    Settings shared by GeminiClient and GeminiContentService.

    Resolution order (first non-empty wins):
    1. Explicit constructor arguments
    2. Environment variables (GOOGLE_API_KEY, GEMINI_TEXT_MODEL, ...)
    3. Defaults
    """
    api_key: str = Field(..., description="Google AI Studio API key")
    text_model: str = Field(default=DEFAULT_TEXT_MODEL)
    image_model: str = Field(default=DEFAULT_IMAGE_MODEL)
    base_url: str = Field(default=DEFAULT_BASE_URL)
    timeout: float = Field(default=120.0, gt=0, description="HTTP timeout in seconds")
    max_attempts: int = Field(default=3, ge=1, description="Retry ceiling per API call")
    british_spelling: bool = Field(default=True)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GeminiSettings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: If neither GOOGLE_API_KEY nor API_KEY is set.
        """
        env = os.environ if env is None else env

        api_key = (env.get("GOOGLE_API_KEY") or env.get("API_KEY") or "").strip()
        if not api_key:
            raise ValueError("GOOGLE_API_KEY not set")

        return cls(
            api_key=api_key,
            text_model=env.get("GEMINI_TEXT_MODEL") or DEFAULT_TEXT_MODEL,
            image_model=env.get("GEMINI_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
            base_url=(env.get("GEMINI_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            timeout=float(env.get("GEMINI_TIMEOUT") or 120),
            max_attempts=int(env.get("GEMINI_MAX_ATTEMPTS") or 3),
            british_spelling=_env_flag(env.get("STRATIS_BRITISH_SPELLING"), True),
        )
