"""
Shared models, configuration and the Gemini client.
"""
from .config import GeminiSettings
from .gemini_client import GeminiAPIError, GeminiClient

__all__ = [
    "GeminiSettings",
    "GeminiAPIError",
    "GeminiClient",
]
