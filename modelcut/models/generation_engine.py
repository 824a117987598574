# models/generation_engine.py
"""
Singleton wrapper around the Google GenAI client.

• Builds the client once per Python process, lazily on first use.
• Exposes .client and .model_name.
"""
from __future__ import annotations
import logging
import os

from dotenv import load_dotenv
from google import genai
from google.genai import types

from ..exceptions import GenerationConfigError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class GenerationEngine:
    _instance: "GenerationEngine" | None = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init_runtime()
        return cls._instance

    # --------------------------------------------------
    def _init_runtime(self) -> None:
        self.model_name = os.getenv("GEMINI_IMAGE_MODEL", "gemini-3-pro-image-preview")
        self.timeout_ms = int(os.getenv("GEMINI_TIMEOUT_MS", "120000"))
        self._client: genai.Client | None = None

    # --------------------------------------------------
    @property
    def client(self) -> genai.Client:
        if self._client is None:
            api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
            if not api_key:
                raise GenerationConfigError(
                    "Gemini API key is not configured. Set GEMINI_API_KEY in your .env file."
                )
            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=self.timeout_ms),
            )
            logger.info(f"GenAI client initialised for model {self.model_name}")
        return self._client

    @classmethod
    def reset(cls) -> None:
        """Drop the cached instance (config changed, or tests)."""
        cls._instance = None
