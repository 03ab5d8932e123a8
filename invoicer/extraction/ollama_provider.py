"""Ollama-based extraction provider for self-hosted LLM inference.

Requires an Ollama server (default localhost:11434).
See: https://ollama.ai/
"""

import logging
from datetime import date

import httpx

from invoicer.extraction.ai_response import build_extraction_prompt, parse_ai_response
from invoicer.extraction.base import ExtractionProvider, ExtractionResult
from invoicer.shared.config import Settings
from invoicer.shared.errors import AIResponseParseError

logger = logging.getLogger(__name__)


class OllamaExtractionProvider(ExtractionProvider):
    """Extraction through a local Ollama server (Qwen2.5, Llama3, Mistral...)."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._model = settings.ollama_model
        self._client = httpx.Client(timeout=settings.ai_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "ollama"

    def is_available(self) -> bool:
        """Check that the server responds and the configured model is pulled."""
        try:
            response = self._client.get(f"{self._base_url}/api/tags")
            if response.status_code != 200:
                return False
            models = response.json().get("models", [])
            model_names = [m.get("name", "").split(":")[0] for m in models]
            return self._model.split(":")[0] in model_names
        except httpx.HTTPError:
            return False

    def extract_invoice_fields(self, text: str, *, year: int | None = None) -> ExtractionResult:
        """Extract invoice fields using Ollama.

        Args:
            text: Raw payment text
            year: Year assumed for dates that omit one (current year if None)

        Returns:
            ExtractionResult with a PartialInvoice or an error, provider='ollama'
        """
        if not text or not text.strip():
            return self._failure("Empty text provided")

        year = year or date.today().year
        try:
            response_text = self._call_ollama(build_extraction_prompt(text, year=year))
            return self._success(parse_ai_response(response_text, year=year))

        except AIResponseParseError as e:
            logger.warning(f"Failed to parse JSON from Ollama response: {e}")
            return self._failure(f"JSON parsing failed: {e}")
        except httpx.TimeoutException as e:
            logger.warning(f"Ollama request timed out: {e}")
            return self._failure(f"Request timed out after {self.settings.ai_timeout_seconds}s")
        except Exception as e:
            logger.error(f"Ollama extraction failed: {e}")
            return self._failure(f"Extraction failed: {e}")

    def _call_ollama(self, prompt: str) -> str:
        """POST the prompt to /api/generate and return the raw completion text.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
        """
        response = self._client.post(
            f"{self._base_url}/api/generate",
            json={
                "model": self._model,
                "prompt": prompt,
                "stream": False,
                "format": "json",
                "options": {
                    "temperature": 0,
                    "num_predict": 1024,
                },
            },
        )
        response.raise_for_status()
        result: str = response.json().get("response", "")
        return result
