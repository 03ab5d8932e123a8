"""OpenAI-based extraction provider.

Uses chat completions in JSON mode. The client is built with the configured
timeout and without SDK-level retries: one AI attempt per extraction
request, bounded by Settings.ai_timeout_seconds.
"""

import logging
import os
from datetime import date
from typing import Any

from openai import OpenAI

from invoicer.extraction.ai_response import build_extraction_prompt, parse_ai_response
from invoicer.extraction.base import ExtractionProvider, ExtractionResult
from invoicer.shared.config import Settings
from invoicer.shared.errors import AIResponseParseError

logger = logging.getLogger(__name__)


class OpenAIExtractionProvider(ExtractionProvider):
    """Extraction through the OpenAI API.

    Requires the OPENAI_API_KEY environment variable, read at call time.
    """

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        return "openai"

    def is_available(self) -> bool:
        """True if OPENAI_API_KEY is set."""
        return bool(os.getenv("OPENAI_API_KEY"))

    def extract_invoice_fields(self, text: str, *, year: int | None = None) -> ExtractionResult:
        """Extract invoice fields using OpenAI.

        Args:
            text: Raw payment text
            year: Year assumed for dates that omit one (current year if None)

        Returns:
            ExtractionResult with a PartialInvoice or an error, provider='openai'
        """
        if not self.is_available():
            return self._failure("OPENAI_API_KEY environment variable not set")

        if not text or not text.strip():
            return self._failure("Empty text provided")

        year = year or date.today().year
        try:
            api_key = os.getenv("OPENAI_API_KEY")
            if self._client is None or self._client.api_key != api_key:
                self._client = OpenAI(
                    api_key=api_key,
                    timeout=self.settings.ai_timeout_seconds,
                    max_retries=0,
                )

            response = self._call_openai(build_extraction_prompt(text, year=year))
            content = response.choices[0].message.content
            if not content:
                return self._failure("Empty response from API")

            return self._success(parse_ai_response(content, year=year))

        except AIResponseParseError as e:
            logger.warning(f"Failed to parse OpenAI response: {e}")
            return self._failure(f"JSON parsing failed: {e}")
        except Exception as e:
            logger.error(f"OpenAI extraction failed: {e}")
            return self._failure(f"Extraction failed: {e}")

    def _call_openai(self, prompt: str) -> Any:
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return self._client.chat.completions.create(  # type: ignore[call-overload]
            model=self.settings.openai_model,
            messages=[
                {
                    "role": "system",
                    "content": "You are an invoice data extraction assistant.",
                },
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=0,
        )
