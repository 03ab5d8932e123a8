"""Abstract base class for AI extraction providers.

Enables switching between a cloud API and a self-hosted model while keeping
one result type. Providers report failure through ExtractionResult instead
of raising; the extraction engine turns a failed result into
AIExtractionError at its own boundary.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from invoicer.extraction.schema import PartialInvoice
from invoicer.shared.config import Settings


class ExtractionResult(BaseModel):
    """Result of one provider call.

    Attributes:
        invoice_data: Coerced partial invoice, or None if extraction failed
        success: Whether the call produced usable data
        error: Human-readable failure reason
        provider: Name of the provider that handled the call
    """

    invoice_data: PartialInvoice | None
    success: bool
    error: str | None = None
    provider: str


class ExtractionProvider(ABC):
    """Interface every AI extraction provider implements."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @abstractmethod
    def extract_invoice_fields(self, text: str, *, year: int | None = None) -> ExtractionResult:
        """Extract invoice fields from payment text.

        Args:
            text: Raw payment text
            year: Year assumed for dates that omit one (current year if None)

        Returns:
            ExtractionResult with a PartialInvoice or an error
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check provider prerequisites (API key, reachable server)."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier for logging/metrics."""

    def _failure(self, error: str) -> ExtractionResult:
        return ExtractionResult(
            invoice_data=None,
            success=False,
            error=error,
            provider=self.provider_name,
        )

    def _success(self, invoice_data: PartialInvoice) -> ExtractionResult:
        return ExtractionResult(
            invoice_data=invoice_data,
            success=True,
            provider=self.provider_name,
        )
