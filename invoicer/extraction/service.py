"""Extraction engine: regex strategies, the AI adapter and reconciliation.

    engine = ExtractionEngine(get_settings())
    outcome = engine.extract("Hi Ankit, Logo redesign came to ₹3,200 ...")
    outcome.data.total, outcome.method, outcome.missing_fields

The template and heuristic parsers always run. The AI provider is consulted
when the caller asks for it, or when regex extraction left the client name
or amount missing and the provider is available. AI failures never fail
the extraction; they are reported as an informational error payload.
"""

import concurrent.futures
import logging
import time
from collections.abc import Callable
from datetime import date

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from invoicer.extraction.base import ExtractionProvider, ExtractionResult
from invoicer.extraction.factory import create_extraction_service
from invoicer.extraction.heuristic_parser import parse_free_text
from invoicer.extraction.reconcile import apply_defaults, extraction_method, merge_partials
from invoicer.extraction.schema import ExtractionMethod, InvoiceData, PartialInvoice
from invoicer.extraction.template_parser import parse_structured_template
from invoicer.shared.config import Settings, get_settings
from invoicer.shared.errors import AIExtractionError, ErrorResponse

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("clientName", "amount", "items")


class ExtractionOutcome(BaseModel):
    """Result of a full extraction run.

    Attributes:
        data: Reconciled invoice, always complete enough to edit
        method: Strategies that contributed (regex, ai or hybrid)
        success: True when no required field is missing
        missing_fields: Required fields still empty (clientName, amount, items)
        error: EXTRACTION_INCOMPLETE payload when fields are missing
        ai_error: AI_SERVICE_UNAVAILABLE payload when the AI call failed
        ai_attempted: Whether the AI provider was called
        ai_duration_seconds: Wall time spent waiting on the AI call
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data: InvoiceData
    method: ExtractionMethod
    success: bool
    missing_fields: list[str]
    error: ErrorResponse | None = None
    ai_error: ErrorResponse | None = None
    ai_attempted: bool = False
    ai_duration_seconds: float | None = None


class ExtractionEngine:
    """Runs the extraction strategies and reconciles their results."""

    def __init__(
        self,
        settings: Settings | None = None,
        provider: ExtractionProvider | None = None,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Application settings (loaded from environment if omitted)
            provider: AI provider; created from settings on first use if omitted
            today: Clock used for default invoice dates and year-less dates
        """
        self.settings = settings or get_settings()
        self._provider = provider
        self._today = today
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="ai-extraction"
        )

    @property
    def provider(self) -> ExtractionProvider:
        if self._provider is None:
            self._provider = create_extraction_service(self.settings)
        return self._provider

    def _parse(self, parser: Callable[..., PartialInvoice], text: str) -> PartialInvoice:
        try:
            return parser(text, year=self._today().year)
        except Exception as e:
            logger.error(f"{parser.__name__} failed, continuing without it: {e}")
            return PartialInvoice()

    def _regex_partials(self, text: str) -> tuple[PartialInvoice, PartialInvoice]:
        return (
            self._parse(parse_structured_template, text),
            self._parse(parse_free_text, text),
        )

    def extract_with_regex(self, text: str) -> PartialInvoice:
        """Template and heuristic extraction merged, with totals recomputed.

        Never raises; unparseable text yields an empty PartialInvoice.
        """
        template, heuristic = self._regex_partials(text)
        return merge_partials(template=template, heuristic=heuristic)

    @property
    def provider_name(self) -> str:
        """Name of the AI provider, without creating it."""
        if self._provider is not None:
            return self._provider.provider_name
        return self.settings.ai_provider

    def _submit(self, text: str, *, check_available: bool) -> ExtractionResult | None:
        """Run the provider on the executor, bounded by settings.ai_timeout_seconds.

        Provider creation and, with check_available, the availability check
        run inside the same deadline; None is returned when the provider is
        not available. A result arriving after the timeout is discarded.
        """
        timeout = self.settings.ai_timeout_seconds
        year = self._today().year

        def call() -> ExtractionResult | None:
            provider = self.provider
            if check_available and not provider.is_available():
                return None
            return provider.extract_invoice_fields(text, year=year)

        try:
            future = self._executor.submit(call)
        except RuntimeError as e:
            # Engine already closed
            raise AIExtractionError(str(e), self.provider_name) from e
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            name = self.provider_name
            logger.warning(f"AI extraction via {name} timed out after {timeout}s")
            raise AIExtractionError(f"Request timed out after {timeout}s", name) from None
        except Exception as e:
            raise AIExtractionError(str(e), self.provider_name) from e

    def _invoice_from(self, result: ExtractionResult | None) -> PartialInvoice:
        if result is None:
            raise AIExtractionError("Provider not available", self.provider_name)
        if not result.success or result.invoice_data is None:
            raise AIExtractionError(result.error or "No data returned", result.provider)
        return result.invoice_data

    def extract_with_ai(self, text: str) -> PartialInvoice:
        """One AI attempt bounded by settings.ai_timeout_seconds.

        Dates without a year are resolved against the engine's clock.

        Raises:
            AIExtractionError: On missing credentials, transport failure,
                timeout or unparseable response
        """
        return self._invoice_from(self._submit(text, check_available=False))

    def _finalize(self, merged: PartialInvoice) -> InvoiceData:
        return apply_defaults(merged, today=self._today(), currency=self.settings.default_currency)

    def merge_extraction_results(
        self, regex: PartialInvoice, ai: PartialInvoice | None = None
    ) -> InvoiceData:
        """Merge regex and AI partial results into a complete invoice.

        Pure and deterministic for a fixed clock: AI values take precedence
        field by field, totals are recomputed and defaults applied.
        """
        return self._finalize(merge_partials(heuristic=regex, ai=ai))

    def extract(self, text: str, use_ai: bool = False) -> ExtractionOutcome:
        """Run every applicable strategy and reconcile the results.

        The AI provider is called when use_ai is set, or when the regex
        result lacks a client name or amount and the provider reports itself
        available. The availability check shares the AI deadline.

        Args:
            text: Raw payment text
            use_ai: Call the AI provider even when regex results look complete

        Returns:
            ExtractionOutcome; never raises for extraction problems
        """
        template, heuristic = self._regex_partials(text)
        regex = merge_partials(template=template, heuristic=heuristic)

        ai: PartialInvoice | None = None
        ai_error: ErrorResponse | None = None
        ai_duration: float | None = None
        ai_attempted = False
        regex_incomplete = not regex.client_name or not regex.total

        if use_ai or regex_incomplete:
            start = time.time()
            try:
                result = self._submit(text, check_available=not use_ai)
                ai_attempted = result is not None
                if result is not None:
                    ai = self._invoice_from(result)
            except AIExtractionError as e:
                ai_attempted = True
                logger.warning(f"Falling back to regex extraction: {e.message}")
                ai_error = ErrorResponse(
                    error_code="AI_SERVICE_UNAVAILABLE",
                    message=e.message,
                    details={"reason": e.reason},
                )
            if ai_attempted:
                ai_duration = time.time() - start

        # Sources are merged once so derived totals are computed once
        data = self._finalize(merge_partials(template=template, heuristic=heuristic, ai=ai))
        method = extraction_method(template=template, heuristic=heuristic, ai=ai)
        missing = missing_required_fields(data)
        logger.info(
            f"Extracted invoice via {method}: {len(data.items)} items, "
            f"total={data.total}, missing={missing}"
        )

        return ExtractionOutcome(
            data=data,
            method=method,
            success=not missing,
            missing_fields=missing,
            error=_incomplete_error(missing),
            ai_error=ai_error,
            ai_attempted=ai_attempted,
            ai_duration_seconds=ai_duration,
        )

    def close(self) -> None:
        """Stop the AI worker threads; pending AI calls are cancelled."""
        self._executor.shutdown(wait=False, cancel_futures=True)


def missing_required_fields(invoice: InvoiceData) -> list[str]:
    """Required fields (client name, an amount, at least one item) still empty."""
    present = {
        "clientName": bool(invoice.client_name),
        "amount": bool(invoice.total),
        "items": bool(invoice.items),
    }
    return [name for name in REQUIRED_FIELDS if not present[name]]


def _incomplete_error(missing: list[str]) -> ErrorResponse | None:
    if not missing:
        return None
    return ErrorResponse(
        error_code="EXTRACTION_INCOMPLETE",
        message="Some required fields could not be extracted; please review and complete them",
        details={name: "Not found in text" for name in missing},
    )
