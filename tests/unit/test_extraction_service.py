"""Unit tests for the extraction engine.

Tests cover:
- Regex-only extraction of complete and incomplete texts
- AI invocation (explicit and automatic) with a mocked provider
- AI failure and timeout fallback
- Deterministic merging
"""

import time
from collections.abc import Generator
from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from invoicer.extraction.base import ExtractionResult
from invoicer.extraction.schema import LineItem, PartialInvoice
from invoicer.extraction.service import ExtractionEngine, missing_required_fields
from invoicer.shared.config import Settings
from invoicer.shared.errors import AIExtractionError

GST_MESSAGE = (
    "Hi Ankit,\n"
    "Logo design: ₹10,000\n"
    "Website development: ₹25,000\n"
    "GST @18%\n"
    "Total amount payable: ₹41,300"
)
BARE_AMOUNT = "Please pay ₹5,000.00 for services"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, ai_timeout_seconds=0.2)


@pytest.fixture
def provider() -> MagicMock:
    mock_provider = MagicMock()
    mock_provider.provider_name = "mock"
    mock_provider.is_available.return_value = False
    return mock_provider


@pytest.fixture
def engine(settings: Settings, provider: MagicMock) -> Generator[ExtractionEngine, None, None]:
    engine = ExtractionEngine(settings, provider, today=lambda: date(2025, 3, 1))
    yield engine
    engine.close()


def _ai_result(invoice: PartialInvoice) -> ExtractionResult:
    return ExtractionResult(invoice_data=invoice, success=True, provider="mock")


class TestRegexExtraction:
    def test_complete_message(self, engine: ExtractionEngine, provider: MagicMock) -> None:
        outcome = engine.extract(GST_MESSAGE)

        assert outcome.method == "regex"
        assert outcome.success is True
        assert outcome.missing_fields == []
        assert outcome.error is None
        assert outcome.ai_attempted is False
        assert outcome.data.client_name == "Ankit"
        assert [i.amount for i in outcome.data.items] == [10000.0, 25000.0]
        assert outcome.data.subtotal == 35000.0
        assert outcome.data.tax_amount == 6300.0
        assert outcome.data.total == 41300.0
        assert outcome.data.invoice_date == "2025-03-01"
        provider.extract_invoice_fields.assert_not_called()

    def test_incomplete_message(self, engine: ExtractionEngine) -> None:
        outcome = engine.extract(BARE_AMOUNT)

        assert outcome.success is False
        assert outcome.data.total == 5000.0
        assert outcome.data.currency == "INR"
        assert outcome.missing_fields == ["clientName", "items"]
        assert outcome.error is not None
        assert outcome.error.error_code == "EXTRACTION_INCOMPLETE"
        assert outcome.error.details == {
            "clientName": "Not found in text",
            "items": "Not found in text",
        }

    def test_prose_items_without_tax(self, engine: ExtractionEngine) -> None:
        outcome = engine.extract(
            "Logo redesign came to ₹3,200 and the website banner set is ₹4,500"
        )

        assert [i.amount for i in outcome.data.items] == [3200.0, 4500.0]
        assert outcome.data.subtotal == 7700.0
        assert outcome.data.tax_amount == 0.0
        assert outcome.data.total == 7700.0
        assert outcome.missing_fields == ["clientName"]

    def test_empty_text_yields_empty_partial(self, engine: ExtractionEngine) -> None:
        assert engine.extract_with_regex("").is_empty()

    def test_parser_failure_does_not_fail_extraction(self, engine: ExtractionEngine) -> None:
        def broken_parser(text: str, *, year: int | None = None) -> PartialInvoice:
            raise RuntimeError("boom")

        with patch("invoicer.extraction.service.parse_free_text", broken_parser):
            outcome = engine.extract(GST_MESSAGE)

        assert outcome.data.currency == "INR"

    def test_outcome_serializes_with_camel_case(self, engine: ExtractionEngine) -> None:
        payload = engine.extract(BARE_AMOUNT).model_dump(by_alias=True, mode="json")

        assert payload["missingFields"] == ["clientName", "items"]
        assert payload["error"]["errorCode"] == "EXTRACTION_INCOMPLETE"
        assert payload["data"]["invoiceDate"] == "2025-03-01"


class TestAIExtraction:
    def test_auto_ai_when_client_missing(
        self, engine: ExtractionEngine, provider: MagicMock
    ) -> None:
        provider.is_available.return_value = True
        provider.extract_invoice_fields.return_value = _ai_result(
            PartialInvoice(
                client_name="Ankit",
                items=[LineItem.from_amount(1, "Services", 5000)],
            )
        )

        outcome = engine.extract(BARE_AMOUNT)

        assert outcome.ai_attempted is True
        assert outcome.method == "hybrid"
        assert outcome.success is True
        assert outcome.data.client_name == "Ankit"
        assert outcome.data.total == 5000.0
        assert outcome.ai_duration_seconds is not None
        provider.extract_invoice_fields.assert_called_once_with(BARE_AMOUNT, year=2025)

    def test_no_auto_ai_when_provider_unavailable(
        self, engine: ExtractionEngine, provider: MagicMock
    ) -> None:
        outcome = engine.extract(BARE_AMOUNT)

        assert outcome.ai_attempted is False
        assert outcome.ai_error is None
        provider.extract_invoice_fields.assert_not_called()

    def test_ai_overrides_regex_fields(
        self, engine: ExtractionEngine, provider: MagicMock
    ) -> None:
        provider.extract_invoice_fields.return_value = _ai_result(
            PartialInvoice(client_name="Ankit Sharma", due_date="2025-03-15")
        )

        outcome = engine.extract(GST_MESSAGE, use_ai=True)

        assert outcome.method == "hybrid"
        assert outcome.data.client_name == "Ankit Sharma"
        assert outcome.data.due_date == "2025-03-15"
        assert outcome.data.total == 41300.0

    def test_ai_failure_falls_back_to_regex(
        self, engine: ExtractionEngine, provider: MagicMock
    ) -> None:
        provider.extract_invoice_fields.return_value = ExtractionResult(
            invoice_data=None,
            success=False,
            error="OPENAI_API_KEY environment variable not set",
            provider="mock",
        )

        outcome = engine.extract(GST_MESSAGE, use_ai=True)

        assert outcome.method == "regex"
        assert outcome.success is True
        assert outcome.data.total == 41300.0
        assert outcome.ai_error is not None
        assert outcome.ai_error.error_code == "AI_SERVICE_UNAVAILABLE"
        assert outcome.ai_error.details == {
            "reason": "OPENAI_API_KEY environment variable not set"
        }

    def test_ai_exception_falls_back_to_regex(
        self, engine: ExtractionEngine, provider: MagicMock
    ) -> None:
        provider.extract_invoice_fields.side_effect = RuntimeError("connection reset")

        outcome = engine.extract(GST_MESSAGE, use_ai=True)

        assert outcome.method == "regex"
        assert outcome.ai_error is not None
        assert outcome.ai_error.details["reason"] == "connection reset"

    def test_ai_timeout(self, engine: ExtractionEngine, provider: MagicMock) -> None:
        def slow_extract(text: str, *, year: int | None = None) -> ExtractionResult:
            time.sleep(1)
            return _ai_result(PartialInvoice(client_name="Too Late"))

        provider.extract_invoice_fields.side_effect = slow_extract

        with pytest.raises(AIExtractionError) as exc_info:
            engine.extract_with_ai(GST_MESSAGE)
        assert exc_info.value.reason == "Request timed out after 0.2s"
        assert exc_info.value.provider == "mock"

    def test_ai_timeout_result_discarded(
        self, engine: ExtractionEngine, provider: MagicMock
    ) -> None:
        def slow_extract(text: str, *, year: int | None = None) -> ExtractionResult:
            time.sleep(1)
            return _ai_result(PartialInvoice(client_name="Too Late"))

        provider.extract_invoice_fields.side_effect = slow_extract

        outcome = engine.extract(GST_MESSAGE, use_ai=True)

        assert outcome.data.client_name == "Ankit"
        assert outcome.ai_error is not None
        assert "timed out" in outcome.ai_error.message

    def test_ai_receives_engine_year(self, engine: ExtractionEngine, provider: MagicMock) -> None:
        provider.extract_invoice_fields.return_value = _ai_result(PartialInvoice(client_name="x"))

        engine.extract_with_ai(GST_MESSAGE)

        provider.extract_invoice_fields.assert_called_once_with(GST_MESSAGE, year=2025)

    def test_slow_availability_check_bounded_by_timeout(
        self, engine: ExtractionEngine, provider: MagicMock
    ) -> None:
        def slow_is_available() -> bool:
            time.sleep(1)
            return True

        provider.is_available.side_effect = slow_is_available

        start = time.time()
        outcome = engine.extract(BARE_AMOUNT)
        elapsed = time.time() - start

        assert elapsed < 0.8
        assert outcome.ai_attempted is True
        assert outcome.ai_error is not None
        assert outcome.ai_error.details == {"reason": "Request timed out after 0.2s"}
        assert outcome.data.total == 5000.0

    def test_slow_provider_creation_bounded_by_timeout(self, settings: Settings) -> None:
        def slow_factory(settings: Settings) -> MagicMock:
            time.sleep(1)
            return MagicMock()

        engine = ExtractionEngine(settings, today=lambda: date(2025, 3, 1))
        with patch(
            "invoicer.extraction.service.create_extraction_service", side_effect=slow_factory
        ):
            start = time.time()
            with pytest.raises(AIExtractionError) as exc_info:
                engine.extract_with_ai(GST_MESSAGE)
            elapsed = time.time() - start
        engine.close()

        assert elapsed < 0.8
        assert exc_info.value.reason == "Request timed out after 0.2s"
        assert exc_info.value.provider == "openai"

    def test_ai_zero_rate_overrides_regex_tax(
        self, engine: ExtractionEngine, provider: MagicMock
    ) -> None:
        provider.extract_invoice_fields.return_value = _ai_result(PartialInvoice(tax_rate=0))

        outcome = engine.extract(
            "Logo redesign came to ₹3,200 and the website banner set is ₹4,500. GST @18%",
            use_ai=True,
        )

        assert outcome.data.subtotal == 7700.0
        assert outcome.data.tax_rate == 0
        assert outcome.data.tax_amount == 0.0
        assert outcome.data.total == 7700.0


class TestMerge:
    def test_merge_is_deterministic(self, engine: ExtractionEngine) -> None:
        regex = engine.extract_with_regex(GST_MESSAGE)
        ai = PartialInvoice(client_name="Ankit", currency="INR")

        assert engine.merge_extraction_results(regex, ai) == engine.merge_extraction_results(
            regex, ai
        )

    def test_merge_without_ai(self, engine: ExtractionEngine) -> None:
        regex = engine.extract_with_regex(GST_MESSAGE)
        data = engine.merge_extraction_results(regex)
        assert data.total == 41300.0
        assert data.invoice_date == "2025-03-01"

    def test_missing_required_fields(self, engine: ExtractionEngine) -> None:
        data = engine.merge_extraction_results(PartialInvoice())
        assert missing_required_fields(data) == ["clientName", "amount", "items"]

    def test_merge_with_ai_zero_rate(self, engine: ExtractionEngine) -> None:
        regex = engine.extract_with_regex(
            "Logo redesign came to ₹3,200 and the website banner set is ₹4,500. GST @18%"
        )
        assert regex.tax_amount == 1386.0

        data = engine.merge_extraction_results(regex, PartialInvoice(tax_rate=0))

        assert data.subtotal == 7700.0
        assert data.tax_amount == 0.0
        assert data.total == 7700.0


def test_lazy_provider_from_settings() -> None:
    engine = ExtractionEngine(Settings(_env_file=None, ai_provider="ollama"))
    with patch("invoicer.extraction.service.create_extraction_service") as mock_factory:
        assert engine.provider is mock_factory.return_value
        assert engine.provider is mock_factory.return_value
    mock_factory.assert_called_once_with(engine.settings)


def test_close_stops_worker_threads(settings: Settings, provider: MagicMock) -> None:
    engine = ExtractionEngine(settings, provider)

    with patch.object(engine._executor, "shutdown") as mock_shutdown:
        engine.close()

    mock_shutdown.assert_called_once_with(wait=False, cancel_futures=True)


def test_ai_rejected_after_close(settings: Settings, provider: MagicMock) -> None:
    engine = ExtractionEngine(settings, provider)
    engine.close()

    with pytest.raises(AIExtractionError):
        engine.extract_with_ai(GST_MESSAGE)
