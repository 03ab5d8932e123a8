"""Unit tests for OpenAIExtractionProvider with a mocked client."""

from unittest.mock import MagicMock, patch

import pytest

from invoicer.extraction.openai_provider import OpenAIExtractionProvider
from invoicer.shared.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, ai_provider="openai", ai_timeout_seconds=10)


@pytest.fixture
def provider(settings: Settings) -> OpenAIExtractionProvider:
    return OpenAIExtractionProvider(settings)


def _response(content: str | None) -> MagicMock:
    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = content
    return mock_response


def test_provider_name(provider: OpenAIExtractionProvider) -> None:
    assert provider.provider_name == "openai"


@patch.dict("os.environ", {}, clear=True)
def test_extract_without_api_key(provider: OpenAIExtractionProvider) -> None:
    """Missing credentials are a soft failure, not an exception."""
    assert provider.is_available() is False

    result = provider.extract_invoice_fields("Logo - ₹500")

    assert result.success is False
    assert result.invoice_data is None
    assert result.error == "OPENAI_API_KEY environment variable not set"
    assert result.provider == "openai"


@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_empty_text(provider: OpenAIExtractionProvider) -> None:
    result = provider.extract_invoice_fields("   ")
    assert result.success is False
    assert result.error == "Empty text provided"


@patch("invoicer.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_success(mock_openai_class: MagicMock, provider: OpenAIExtractionProvider) -> None:
    mock_client = MagicMock()
    mock_client.api_key = "test-key"
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response(
        '{"clientName": "Ankit", "items": [{"description": "Logo redesign", '
        '"quantity": 1, "rate": 3200, "amount": 3200}], "currency": "INR", "taxRate": 18}'
    )

    result = provider.extract_invoice_fields("Hi Ankit, Logo redesign came to ₹3,200. GST @18%")

    assert result.success is True
    assert result.invoice_data is not None
    assert result.invoice_data.client_name == "Ankit"
    assert result.invoice_data.tax_rate == 18.0
    assert result.invoice_data.items is not None
    assert result.invoice_data.items[0].amount == 3200.0

    mock_openai_class.assert_called_once_with(api_key="test-key", timeout=10.0, max_retries=0)
    call_kwargs = mock_client.chat.completions.create.call_args.kwargs
    assert call_kwargs["model"] == "gpt-4o-mini"
    assert call_kwargs["response_format"] == {"type": "json_object"}


@patch("invoicer.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_uses_given_year(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    mock_client = MagicMock()
    mock_client.api_key = "test-key"
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response('{"clientName": "Ankit"}')

    provider.extract_invoice_fields("Hi Ankit, due 12th March", year=2019)

    messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
    assert "assume year 2019" in messages[1]["content"]


@patch("invoicer.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_api_error_is_single_attempt(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    """Transport failures are reported once; the call is not retried."""
    mock_client = MagicMock()
    mock_client.api_key = "test-key"
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.side_effect = Exception("API connection failed")

    result = provider.extract_invoice_fields("Logo - ₹500")

    assert result.success is False
    assert result.error is not None
    assert "Extraction failed" in result.error
    assert "API connection failed" in result.error
    assert mock_client.chat.completions.create.call_count == 1


@patch("invoicer.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_unparseable_response(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    mock_client = MagicMock()
    mock_client.api_key = "test-key"
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response("I could not find an invoice.")

    result = provider.extract_invoice_fields("Logo - ₹500")

    assert result.success is False
    assert result.error is not None
    assert "JSON parsing failed" in result.error


@patch("invoicer.extraction.openai_provider.OpenAI")
@patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
def test_extract_empty_content(
    mock_openai_class: MagicMock, provider: OpenAIExtractionProvider
) -> None:
    mock_client = MagicMock()
    mock_client.api_key = "test-key"
    mock_openai_class.return_value = mock_client
    mock_client.chat.completions.create.return_value = _response(None)

    result = provider.extract_invoice_fields("Logo - ₹500")

    assert result.success is False
    assert result.error == "Empty response from API"
