"""FastAPI application for payment-text invoicing.

Endpoints:
- Health and readiness checks
- Prometheus metrics
- Invoice extraction from pasted payment text
- Invoice number issuing
- Vendor profile storage
- Pre-generation invoice validation

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel, to_snake

from invoicer.api import metrics
from invoicer.extraction.service import ExtractionEngine, ExtractionOutcome
from invoicer.extraction.template_parser import INVOICE_FORMAT_TEMPLATE
from invoicer.numbering.service import NumberingService
from invoicer.shared.config import get_settings
from invoicer.shared.errors import ErrorResponse, InvoiceNumberFormatError, StorageError
from invoicer.storage.service import StorageService, create_key_value_store
from invoicer.validation.validators import validate_invoice_data, validate_vendor_profile
from invoicer.vendor.schema import VendorProfile

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application shutdown hook - stop the AI worker threads."""
    yield
    extraction_engine.close()


app = FastAPI(
    title="Payment Text Invoicer",
    description="Turns pasted payment messages into structured invoices",
    version=settings.service_version,
    lifespan=lifespan,
)

extraction_engine = ExtractionEngine(settings)
storage_service = StorageService(create_key_value_store(settings))
numbering_service = NumberingService(storage_service.store, prefix=settings.invoice_prefix)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Record request count and duration by method and endpoint."""
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractRequest(_CamelModel):
    """Payment text to extract an invoice from."""

    text: str = Field(..., description="Pasted payment message")
    use_ai: bool = Field(False, description="Call the AI provider even if regex looks complete")


class TemplateResponse(_CamelModel):
    template: str


class InvoiceNumberResponse(_CamelModel):
    invoice_number: str


class ValidationResponse(_CamelModel):
    valid: bool
    error: ErrorResponse | None = None


def _error_detail(
    error_code: str, message: str, details: dict[str, str] | None = None
) -> dict[str, Any]:
    payload = ErrorResponse(error_code=error_code, message=message, details=details or {})
    return payload.model_dump(by_alias=True)


def _storage_unavailable(e: StorageError) -> HTTPException:
    logger.error(f"Storage failure: {e.message}")
    error_code = e.details.get("errorCode", "NETWORK_ERROR")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=_error_detail(error_code, e.message),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Liveness probe."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness probe: the configured key-value store must be readable."""
    try:
        storage_service.get_last_invoice_number()
    except StorageError as e:
        logger.warning(f"Readiness check failed: {e.message}")
        return ReadinessResponse(ready=False)
    return ReadinessResponse(ready=True)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.get("/api/v1/extract/template", response_model=TemplateResponse, tags=["Extraction"])
def get_template() -> TemplateResponse:
    """Labelled layout that the structured-template parser reads most reliably."""
    return TemplateResponse(template=INVOICE_FORMAT_TEMPLATE)


@app.post("/api/v1/extract", response_model=ExtractionOutcome, tags=["Extraction"])
def extract_invoice(request: ExtractRequest) -> ExtractionOutcome:
    """Extract a structured invoice from pasted payment text.

    Regex strategies always run; the AI provider is added when `useAi` is
    set or when client name or amount could not be found. Missing fields
    and AI unavailability are reported in the response (`error`,
    `aiError`), never as an HTTP error.

    ## Usage Example

    ```bash
    curl -X POST "http://localhost:8000/api/v1/extract" \\
      -H "Content-Type: application/json" \\
      -d '{"text": "Hi Ankit, Logo redesign came to ₹3,200. GST @18%"}'
    ```

    Raises:
        HTTPException: 400 if text is empty
    """
    if not request.text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_detail("INVALID_INPUT", "Payment text is empty", {"text": "Required"}),
        )

    outcome = extraction_engine.extract(request.text, use_ai=request.use_ai)

    metrics.extraction_requests_total.labels(
        method=outcome.method,
        status="complete" if outcome.success else "incomplete",
    ).inc()
    if outcome.ai_attempted:
        provider_name = extraction_engine.provider_name
        metrics.ai_extraction_requests_total.labels(
            provider=provider_name,
            status="failed" if outcome.ai_error else "success",
        ).inc()
        if outcome.ai_duration_seconds is not None:
            metrics.ai_extraction_duration_seconds.observe(outcome.ai_duration_seconds)

    return outcome


@app.post(
    "/api/v1/invoices/validate", response_model=ValidationResponse, tags=["Invoices"]
)
def validate_invoice(invoice: dict[str, Any] = Body(...)) -> ValidationResponse:  # noqa: B008
    """Check an edited invoice before generation.

    Accepts the camelCase invoice JSON returned by extraction.
    """
    snake_case = {to_snake(key): value for key, value in invoice.items()}
    if isinstance(snake_case.get("items"), list):
        snake_case["items"] = [
            {to_snake(k): v for k, v in item.items()} if isinstance(item, dict) else item
            for item in snake_case["items"]
        ]
    error = validate_invoice_data(snake_case)
    return ValidationResponse(valid=error is None, error=error)


@app.post(
    "/api/v1/numbering/next", response_model=InvoiceNumberResponse, tags=["Invoices"]
)
def next_invoice_number() -> InvoiceNumberResponse:
    """Issue the next invoice number (PREFIX-YYYY-NNN).

    Raises:
        HTTPException: 500 if the stored sequence is corrupted,
            503 if storage is unreachable
    """
    try:
        number = numbering_service.generate_next()
    except InvoiceNumberFormatError as e:
        logger.error(f"Invoice numbering state is corrupted: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_detail("INVALID_INPUT", e.message, {"lastInvoiceNumber": e.value}),
        ) from e
    except StorageError as e:
        raise _storage_unavailable(e) from e

    metrics.invoice_numbers_issued_total.inc()
    return InvoiceNumberResponse(invoice_number=number)


@app.post("/api/v1/vendor", response_model=VendorProfile, tags=["Vendor"])
def save_vendor_profile(profile: VendorProfile) -> VendorProfile:
    """Validate and store the vendor profile.

    Raises:
        HTTPException: 400 with per-field details if the profile is invalid
    """
    error = validate_vendor_profile(profile)
    if error is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error.model_dump(by_alias=True),
        )
    try:
        storage_service.save_vendor_profile(profile)
    except StorageError as e:
        raise _storage_unavailable(e) from e
    return profile


@app.get("/api/v1/vendor", response_model=VendorProfile, tags=["Vendor"])
def get_vendor_profile() -> VendorProfile:
    """Return the stored vendor profile.

    Raises:
        HTTPException: 404 if no profile has been saved
    """
    try:
        profile = storage_service.get_vendor_profile()
    except StorageError as e:
        raise _storage_unavailable(e) from e
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No vendor profile saved")
    return profile
