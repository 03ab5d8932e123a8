"""Invoice data models for structured extraction.

Field names are snake_case in Python; the JSON wire names are the camelCase
aliases (clientName, invoiceDate, taxRate, ...). Models accept either.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

IsoDate = Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}$")]

ExtractionSource = Literal["template", "heuristic", "ai"]
ExtractionMethod = Literal["regex", "ai", "hybrid"]

_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


def round2(value: float) -> float:
    """Round a money value to 2 decimals, half away from zero."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class LineItem(BaseModel):
    """One billable entry on an invoice."""

    model_config = _MODEL_CONFIG

    id: str = Field(..., description="Locally unique id, item-<n> in detection order")
    description: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    quantity: float = Field(1, gt=0, description="Units billed")
    rate: float = Field(..., ge=0, description="Unit price")
    amount: float = Field(..., ge=0, description="Line total")

    @classmethod
    def from_amount(
        cls, position: int, description: str, amount: float, quantity: float = 1
    ) -> "LineItem":
        """Build an item whose amount was stated directly; rate is back-derived."""
        return cls(
            id=f"item-{position}",
            description=description,
            quantity=quantity,
            rate=round2(amount / quantity),
            amount=round2(amount),
        )

    @classmethod
    def from_rate(
        cls, position: int, description: str, rate: float, quantity: float = 1
    ) -> "LineItem":
        """Build an item from a unit price; amount is quantity * rate."""
        return cls(
            id=f"item-{position}",
            description=description,
            quantity=quantity,
            rate=rate,
            amount=round2(quantity * rate),
        )


class PaymentInfo(BaseModel):
    """Payment details; every field is independently optional."""

    model_config = _MODEL_CONFIG

    upi_id: str | None = Field(None, description="UPI payment identifier (id@provider)")
    bank_name: str | None = Field(None, description="Bank name")
    account_number: str | None = Field(None, description="Bank account number")
    ifsc_code: str | None = Field(None, description="Bank routing (IFSC) code")
    account_holder_name: str | None = Field(None, description="Account holder name")

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class PartialInvoice(BaseModel):
    """Partial extraction result produced by one strategy.

    Any subset of the invoice fields may be set; None means "not detected".
    Instances are frozen: producers build them once, the merger only reads.
    """

    model_config = _MODEL_CONFIG

    invoice_number: str | None = Field(None, description="Invoice identifier")
    invoice_date: IsoDate | None = Field(None, description="Issue date (YYYY-MM-DD)")
    due_date: IsoDate | None = Field(None, description="Payment due date (YYYY-MM-DD)")

    # Client information
    client_name: str | None = Field(None, description="Client/buyer name")
    client_company: str | None = Field(None, description="Client company")
    client_email: str | None = Field(None, description="Client email")
    client_phone: str | None = Field(None, description="Client phone")
    client_address: str | None = Field(None, description="Client address")

    # Line items
    items: list[LineItem] | None = Field(None, description="Detected line items")

    # Financial details
    currency: str | None = Field(None, description="Currency code (ISO 4217)")
    subtotal: float | None = Field(None, ge=0, description="Sum of line item amounts")
    tax_rate: float | None = Field(None, ge=0, le=100, description="Tax percentage")
    tax_amount: float | None = Field(None, ge=0, description="Tax amount")
    total: float | None = Field(None, ge=0, description="Total including tax")

    payment_info: PaymentInfo | None = Field(None, description="Payment details")
    gst_number: str | None = Field(None, description="GSTIN mentioned in the text")
    notes: str | None = Field(None, description="Free-text notes")

    def is_empty(self) -> bool:
        """True when no field carries a value."""
        data = self.model_dump(exclude_none=True)
        if data.get("items") == []:
            data.pop("items")
        return not data


class InvoiceData(PartialInvoice):
    """Reconciled invoice record.

    items, currency and invoice_date always carry a value.
    """

    items: list[LineItem] = Field(default_factory=list, description="Line items")
    currency: str = Field("INR", description="Currency code (ISO 4217)")
    invoice_date: IsoDate = Field(..., description="Issue date (YYYY-MM-DD)")
