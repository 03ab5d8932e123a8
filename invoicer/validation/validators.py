"""Validation rules for invoice data and vendor profiles.

The format predicates here (GSTIN, UPI id, IFSC code) are the single source
of truth: the extraction pattern library builds its recognizers from the
same expressions, and the pre-generation checks call the same functions.
"""

import re
from typing import Any

from invoicer.shared.errors import ErrorResponse, ValidationFailedError

# 2 digits, 5 letters, 4 digits, 1 letter, 1 alphanumeric, literal Z, 1 alphanumeric
GST_NUMBER_BODY = r"\d{2}[A-Z]{5}\d{4}[A-Z][A-Z0-9]Z[A-Z0-9]"
# 4 letters, literal 0, 6 alphanumerics
IFSC_CODE_BODY = r"[A-Z]{4}0[A-Z0-9]{6}"
UPI_ID_BODY = r"[\w.-]+@[\w.-]+"

_GST_NUMBER_RE = re.compile(rf"^{GST_NUMBER_BODY}$")
_IFSC_CODE_RE = re.compile(rf"^{IFSC_CODE_BODY}$")
_UPI_ID_RE = re.compile(rf"^{UPI_ID_BODY}$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

GST_NUMBER_FORMAT = "22AAAAA0000A1Z5"
IFSC_CODE_FORMAT = "XXXX0XXXXXX"
UPI_ID_FORMAT = "identifier@provider"


def normalize_gst_number(value: str) -> str:
    """Trim and uppercase a GSTIN candidate."""
    return value.strip().upper()


def is_valid_gst_number(value: str | None) -> bool:
    """Check GSTIN format; lowercase input is accepted."""
    if not value or not isinstance(value, str):
        return False
    return bool(_GST_NUMBER_RE.match(normalize_gst_number(value)))


def is_valid_upi_id(value: str | None) -> bool:
    """Check UPI id format: token@token with no whitespace."""
    if not value or not isinstance(value, str):
        return False
    return bool(_UPI_ID_RE.match(value))


def is_valid_ifsc_code(value: str | None) -> bool:
    """Check IFSC code format; lowercase input is accepted."""
    if not value or not isinstance(value, str):
        return False
    return bool(_IFSC_CODE_RE.match(value.strip().upper()))


def is_valid_email(value: str | None) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(_EMAIL_RE.match(value))


def _is_valid_iso_date(value: str) -> bool:
    match = _ISO_DATE_RE.match(value)
    if not match:
        return False
    month, day = int(match.group(2)), int(match.group(3))
    return 1 <= month <= 12 and 1 <= day <= 31


def _get(data: Any, name: str) -> Any:
    if isinstance(data, dict):
        return data.get(name)
    return getattr(data, name, None)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def validate_invoice_data(invoice: Any) -> ErrorResponse | None:
    """Check an invoice for completeness before generation.

    Accepts an InvoiceData/PartialInvoice model or a dict keyed by field name.

    Returns:
        ErrorResponse with per-field details, or None when valid
    """
    errors: dict[str, str] = {}

    if _blank(_get(invoice, "client_name")):
        errors["clientName"] = "Client name is required"

    items = _get(invoice, "items") or []
    if not items:
        errors["items"] = "At least one line item is required"
    for index, item in enumerate(items):
        if _blank(_get(item, "description")):
            errors[f"items[{index}].description"] = "Line item description is required"
        quantity = _get(item, "quantity")
        if not _is_number(quantity) or quantity <= 0:
            errors[f"items[{index}].quantity"] = "Line item quantity must be greater than 0"
        rate = _get(item, "rate")
        if not _is_number(rate) or rate < 0:
            errors[f"items[{index}].rate"] = "Line item rate must be non-negative"

    if _blank(_get(invoice, "currency")):
        errors["currency"] = "Currency is required"

    for name, label in (("subtotal", "Subtotal"), ("total", "Total")):
        value = _get(invoice, name)
        if not _is_number(value) or value < 0:
            errors[name] = f"{label} must be a non-negative number"

    tax_rate = _get(invoice, "tax_rate")
    if tax_rate is not None and (not _is_number(tax_rate) or not 0 <= tax_rate <= 100):
        errors["taxRate"] = "Tax rate must be between 0 and 100"

    email = _get(invoice, "client_email")
    if not _blank(email) and not is_valid_email(email):
        errors["clientEmail"] = "Invalid email format"

    for name, label in (("invoice_date", "invoiceDate"), ("due_date", "dueDate")):
        value = _get(invoice, name)
        if not _blank(value) and not _is_valid_iso_date(value):
            errors[label] = f"Invalid {name.replace('_', ' ')} format. Expected format: YYYY-MM-DD"

    if errors:
        return ErrorResponse(
            error_code="INVALID_INPUT",
            message="Invoice data validation failed",
            details=errors,
        )
    return None


def validate_vendor_profile(profile: Any) -> ErrorResponse | None:
    """Check a vendor profile's required fields and payment formats.

    Returns:
        ErrorResponse with per-field details, or None when valid
    """
    errors: dict[str, str] = {}

    if _blank(_get(profile, "name")):
        errors["name"] = "Vendor name is required"

    email = _get(profile, "email")
    if _blank(email):
        errors["email"] = "Email is required"
    elif not is_valid_email(email):
        errors["email"] = "Invalid email format"

    if _blank(_get(profile, "phone")):
        errors["phone"] = "Phone number is required"
    if _blank(_get(profile, "address")):
        errors["address"] = "Address is required"

    gst_number = _get(profile, "gst_number")
    if not _blank(gst_number) and not is_valid_gst_number(gst_number):
        errors["gstNumber"] = f"Invalid GST number format. Expected format: {GST_NUMBER_FORMAT}"

    upi_id = _get(profile, "upi_id")
    if not _blank(upi_id) and not is_valid_upi_id(upi_id):
        errors["upiId"] = f"Invalid UPI ID format. Expected format: {UPI_ID_FORMAT}"

    ifsc_code = _get(profile, "ifsc_code")
    if not _blank(ifsc_code) and not is_valid_ifsc_code(ifsc_code):
        errors["ifscCode"] = f"Invalid IFSC code format. Expected format: {IFSC_CODE_FORMAT}"

    if errors:
        return ErrorResponse(
            error_code="INVALID_INPUT",
            message="Vendor profile validation failed",
            details=errors,
        )
    return None


def require_valid_invoice_data(invoice: Any) -> None:
    """Raise ValidationFailedError if the invoice fails validation."""
    error = validate_invoice_data(invoice)
    if error is not None:
        raise ValidationFailedError(error)


def require_valid_vendor_profile(profile: Any) -> None:
    """Raise ValidationFailedError if the vendor profile fails validation."""
    error = validate_vendor_profile(profile)
    if error is not None:
        raise ValidationFailedError(error)
