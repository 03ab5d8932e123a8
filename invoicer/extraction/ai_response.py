"""Parsing of model responses into a PartialInvoice.

Model output is untrusted input: it may be wrapped in code fences or prose,
numbers may arrive as strings with separators and currency symbols, and
declared types are not to be relied on. Everything is coerced field by
field here so the rest of the system only ever sees a typed PartialInvoice.
"""

import json
import math
import re
from typing import Any

from invoicer.extraction import patterns
from invoicer.extraction.schema import LineItem, PartialInvoice, PaymentInfo
from invoicer.shared.errors import AIResponseParseError
from invoicer.validation.validators import normalize_gst_number

# JSON contract the model is asked to satisfy (camelCase wire names)
RESPONSE_SCHEMA = (
    '{"clientName": string|null, "clientCompany": string|null, '
    '"clientEmail": string|null, "clientPhone": string|null, '
    '"clientAddress": string|null, "invoiceDate": "YYYY-MM-DD"|null, '
    '"dueDate": "YYYY-MM-DD"|null, '
    '"items": [{"description": string, "quantity": number, "rate": number, "amount": number}], '
    '"currency": string|null, "subtotal": number|null, "total": number|null, '
    '"taxRate": number|null, "taxAmount": number|null, "upiId": string|null, '
    '"bankName": string|null, "accountNumber": string|null, "ifscCode": string|null, '
    '"accountHolderName": string|null, "gstNumber": string|null, "notes": string|null}'
)

_NULL_STRINGS = {"", "null", "none", "n/a"}


def build_extraction_prompt(text: str, *, year: int) -> str:
    """Instruction sent to the model; identical for every provider."""
    example_input = (
        "Hi Ankit, Logo redesign came to ₹3,200 and the website banner set is ₹4,500. "
        "GST @18%. Please clear it by 12th March. UPI: studio@okhdfcbank"
    )
    example_output = (
        '{"clientName": "Ankit", "invoiceDate": null, '
        f'"dueDate": "{year}-03-12", "items": ['
        '{"description": "Logo redesign", "quantity": 1, "rate": 3200, "amount": 3200}, '
        '{"description": "Website banner set", "quantity": 1, "rate": 4500, "amount": 4500}], '
        '"currency": "INR", "subtotal": 7700, "taxRate": 18, "taxAmount": 1386, '
        '"total": 9086, "upiId": "studio@okhdfcbank"}'
    )
    return f"""You extract invoice details from payment messages (emails, chats, SMS).
Return ONLY valid JSON matching this schema (use null for missing fields):
{RESPONSE_SCHEMA}

EXAMPLE:
Input: "{example_input}"
Output: {example_output}

INSTRUCTIONS:
- Dates as YYYY-MM-DD; assume year {year} when the text omits it
- Numbers without currency symbols or thousands separators
- Currency as an ISO 4217 code (₹/Rs -> INR)
- One item per billable service; do not add totals as items

INPUT:
{text}

OUTPUT:"""


def extract_json_block(raw: str) -> str:
    """Return the first balanced {...} block in the text.

    Braces inside JSON strings are ignored.

    Raises:
        AIResponseParseError: If no balanced object is present
    """
    start = raw.find("{")
    if start < 0:
        raise AIResponseParseError("No JSON object found in AI response")

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(raw)):
        char = raw[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return raw[start : index + 1]

    raise AIResponseParseError("Unbalanced JSON object in AI response")


def load_json_object(raw: str) -> dict[str, Any]:
    """Parse the first JSON object embedded in a model response.

    Raises:
        AIResponseParseError: If the payload is not a JSON object
    """
    try:
        data = json.loads(extract_json_block(raw))
    except json.JSONDecodeError as e:
        raise AIResponseParseError(f"Failed to parse AI response as JSON: {e}") from e
    if not isinstance(data, dict):
        raise AIResponseParseError("AI response JSON is not an object")
    return data


def _pick(data: dict[str, Any], camel: str, snake: str) -> Any:
    return data[camel] if data.get(camel) is not None else data.get(snake)


def coerce_str(value: Any) -> str | None:
    if value is None or isinstance(value, dict | list):
        return None
    text = str(value).strip()
    return None if text.lower() in _NULL_STRINGS else text


def coerce_number(value: Any) -> float | None:
    """Loose numeric parse: numbers pass through, strings lose separators and symbols."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        parsed = patterns.parse_money(value.replace("%", ""))
        if parsed is None:
            return None
        number = parsed
    else:
        return None
    return number if math.isfinite(number) else None


def _non_negative(value: Any) -> float | None:
    number = coerce_number(value)
    return number if number is not None and number >= 0 else None


def _currency(value: Any) -> str | None:
    text = coerce_str(value)
    if text is None:
        return None
    code = text.upper()
    if re.fullmatch(r"[A-Z]{3}", code):
        return code
    return patterns.detect_currency(text)


def _items(value: Any) -> list[LineItem] | None:
    if not isinstance(value, list):
        return None
    items: list[LineItem] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        description = coerce_str(entry.get("description"))
        if not description:
            continue
        quantity = max(1.0, coerce_number(entry.get("quantity")) or 1.0)
        rate = max(0.0, coerce_number(entry.get("rate")) or 0.0)
        amount = coerce_number(entry.get("amount"))
        position = len(items) + 1
        if amount is not None:
            if amount <= 0:
                continue
            items.append(LineItem.from_amount(position, description, amount, quantity))
        elif rate > 0:
            items.append(LineItem.from_rate(position, description, rate, quantity))
    return items


def _payment_info(data: dict[str, Any]) -> PaymentInfo | None:
    nested = data.get("paymentInfo") or data.get("payment_info")
    source = {**data, **nested} if isinstance(nested, dict) else data
    ifsc_code = coerce_str(_pick(source, "ifscCode", "ifsc_code"))
    info = PaymentInfo(
        upi_id=coerce_str(_pick(source, "upiId", "upi_id")),
        bank_name=coerce_str(_pick(source, "bankName", "bank_name")),
        account_number=coerce_str(_pick(source, "accountNumber", "account_number")),
        ifsc_code=ifsc_code.upper() if ifsc_code else None,
        account_holder_name=coerce_str(_pick(source, "accountHolderName", "account_holder_name")),
    )
    return None if info.is_empty() else info


def _notes(notes: str | None, gst_number: str | None) -> str | None:
    if gst_number and (notes is None or gst_number not in notes):
        return f"{notes}\nGST: {gst_number}" if notes else f"GST: {gst_number}"
    return notes


def coerce_invoice(data: dict[str, Any], *, year: int | None = None) -> PartialInvoice:
    """Build a PartialInvoice from a decoded model response, field by field."""

    def date_field(camel: str, snake: str) -> str | None:
        text = coerce_str(_pick(data, camel, snake))
        return patterns.normalize_date(text, year=year) if text else None

    tax_rate = _non_negative(_pick(data, "taxRate", "tax_rate"))
    if tax_rate is not None and tax_rate > 100:
        tax_rate = None

    gst_raw = coerce_str(_pick(data, "gstNumber", "gst_number"))
    gst_number = normalize_gst_number(gst_raw) if gst_raw else None

    return PartialInvoice(
        invoice_number=coerce_str(_pick(data, "invoiceNumber", "invoice_number")),
        invoice_date=date_field("invoiceDate", "invoice_date"),
        due_date=date_field("dueDate", "due_date"),
        client_name=coerce_str(_pick(data, "clientName", "client_name")),
        client_company=coerce_str(_pick(data, "clientCompany", "client_company")),
        client_email=coerce_str(_pick(data, "clientEmail", "client_email")),
        client_phone=coerce_str(_pick(data, "clientPhone", "client_phone")),
        client_address=coerce_str(_pick(data, "clientAddress", "client_address")),
        items=_items(data.get("items")),
        currency=_currency(data.get("currency")),
        subtotal=_non_negative(data.get("subtotal")),
        tax_rate=tax_rate,
        tax_amount=_non_negative(_pick(data, "taxAmount", "tax_amount")),
        total=_non_negative(data.get("total")),
        payment_info=_payment_info(data),
        gst_number=gst_number,
        notes=_notes(coerce_str(data.get("notes")), gst_number),
    )


def parse_ai_response(raw: str, *, year: int | None = None) -> PartialInvoice:
    """Parse raw model output into a PartialInvoice.

    Args:
        raw: Model response text (may contain code fences or prose)
        year: Year assumed for dates without one

    Raises:
        AIResponseParseError: If no JSON object can be decoded
    """
    return coerce_invoice(load_json_object(raw), year=year)
