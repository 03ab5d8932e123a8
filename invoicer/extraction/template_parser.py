"""Structured-template parser.

Recognizes the labelled layout users are encouraged to paste:

    Client: Ankit Sharma
    Company: Tech Solutions
    Email: ankit@example.com
    Phone: 9876543210

    Items:
    - Logo redesign: ₹3,200
    - Website banner: ₹4,500

    Due Date: 12th March 2025

    Payment:
    UPI: merchant@paytm
    IFSC: HDFC0001234

Extraction is label-anchored (first match per label). Absent labels leave
the field unset; the parser never raises.
"""

import re

from invoicer.extraction import patterns
from invoicer.extraction.schema import LineItem, PartialInvoice, PaymentInfo

INVOICE_FORMAT_TEMPLATE = """Client: John Doe
Company: Acme Corp
Email: john@example.com
Phone: 9876543210

Items:
- Logo design: ₹5,000
- Website development: ₹15,000
- SEO optimization: ₹3,000

Due Date: 15th March 2025

Payment:
UPI: merchant@paytm
Bank: HDFC Bank
Account: 1234567890
IFSC: HDFC0001234"""


def _label(name: str) -> re.Pattern[str]:
    return re.compile(rf"^[ \t]*{name}[ \t]*:[ \t]*(\S.*?)[ \t]*$", re.IGNORECASE | re.MULTILINE)


_LABELS: dict[str, re.Pattern[str]] = {
    "client_name": _label("Client"),
    "client_company": _label("Company"),
    "client_email": _label("Email"),
    "client_phone": _label("Phone"),
    "client_address": _label("Address"),
    "due_date": _label("Due Date"),
    "upi_id": _label("UPI"),
    "bank_name": _label("Bank"),
    "account_number": _label("Account"),
    "ifsc_code": _label("IFSC"),
}

_ITEMS_BLOCK_RE = re.compile(
    r"^[ \t]*Items[ \t]*:(.*?)(?=\n[ \t]*\n|^[ \t]*Due Date[ \t]*:|^[ \t]*Payment[ \t]*:|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_ITEM_LINE_RE = re.compile(
    rf"^[ \t]*[-•*][ \t]*(.+?)[ \t]*:[ \t]*(?:{patterns.CURRENCY_MARKER})?[ \t]*"
    rf"({patterns.AMOUNT_NUMBER})",
    re.IGNORECASE | re.MULTILINE,
)


def _field(text: str, name: str) -> str | None:
    match = _LABELS[name].search(text)
    return match.group(1) if match else None


def _items(text: str) -> list[LineItem]:
    block = _ITEMS_BLOCK_RE.search(text)
    if not block:
        return []
    items: list[LineItem] = []
    for match in _ITEM_LINE_RE.finditer(block.group(1)):
        description = match.group(1).strip()
        amount = float(match.group(2).replace(",", ""))
        if description and amount > 0:
            items.append(LineItem.from_amount(len(items) + 1, description, amount))
    return items


def _payment_info(text: str) -> PaymentInfo | None:
    ifsc_code = _field(text, "ifsc_code")
    info = PaymentInfo(
        upi_id=_field(text, "upi_id"),
        bank_name=_field(text, "bank_name"),
        account_number=_field(text, "account_number"),
        ifsc_code=ifsc_code.upper() if ifsc_code else None,
    )
    return None if info.is_empty() else info


def parse_structured_template(text: str, *, year: int | None = None) -> PartialInvoice:
    """Extract fields from text that follows the labelled template.

    Args:
        text: Raw payment text
        year: Year assumed for a due date written without one

    Returns:
        PartialInvoice with whatever labels were present
    """
    items = _items(text)
    fields: dict[str, object] = {
        "client_name": _field(text, "client_name"),
        "client_company": _field(text, "client_company"),
        "client_email": _field(text, "client_email"),
        "client_phone": _field(text, "client_phone"),
        "client_address": _field(text, "client_address"),
        "payment_info": _payment_info(text),
    }

    raw_due_date = _field(text, "due_date")
    if raw_due_date:
        fields["due_date"] = patterns.normalize_date(raw_due_date, year=year)

    # Totals for these items are computed once, during reconciliation
    if items:
        fields.update(items=items, currency=patterns.detect_currency(text))

    return PartialInvoice(**fields)
