"""Heuristic free-text parser.

Applies the pattern library to unlabelled prose such as

    Hi Ankit, Logo redesign came to ₹3,200 and the website banner set is
    ₹4,500. GST @18%. Please clear it by 12th March 2025.

Three passes run over the raw text: line-item sentence patterns, client
name heuristics and tax-rate detection. Derived totals (subtotal from items,
tax amount, total) are left to reconciliation; this parser only reports
what the text states.
"""

import logging
import re
from dataclasses import dataclass

from invoicer.extraction import patterns
from invoicer.extraction.schema import LineItem, PartialInvoice

logger = logging.getLogger(__name__)

# Amounts above this are more likely phone or account numbers than line items
MAX_LINE_ITEM_AMOUNT = 100_000

_SUMMARY_WORDS = ("total", "overall", "amount payable", "amount due")
_NAME_STOPWORDS = {"the", "a", "an", "for", "to", "from"}

_DESCRIPTION = r"([A-Za-z][A-Za-z \t()]*?)"
_PRICE = rf"(?:{patterns.CURRENCY_MARKER})[ \t]*({patterns.AMOUNT_NUMBER})"

# Tried in order; an amount in the text backs at most one item
LINE_ITEM_PATTERNS: list[re.Pattern[str]] = [
    # "Logo redesign came to ₹3,200", "banner set is ₹4,500"
    re.compile(
        rf"{_DESCRIPTION}[ \t]+(?:came to|is|for|was|costs?|totals?)[ \t]+{_PRICE}",
        re.IGNORECASE,
    ),
    # "short banner — ₹900", "Logo - ₹500"
    re.compile(rf"{_DESCRIPTION}[ \t]*[-—–][ \t]*{_PRICE}", re.IGNORECASE),
    # "Logo refinement: ₹1,200"
    re.compile(rf"{_DESCRIPTION}[ \t]*:[ \t]*{_PRICE}", re.IGNORECASE),
    # "• Landing page ₹1,800", "- Logo: ₹500"
    re.compile(
        rf"^[ \t]*[•*-][ \t]*{_DESCRIPTION}[ \t]*[:—–-]?[ \t]*{_PRICE}",
        re.IGNORECASE | re.MULTILINE,
    ),
]

_LEADING_CONNECTOR_RE = re.compile(r"^(?:(?:and|also|plus)\s+)+(?:the\s+)?", re.IGNORECASE)

_NAME_TAIL = r"(?=[ \t]*(?:\n|$|[.,:]))"
CLIENT_NAME_PATTERNS: list[re.Pattern[str]] = [
    # "Bill it to: Aurora Digital Pvt Ltd."
    re.compile(
        r"\bbill\s+(?:it\s+)?to\s*:\s*([A-Z][A-Za-z &.,()]+?)(?=[ \t]*(?:\n|$|,)|\.(?:\s|$))",
        re.IGNORECASE | re.MULTILINE,
    ),
    # "For the Acme Design Team:"
    re.compile(rf"\bFor\s+the\s+([A-Z][A-Za-z&() ]+?){_NAME_TAIL}", re.MULTILINE),
    # "Hi Mr. Ankit Sharma", "Hello Priya", "Dear Dr. Rao"
    re.compile(
        r"\b(?i:hi|hello|dear)\s+(?:(?i:mr|ms|mrs|dr)\.?\s+)?([A-Z][a-zA-Z]+(?:[ \t]+[A-Z][a-zA-Z]+)*)"
    ),
    # "Payment from John Doe for services"
    re.compile(
        r"\b(?:from|From|FROM)\s+([A-Z][a-zA-Z]+(?:[ \t]+[A-Z][a-zA-Z]+)?)"
        r"(?=[ \t]*(?:\n|$|,)|[ \t]+for\b)",
        re.MULTILINE,
    ),
    # "Invoice to Priya Nair"
    re.compile(
        r"\b(?:to|To|TO)\s+([A-Z][a-zA-Z]+(?:[ \t]+[A-Z][a-zA-Z]+)?)(?=[ \t]*(?:\n|$|,))",
        re.MULTILINE,
    ),
    # "Client: Tech Solutions", "Name: Pixelwave Studio"
    re.compile(rf"\bclient\s*:\s*([A-Z][A-Za-z &.()]+?){_NAME_TAIL}", re.IGNORECASE | re.MULTILINE),
    re.compile(rf"\bname\s*:\s*([A-Z][A-Za-z &.()]+?){_NAME_TAIL}", re.IGNORECASE | re.MULTILINE),
]


@dataclass(frozen=True)
class _Candidate:
    position: int
    description: str
    amount: float


def _clean_description(raw: str) -> str:
    description = re.sub(r"\s+", " ", raw).strip()
    return _LEADING_CONNECTOR_RE.sub("", description).strip()


def _is_line_item(description: str, amount: float) -> bool:
    if len(description) < 3:
        return False
    lowered = description.lower()
    if any(word in lowered for word in _SUMMARY_WORDS):
        return False
    return 0 < amount <= MAX_LINE_ITEM_AMOUNT


def extract_line_items(text: str) -> list[LineItem]:
    """Line items stated in prose, in text order.

    Candidates are dropped when the description is too short or names a
    summary line, when the amount is out of range, or when the same
    (description, amount) pair or the same amount token was already taken.
    """
    claimed_positions: set[int] = set()
    seen: set[tuple[str, float]] = set()
    accepted: list[_Candidate] = []

    for pattern in LINE_ITEM_PATTERNS:
        for match in pattern.finditer(text):
            position = match.start(2)
            if position in claimed_positions:
                continue
            description = _clean_description(match.group(1))
            amount = float(match.group(2).replace(",", ""))
            if not _is_line_item(description, amount):
                continue
            key = (description.lower(), amount)
            if key in seen:
                continue
            seen.add(key)
            claimed_positions.add(position)
            accepted.append(_Candidate(position, description, amount))

    accepted.sort(key=lambda candidate: candidate.position)
    items = [
        LineItem.from_amount(index, candidate.description, candidate.amount)
        for index, candidate in enumerate(accepted, start=1)
    ]
    if items:
        logger.debug(f"Heuristic parser found {len(items)} items: {[i.description for i in items]}")
    return items


def extract_client_name(text: str) -> str | None:
    """Client name from labels, greetings or from/to phrasing; first match wins."""
    for pattern in CLIENT_NAME_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        name = match.group(1).strip().rstrip(",.:").strip()
        if len(name) >= 2 and name.lower() not in _NAME_STOPWORDS:
            return name
    return None


def parse_free_text(text: str, *, year: int | None = None) -> PartialInvoice:
    """Extract whatever the heuristics can find in unlabelled text.

    Args:
        text: Raw payment text
        year: Year assumed for dates written without one

    Returns:
        PartialInvoice; never raises
    """
    fields: dict[str, object] = {}

    items = extract_line_items(text)
    if items:
        fields["items"] = items
        fields["currency"] = patterns.detect_currency(text)
    else:
        # A single bare amount stands in for the invoice total
        amount, currency = patterns.extract_amount(text)
        if amount is not None:
            fields["subtotal"] = amount
            fields["total"] = amount
        fields["currency"] = currency or patterns.detect_currency(text)

    dates = patterns.extract_dates(text, year=year)
    if dates:
        fields["invoice_date"] = dates[0]
    if len(dates) > 1:
        fields["due_date"] = dates[1]

    fields["payment_info"] = patterns.extract_payment_info(text)

    gst_number = patterns.extract_gst_number(text)
    if gst_number:
        fields["gst_number"] = gst_number
        fields["notes"] = f"GST: {gst_number}"

    fields["tax_rate"] = patterns.extract_tax_rate(text)
    fields["client_email"] = patterns.extract_email(text)
    fields["client_phone"] = patterns.extract_phone(text)
    fields["client_name"] = extract_client_name(text)

    return PartialInvoice(**fields)
