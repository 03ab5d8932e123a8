"""Pattern library for payment text.

Pure, stateless recognizers. Each returns a typed value or None. Where a
concept has several pattern variants they are tried in a fixed priority
order and the first match wins.
"""

import re
from datetime import date

from invoicer.extraction.schema import PaymentInfo
from invoicer.validation.validators import (
    GST_NUMBER_BODY,
    IFSC_CODE_BODY,
    is_valid_ifsc_code,
    is_valid_upi_id,
    normalize_gst_number,
)

# Digits with optional thousands separators and up to 2 decimals
AMOUNT_NUMBER = r"\d+(?:,\d+)*(?:\.\d{1,2})?"
# Currency marker preceding an amount, as used by line-item templates
CURRENCY_MARKER = r"₹|Rs\.?|INR|USD|EUR|\$|€"

_AMOUNT_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(rf"₹\s*({AMOUNT_NUMBER})"), "INR"),
    (re.compile(rf"\bRs\.?\s*({AMOUNT_NUMBER})", re.IGNORECASE), "INR"),
    (re.compile(rf"\bINR\s*({AMOUNT_NUMBER})", re.IGNORECASE), "INR"),
    (re.compile(rf"\$\s*({AMOUNT_NUMBER})"), "USD"),
    (re.compile(rf"\bUSD\s*({AMOUNT_NUMBER})", re.IGNORECASE), "USD"),
    (re.compile(rf"€\s*({AMOUNT_NUMBER})"), "EUR"),
    (re.compile(rf"\bEUR\s*({AMOUNT_NUMBER})", re.IGNORECASE), "EUR"),
]

_CURRENCY_PRESENCE: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"₹|\bRs\b|\bINR\b", re.IGNORECASE), "INR"),
    (re.compile(r"\$|\bUSD\b", re.IGNORECASE), "USD"),
    (re.compile(r"€|\bEUR\b", re.IGNORECASE), "EUR"),
]

MONTHS: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}  # fmt: skip

_MONTH_NAME = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
# "12th March 2025", "10 Apr"
_DAY_MONTH_RE = re.compile(
    rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTH_NAME}\.?(?:,?\s+(\d{{4}}))?\b",
    re.IGNORECASE,
)
# "March 12, 2025"
_MONTH_DAY_RE = re.compile(
    rf"\b{_MONTH_NAME}\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b",
    re.IGNORECASE,
)
# ISO year-first, else day-first with / or - separators
_NUMERIC_DATE_RE = re.compile(
    r"\b(?:(\d{4})-(\d{1,2})-(\d{1,2})|(\d{1,2})[/-](\d{1,2})[/-](\d{4}))\b"
)

_GST_LABELLED_RE = re.compile(
    rf"\b(?:GSTIN|GST)(?:\s*(?:Number|No\.?))?\s*:?\s*({GST_NUMBER_BODY})\b",
    re.IGNORECASE,
)
_GST_BARE_RE = re.compile(rf"\b({GST_NUMBER_BODY})\b", re.IGNORECASE)

_UPI_CANDIDATE_RE = re.compile(r"\b([\w.-]+@[\w.-]+)\b")
_ACCOUNT_LABELLED_RE = re.compile(
    r"\b(?:a/c|acc(?:oun)?t)(?:\s*(?:no\.?|number|#))?\s*[:#-]?\s*(\d{9,18})\b",
    re.IGNORECASE,
)
_ACCOUNT_BARE_RE = re.compile(r"\b(\d{9,18})\b")
_IFSC_RE = re.compile(rf"\b({IFSC_CODE_BODY})\b", re.IGNORECASE)
_EMAIL_RE = re.compile(r"\b([\w.+-]+@[\w-]+(?:\.[\w-]+)*\.[A-Za-z]{2,})\b")
_PHONE_RE = re.compile(r"\+91[\s-]?([6-9]\d{9})(?!\d)|(?<!\d)0?([6-9]\d{9})(?!\d)")

IFSC_BANK_NAMES: dict[str, str] = {
    "HDFC": "HDFC Bank",
    "ICIC": "ICICI Bank",
    "SBIN": "State Bank of India",
    "UTIB": "Axis Bank",
    "PUNB": "Punjab National Bank",
    "BARB": "Bank of Baroda",
    "KKBK": "Kotak Mahindra Bank",
    "YESB": "Yes Bank",
}

# Full names match case-insensitively; acronyms only in capitals
_BANK_NAME_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bState Bank of India\b", re.IGNORECASE), "State Bank of India"),
    (re.compile(r"\bSBI\b"), "State Bank of India"),
    (re.compile(r"\bHDFC(?: Bank)?\b", re.IGNORECASE), "HDFC Bank"),
    (re.compile(r"\bICICI(?: Bank)?\b", re.IGNORECASE), "ICICI Bank"),
    (re.compile(r"\bAxis Bank\b", re.IGNORECASE), "Axis Bank"),
    (re.compile(r"\bAXIS\b"), "Axis Bank"),
    (re.compile(r"\bPunjab National Bank\b", re.IGNORECASE), "Punjab National Bank"),
    (re.compile(r"\bPNB\b"), "Punjab National Bank"),
    (re.compile(r"\bBank of Baroda\b", re.IGNORECASE), "Bank of Baroda"),
    (re.compile(r"\bBOB\b"), "Bank of Baroda"),
    (re.compile(r"\bKotak(?: Mahindra)?(?: Bank)?\b", re.IGNORECASE), "Kotak Mahindra Bank"),
    (re.compile(r"\bYes Bank\b", re.IGNORECASE), "Yes Bank"),
]

_RATE = r"(\d+(?:\.\d+)?)"
_TAX_RATE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(rf"\bGST\s*@\s*{_RATE}\s*%", re.IGNORECASE),
    re.compile(rf"\b{_RATE}\s*%\s*GST\b", re.IGNORECASE),
    re.compile(rf"\bGST\s+{_RATE}\s*%", re.IGNORECASE),
    re.compile(rf"\bGST\s+of\s+{_RATE}\s*%", re.IGNORECASE),
    re.compile(rf"\b{_RATE}\s*%\s*tax\b", re.IGNORECASE),
    re.compile(rf"\btax\s+{_RATE}\s*%", re.IGNORECASE),
    re.compile(rf"\btax\s+rate\s*:?\s*{_RATE}\s*%", re.IGNORECASE),
]


def parse_money(value: str) -> float | None:
    """Parse a money string loosely: currency markers, spaces and commas removed."""
    cleaned = re.sub(r"(?i)₹|€|\$|\bRs\.?|\bINR\b|\bUSD\b|\bEUR\b|,|\s", "", value)
    try:
        return float(cleaned)
    except ValueError:
        return None


def extract_amount(text: str) -> tuple[float | None, str | None]:
    """Find the first amount with a currency marker.

    Returns:
        Tuple of (amount, currency code), or (None, None)
    """
    for pattern, currency in _AMOUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            return float(match.group(1).replace(",", "")), currency
    return None, None


def detect_currency(text: str) -> str | None:
    """Currency code implied by the markers present in the text."""
    for pattern, currency in _CURRENCY_PRESENCE:
        if pattern.search(text):
            return currency
    return None


def _iso(year: int, month: int, day: int) -> str | None:
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


def _textual_dates(text: str, year: int) -> list[tuple[int, str]]:
    found: list[tuple[int, str]] = []
    for match in _DAY_MONTH_RE.finditer(text):
        day = int(match.group(1))
        month = MONTHS[match.group(2).lower()]
        iso = _iso(int(match.group(3)) if match.group(3) else year, month, day)
        if iso:
            found.append((match.start(), iso))
    for match in _MONTH_DAY_RE.finditer(text):
        month = MONTHS[match.group(1).lower()]
        iso = _iso(int(match.group(3)), month, int(match.group(2)))
        if iso:
            found.append((match.start(), iso))
    return sorted(found)


def _numeric_dates(text: str) -> list[str]:
    found: list[str] = []
    for match in _NUMERIC_DATE_RE.finditer(text):
        if match.group(1):
            iso = _iso(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        else:
            iso = _iso(int(match.group(6)), int(match.group(5)), int(match.group(4)))
        if iso:
            found.append(iso)
    return found


def extract_dates(text: str, *, year: int | None = None) -> list[str]:
    """All dates in the text as YYYY-MM-DD strings.

    Textual dates (day + month name) come first, then numeric dates. Numeric
    dates are read year-first when ISO shaped, otherwise day-first. Dates
    with out-of-range parts are dropped.

    Args:
        text: Text to scan
        year: Year assumed for textual dates without one (defaults to today's)
    """
    assumed_year = year if year is not None else date.today().year
    return [iso for _, iso in _textual_dates(text, assumed_year)] + _numeric_dates(text)


def first_date(text: str, *, year: int | None = None) -> str | None:
    dates = extract_dates(text, year=year)
    return dates[0] if dates else None


def normalize_date(value: str, *, year: int | None = None) -> str | None:
    """Normalize a single date value (e.g. from a model response) to YYYY-MM-DD.

    Like extract_dates, but an ambiguous numeric date that is impossible
    day-first (04/15/2025) is read month-first instead of being dropped.
    """
    value = value.strip()
    if not value:
        return None
    found = first_date(value, year=year)
    if found:
        return found
    match = re.search(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4})\b", value)
    if match:
        return _iso(int(match.group(3)), int(match.group(1)), int(match.group(2)))
    return None


def extract_gst_number(text: str) -> str | None:
    """GSTIN in the text; a labelled occurrence wins over a bare one."""
    match = _GST_LABELLED_RE.search(text) or _GST_BARE_RE.search(text)
    return normalize_gst_number(match.group(1)) if match else None


def extract_upi_id(text: str) -> str | None:
    """First id@provider token whose provider has no domain dot (not an email)."""
    for match in _UPI_CANDIDATE_RE.finditer(text):
        candidate = match.group(1)
        provider = candidate.split("@", 1)[1]
        if "." not in provider and is_valid_upi_id(candidate):
            return candidate
    return None


def extract_account_number(text: str) -> str | None:
    """Bank account number (9-18 digits); a labelled one wins over a bare run.

    A bare run of digits can also be a phone number; the two are not
    disambiguated.
    """
    match = _ACCOUNT_LABELLED_RE.search(text) or _ACCOUNT_BARE_RE.search(text)
    return match.group(1) if match else None


def extract_ifsc_code(text: str) -> str | None:
    match = _IFSC_RE.search(text)
    if match and is_valid_ifsc_code(match.group(1)):
        return match.group(1).upper()
    return None


def bank_name_from_ifsc(ifsc_code: str) -> str | None:
    """Bank name looked up from the first 4 characters of an IFSC code."""
    return IFSC_BANK_NAMES.get(ifsc_code[:4].upper())


def extract_bank_name(text: str) -> str | None:
    """Bank mentioned by name in the text."""
    for pattern, name in _BANK_NAME_PATTERNS:
        if pattern.search(text):
            return name
    return None


def extract_payment_info(text: str) -> PaymentInfo | None:
    """Payment details found in the text, or None if there are none.

    A bank named in the text wins over the name inferred from the IFSC code.
    """
    ifsc_code = extract_ifsc_code(text)
    bank_name = extract_bank_name(text)
    if bank_name is None and ifsc_code:
        bank_name = bank_name_from_ifsc(ifsc_code)

    info = PaymentInfo(
        upi_id=extract_upi_id(text),
        account_number=extract_account_number(text),
        ifsc_code=ifsc_code,
        bank_name=bank_name,
    )
    return None if info.is_empty() else info


def extract_email(text: str) -> str | None:
    match = _EMAIL_RE.search(text)
    return match.group(1) if match else None


def extract_phone(text: str) -> str | None:
    """Indian mobile number (10 digits), with any +91 or 0 prefix dropped."""
    match = _PHONE_RE.search(text)
    if not match:
        return None
    return match.group(1) or match.group(2)


def extract_tax_rate(text: str) -> float | None:
    """GST/tax percentage mentioned in the text, within 0-100."""
    for pattern in _TAX_RATE_PATTERNS:
        match = pattern.search(text)
        if match:
            rate = float(match.group(1))
            if 0 <= rate <= 100:
                return rate
    return None
