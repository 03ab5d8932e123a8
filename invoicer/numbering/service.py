"""Sequential invoice numbering: PREFIX-YYYY-NNN.

The last issued number is the only state. It lives in a key-value store
under LAST_INVOICE_NUMBER_KEY and is read, advanced and written back on each
call to generate_next(). The sequence restarts at 001 when the calendar year
changes and widens past 999 without truncation.

Read-modify-write is not locked: callers must ensure at most one
generate_next() is in flight per store.
"""

import logging
import re
from collections.abc import Callable
from datetime import date

from pydantic import BaseModel, Field

from invoicer.shared.errors import InvoiceNumberFormatError
from invoicer.storage.service import LAST_INVOICE_NUMBER_KEY, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "INV"


class InvoiceNumber(BaseModel):
    """Parsed invoice number."""

    year: int = Field(..., ge=0, le=9999)
    sequence: int = Field(..., ge=1)


def _pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(rf"{re.escape(prefix)}-([0-9]{{4}})-([0-9]{{3,}})")


def format_invoice_number(year: int, sequence: int, prefix: str = DEFAULT_PREFIX) -> str:
    """Format (year, sequence) as PREFIX-YYYY-NNN; NNN is zero-padded to 3 digits."""
    return f"{prefix}-{year:04d}-{sequence:03d}"


def parse_invoice_number(value: str, prefix: str = DEFAULT_PREFIX) -> InvoiceNumber:
    """Inverse of format_invoice_number.

    Raises:
        InvoiceNumberFormatError: If value is not PREFIX-YYYY-NNN
    """
    match = _pattern(prefix).fullmatch(value) if isinstance(value, str) else None
    if not match:
        raise InvoiceNumberFormatError(value, prefix)
    sequence = int(match.group(2))
    if sequence < 1:
        raise InvoiceNumberFormatError(value, prefix)
    return InvoiceNumber(year=int(match.group(1)), sequence=sequence)


class NumberingService:
    """Issues invoice numbers from a persisted last-number slot."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], date] | None = None,
    ) -> None:
        """Initialize numbering service.

        Args:
            store: Key-value store holding the last issued number
            prefix: Invoice number prefix
            clock: Returns today's date (defaults to date.today)
        """
        self.store = store
        self.prefix = prefix
        self._clock = clock or date.today

    def format_invoice_number(self, year: int, sequence: int) -> str:
        return format_invoice_number(year, sequence, self.prefix)

    def parse_invoice_number(self, value: str) -> InvoiceNumber:
        return parse_invoice_number(value, self.prefix)

    def last_invoice_number(self) -> str | None:
        return self.store.get(LAST_INVOICE_NUMBER_KEY)

    def generate_next(self) -> str:
        """Issue the next invoice number and persist it before returning.

        Raises:
            InvoiceNumberFormatError: If the stored last number is malformed.
                The sequence is never silently reset.
        """
        current_year = self._clock().year
        last = self.last_invoice_number()

        if last is None:
            sequence = 1
        else:
            previous = self.parse_invoice_number(last)
            sequence = previous.sequence + 1 if previous.year >= current_year else 1
            if sequence == 1:
                logger.info(f"Invoice sequence reset for {current_year} (last: {last})")

        number = self.format_invoice_number(current_year, sequence)
        self.store.set(LAST_INVOICE_NUMBER_KEY, number)
        logger.info(f"Issued invoice number {number}")
        return number
