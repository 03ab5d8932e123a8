"""Reconciliation of partial extraction results into one invoice.

Sources are merged per field, not per object, in the order heuristic,
template, AI; a later source's non-empty value replaces an earlier one.
Payment details are unioned field by field in the same order. Derived
totals are then recomputed exactly once by recompute_totals, and defaults
(currency, invoice date, items) are filled by apply_defaults.
"""

import logging
from datetime import date

from invoicer.extraction.schema import (
    ExtractionMethod,
    InvoiceData,
    LineItem,
    PartialInvoice,
    PaymentInfo,
    round2,
)

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "INR"

_SCALAR_FIELDS = tuple(
    name for name in PartialInvoice.model_fields if name not in ("items", "payment_info")
)


def _merge_payment_info(sources: list[PartialInvoice]) -> PaymentInfo | None:
    merged: dict[str, str] = {}
    for source in sources:
        if source.payment_info is not None:
            merged.update(source.payment_info.model_dump(exclude_none=True))
    return PaymentInfo(**merged) if merged else None


def _ai_tax_is_authoritative(ai: PartialInvoice | None, items: list[LineItem]) -> bool:
    """An AI-stated tax amount survives only when it applies to the merged basis.

    Regex sources never state a tax amount, only a rate. The AI amount is kept
    when the AI supplied both rate and amount and the final items are the
    AI's own (or there are no items at all); otherwise it is recomputed.
    """
    if ai is None or ai.tax_rate is None or ai.tax_amount is None:
        return False
    return not items or items is ai.items


def recompute_totals(invoice: PartialInvoice, *, keep_tax_amount: bool = False) -> PartialInvoice:
    """Recompute subtotal, tax amount and total from items and tax rate.

    - Items present: subtotal is the sum of item amounts.
    - Tax rate > 0: tax amount is round2(subtotal * rate / 100) unless
      keep_tax_amount is set and a tax amount is already present.
    - Tax rate of exactly 0: tax amount is 0. A stated tax amount is carried
      forward only when no tax rate is set at all.
    - total = subtotal + tax amount.
    - No items: a stated subtotal is taxed forward; a lone total with a tax
      rate has its subtotal back-derived as total / (1 + rate/100); without a
      positive rate the stated total stands and subtotal defaults to it.

    Returns a new PartialInvoice; the input is not modified.
    """
    items = invoice.items or []
    rate = invoice.tax_rate
    stated_tax = invoice.tax_amount if keep_tax_amount and rate else None

    if not items and invoice.subtotal is None:
        if invoice.total is None:
            return invoice
        total = invoice.total
        if not rate:
            update: dict[str, object] = {"subtotal": total}
            if rate is not None:
                update["tax_amount"] = 0.0
            return invoice.model_copy(update=update)
        if stated_tax is not None:
            subtotal = round2(total - stated_tax)
            tax_amount = stated_tax
        else:
            subtotal = round2(total / (1 + rate / 100))
            tax_amount = round2(total - subtotal)
        return invoice.model_copy(update={"subtotal": subtotal, "tax_amount": tax_amount})

    if not items and rate is None and invoice.total is not None:
        # Stated subtotal and total both stand
        return invoice

    subtotal = round2(sum(item.amount for item in items)) if items else invoice.subtotal

    if stated_tax is not None:
        tax_amount = stated_tax
    elif rate is not None:
        tax_amount = round2(subtotal * rate / 100)
    else:
        tax_amount = invoice.tax_amount or 0.0

    return invoice.model_copy(
        update={
            "subtotal": subtotal,
            "tax_amount": tax_amount,
            "total": round2(subtotal + tax_amount),
        }
    )


def merge_partials(
    template: PartialInvoice | None = None,
    heuristic: PartialInvoice | None = None,
    ai: PartialInvoice | None = None,
) -> PartialInvoice:
    """Field-level merge of partial results followed by one totals recompute.

    Precedence (highest last): heuristic, template, AI. Items are taken
    whole from the highest source with a non-empty list; payment details are
    merged field by field.
    """
    sources = [s for s in (heuristic, template, ai) if s is not None]

    fields: dict[str, object] = {}
    for source in sources:
        for name in _SCALAR_FIELDS:
            value = getattr(source, name)
            if value is not None:
                fields[name] = value

    items: list[LineItem] = []
    for source in sources:
        if source.items:
            items = source.items
    fields["items"] = items
    fields["payment_info"] = _merge_payment_info(sources)

    keep_tax_amount = _ai_tax_is_authoritative(ai, items)
    merged = PartialInvoice(**fields)
    logger.debug(
        f"Merged {len(sources)} partial results: {len(items)} items, "
        f"tax_rate={merged.tax_rate}, keep_tax_amount={keep_tax_amount}"
    )
    return recompute_totals(merged, keep_tax_amount=keep_tax_amount)


def apply_defaults(
    invoice: PartialInvoice,
    *,
    today: date | None = None,
    currency: str = DEFAULT_CURRENCY,
) -> InvoiceData:
    """Fill currency, invoice date and items so the record is complete.

    Idempotent: applying it to its own output changes nothing.
    """
    data = invoice.model_dump()
    data["currency"] = data.get("currency") or currency
    data["invoice_date"] = data.get("invoice_date") or (today or date.today()).isoformat()
    data["items"] = data.get("items") or []
    return InvoiceData.model_validate(data)


def extraction_method(
    template: PartialInvoice | None = None,
    heuristic: PartialInvoice | None = None,
    ai: PartialInvoice | None = None,
) -> ExtractionMethod:
    """Which strategies contributed: regex only, AI only, or both."""
    regex_contributed = any(s is not None and not s.is_empty() for s in (template, heuristic))
    ai_contributed = ai is not None and not ai.is_empty()
    if ai_contributed:
        return "hybrid" if regex_contributed else "ai"
    return "regex"


def reconcile(
    template: PartialInvoice | None = None,
    heuristic: PartialInvoice | None = None,
    ai: PartialInvoice | None = None,
    *,
    today: date | None = None,
    currency: str = DEFAULT_CURRENCY,
) -> tuple[InvoiceData, ExtractionMethod]:
    """Merge, recompute and default-fill partial results.

    Args:
        template: Result of the structured-template parser
        heuristic: Result of the heuristic free-text parser
        ai: Result of the AI adapter, or None if it failed or was not run
        today: Date used for a missing invoice date
        currency: Currency used when no source detected one

    Returns:
        (complete InvoiceData, method tag)
    """
    merged = merge_partials(template=template, heuristic=heuristic, ai=ai)
    method = extraction_method(template=template, heuristic=heuristic, ai=ai)
    return apply_defaults(merged, today=today, currency=currency), method
