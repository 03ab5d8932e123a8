"""Unit tests for the heuristic free-text parser."""

import pytest

from invoicer.extraction.heuristic_parser import (
    extract_client_name,
    extract_line_items,
    parse_free_text,
)


class TestLineItems:
    """Sentence-level line-item detection."""

    def test_items_from_prose(self) -> None:
        text = "Logo redesign came to ₹3,200 and the website banner set is ₹4,500"
        items = extract_line_items(text)

        assert [(i.id, i.description, i.amount, i.rate, i.quantity) for i in items] == [
            ("item-1", "Logo redesign", 3200.0, 3200.0, 1),
            ("item-2", "website banner set", 4500.0, 4500.0, 1),
        ]

    def test_colon_lines_skip_summary_rows(self) -> None:
        text = (
            "Logo refinement: ₹1,200\n"
            "Landing page adjustments: ₹1,800\n"
            "Total amount payable: ₹3,000"
        )
        items = extract_line_items(text)
        assert [(i.description, i.amount) for i in items] == [
            ("Logo refinement", 1200.0),
            ("Landing page adjustments", 1800.0),
        ]

    def test_dash_and_bullet_forms(self) -> None:
        text = "Short banner — ₹900\n• Landing page ₹1,800"
        items = extract_line_items(text)
        assert [(i.description, i.amount) for i in items] == [
            ("Short banner", 900.0),
            ("Landing page", 1800.0),
        ]

    def test_duplicate_description_and_amount_counted_once(self) -> None:
        items = extract_line_items("Logo - ₹500. Logo - ₹500")
        assert len(items) == 1

    def test_leading_connectors_stripped(self) -> None:
        items = extract_line_items("Hosting was ₹1,000 and also the domain costs ₹800")
        assert [i.description for i in items] == ["Hosting", "domain"]

    def test_implausibly_large_amount_is_not_an_item(self) -> None:
        assert extract_line_items("Server rack came to ₹2,50,000") == []

    def test_no_items_in_plain_request(self) -> None:
        assert extract_line_items("Please pay ₹5,000.00 for services") == []


class TestClientName:
    """Client-name heuristics, first match wins."""

    @pytest.mark.parametrize(
        ("text", "name"),
        [
            ("Bill it to: Aurora Digital Pvt Ltd.\nThanks", "Aurora Digital Pvt Ltd"),
            ("For the Acme Design Team: logo work ₹5,000", "Acme Design Team"),
            ("Hi Mr. Ankit Sharma, here is the bill", "Ankit Sharma"),
            ("Hello Priya,\nthe banner is done", "Priya"),
            ("Payment from John Doe for services", "John Doe"),
            ("Invoice to Priya Nair\nAmount ₹500", "Priya Nair"),
            ("Client: Tech Solutions\n", "Tech Solutions"),
            ("nothing useful here", None),
        ],
    )
    def test_extract_client_name(self, text: str, name: str | None) -> None:
        assert extract_client_name(text) == name

    def test_lowercase_for_clause_is_not_a_name(self) -> None:
        assert extract_client_name("Here is the invoice for services rendered") is None


class TestParseFreeText:
    """Whole-message parsing."""

    def test_bare_amount_fallback(self) -> None:
        result = parse_free_text("Please pay ₹5,000.00 for services")

        assert result.items is None
        assert result.subtotal == 5000.0
        assert result.total == 5000.0
        assert result.currency == "INR"

    def test_items_leave_totals_unset(self) -> None:
        result = parse_free_text("Logo redesign came to ₹3,200 and the website banner set is ₹4,500")

        assert result.items is not None
        assert len(result.items) == 2
        assert result.currency == "INR"
        assert result.subtotal is None
        assert result.total is None

    def test_tax_rate_detected(self) -> None:
        result = parse_free_text("Logo design: ₹10,000\nWebsite development: ₹25,000\nGST @18%")
        assert result.tax_rate == 18.0
        assert result.tax_amount is None

    def test_dates_fill_invoice_and_due_date(self) -> None:
        result = parse_free_text("Invoice 5th Jan 2025, due 20th Jan 2025. Logo - ₹500")
        assert result.invoice_date == "2025-01-05"
        assert result.due_date == "2025-01-20"

    def test_year_less_date_uses_given_year(self) -> None:
        result = parse_free_text("Please clear it by 12th March", year=2024)
        assert result.invoice_date == "2024-03-12"

    def test_gst_number_copied_to_notes(self) -> None:
        result = parse_free_text("Our GSTIN: 27ABCDE1234F1Z5. Logo - ₹500")
        assert result.gst_number == "27ABCDE1234F1Z5"
        assert result.notes == "GST: 27ABCDE1234F1Z5"

    def test_contact_and_payment_details(self) -> None:
        text = (
            "Hi Ankit,\nLogo design: ₹2,000\n"
            "UPI: studio@okhdfcbank\nMail me at ankit@example.com"
        )
        result = parse_free_text(text)

        assert result.client_name == "Ankit"
        assert result.client_email == "ankit@example.com"
        assert result.payment_info is not None
        assert result.payment_info.upi_id == "studio@okhdfcbank"

    def test_empty_text_yields_empty_result(self) -> None:
        assert parse_free_text("").is_empty()
