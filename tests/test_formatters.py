"""Formatting, numbering and document-text helpers."""

import io
from decimal import Decimal

import pytest

from services.formatters import (
    money, format_phone_number, format_tax_id, format_currency, parse_payment_terms
)
from services.numbering import format_number


class TestMoney:

    def test_rounds_half_up_to_cents(self):
        assert money("10.005") == Decimal("10.01")
        assert money(2.675) == Decimal("2.68")

    def test_none_is_zero(self):
        assert money(None) == Decimal("0.00")

    def test_currency_formatting(self):
        assert format_currency(Decimal("1234.5")) == "$1,234.50"
        assert format_currency(-250) == "-$250.00"
        assert format_currency(None) == "$0.00"


class TestPhoneAndTaxId:

    @pytest.mark.parametrize("raw, expected", [
        ("5", "(5"),
        ("55512", "(555) 12"),
        ("5551234567", "(555) 123-4567"),
        ("(555) 123-4567 ext 9", "(555) 123-4567"),
        ("", ""),
    ])
    def test_phone_formats_progressively(self, raw, expected):
        assert format_phone_number(raw) == expected

    def test_tax_id(self):
        assert format_tax_id("123456789") == "12-3456789"
        assert format_tax_id("12") == "12"
        assert format_tax_id("12-345") == "12-345"


class TestPaymentTerms:

    def test_net_terms(self):
        assert parse_payment_terms("Net 45") == 45
        assert parse_payment_terms("net15") == 15

    def test_missing_terms_default_to_net_30(self):
        assert parse_payment_terms(None) == 30

    def test_due_on_receipt(self):
        assert parse_payment_terms("Due on receipt") == 0


class TestNumbering:

    def test_document_numbers(self):
        assert format_number("proposal", 1) == "PRO-00001"
        assert format_number("invoice", 42) == "INV-00042"
        assert format_number("project", 123456) == "PRJ-123456"


class TestDocumentProcessor:

    def test_unsupported_suffix(self):
        from services.document_processor import extract_document_text

        with pytest.raises(ValueError):
            extract_document_text(b"hello", "notes.txt")

    def test_docx_paragraphs_and_tables(self):
        from docx import Document
        from services.document_processor import extract_document_text

        doc = Document()
        doc.add_paragraph("Request for Proposals: DOB Expediting")
        table = doc.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Due"
        table.rows[0].cells[1].text = "2026-03-01"
        buffer = io.BytesIO()
        doc.save(buffer)

        result = extract_document_text(buffer.getvalue(), "rfp.docx")
        assert result["format"] == "docx"
        assert "DOB Expediting" in result["text"]
        assert "Due | 2026-03-01" in result["text"]

    def test_clean_text_collapses_whitespace(self):
        from services.document_processor import clean_text

        assert clean_text("a  \n\n b\tc") == "a b c"
