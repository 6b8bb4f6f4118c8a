"""
Testes do schema de campos, validação e sanitização tolerante.
"""
import pytest
from pydantic import ValidationError

from services.category_resolver import allowed_categories
from services.receipt_schema import CATEGORY_FALLBACK, build_schema, sanitize, validate_fields


class TestBuildSchema:
    def test_shape(self):
        schema = build_schema()
        assert schema["type"] == "object"
        assert schema["additionalProperties"] is False
        assert set(schema["required"]) == {"merchant_name", "tx_date", "total", "currency_code", "category"}
        assert schema["properties"]["total"]["pattern"] == r"^-?\d+(\.\d{1,2})?$"
        assert schema["properties"]["tx_date"]["pattern"] == r"^\d{4}-\d{2}-\d{2}$"
        assert schema["properties"]["payment_last4"]["pattern"] == r"^\d{4}$"
        assert schema["properties"]["confidence"]["minimum"] == 0.0
        assert "enum" not in schema["properties"]["category"]

    def test_optional_fields_are_not_nullable(self):
        schema = build_schema()
        assert schema["properties"]["tip"] == {"type": "string", "pattern": r"^-?\d+(\.\d{1,2})?$"}

    def test_category_enum(self):
        schema = build_schema(allowed_categories())
        assert schema["properties"]["category"]["enum"][-1] == "Other"


class TestValidate:
    def test_valid(self, valid_fields):
        fields = validate_fields(valid_fields, allowed_categories())
        assert fields.total == "15.08"
        assert fields.adjustments == []

    def test_rejects_unknown_keys(self, valid_fields):
        with pytest.raises(ValidationError):
            validate_fields(dict(valid_fields, shipping_fee="3.00"))

    def test_rejects_numeric_money(self, valid_fields):
        with pytest.raises(ValidationError):
            validate_fields(dict(valid_fields, total=15.08))

    def test_rejects_category_outside_taxonomy(self, valid_fields):
        with pytest.raises(ValidationError):
            validate_fields(dict(valid_fields, category="Snacks"), allowed_categories())
        # sem taxonomia qualquer rótulo é aceito
        assert validate_fields(dict(valid_fields, category="Snacks")).category == "Snacks"

    def test_missing_required(self, valid_fields):
        data = dict(valid_fields)
        del data["currency_code"]
        with pytest.raises(ValidationError):
            validate_fields(data)


class TestSanitize:
    def test_renames_without_overwriting(self, valid_fields):
        data = dict(valid_fields, shipping_fee=4, fees="1.5")
        doc, adjustments = sanitize(data)
        assert doc["other_fees"] == "4.00"
        assert "fees" not in doc and "shipping_fee" not in doc
        assert "shipping_fee->other_fees" in adjustments
        assert "fees->other_fees" in adjustments

    def test_existing_other_fees_kept(self, valid_fields):
        doc, _ = sanitize(dict(valid_fields, other_fees="2.00", shipping_fees="9.99"))
        assert doc["other_fees"] == "2.00"

    def test_money_coercion(self, valid_fields):
        doc, _ = sanitize(dict(valid_fields, total=15.0, tax=None, tip="", subtotal="$1,200.5", discount="n/a"))
        assert doc["total"] == "15.00"
        assert doc["subtotal"] == "1200.50"
        assert "tax" not in doc and "tip" not in doc and "discount" not in doc

    def test_payment_fields(self, valid_fields):
        doc, _ = sanitize(dict(valid_fields, payment_method="credit card", payment_last4="**** 1234"))
        assert doc["payment_method"] == "CREDIT_CARD"
        assert doc["payment_last4"] == "1234"

        doc, adjustments = sanitize(dict(valid_fields, payment_last4="12"))
        assert "payment_last4" not in doc
        assert "payment_last4(short)" in adjustments

    def test_strips_unknown_and_trims(self, valid_fields):
        doc, adjustments = sanitize(dict(valid_fields, merchant_name="  Shell  ", notes="x", currency_code="usd"))
        assert doc["merchant_name"] == "Shell"
        assert doc["currency_code"] == "USD"
        assert "notes" not in doc
        assert "notes(unknown)" in adjustments

    def test_aliases(self):
        doc, _ = sanitize({"merchant": "Lyft", "date": "2024-05-01", "total": "23.1", "currency": "usd", "category": "Travel Expenses"})
        fields = validate_fields(doc, allowed_categories())
        assert fields.merchant_name == "Lyft"
        assert fields.total == "23.10"
        assert fields.currency_code == "USD"

    def test_category_synonym_and_fallback(self, valid_fields):
        doc, adjustments = sanitize(dict(valid_fields, category="uber"), allowed_categories())
        assert doc["category"] == "Travel Expenses"
        assert CATEGORY_FALLBACK not in adjustments

        doc, adjustments = sanitize(dict(valid_fields, category="Groceries"), allowed_categories())
        assert doc["category"] == "Other"
        assert CATEGORY_FALLBACK in adjustments

    def test_confidence(self, valid_fields):
        doc, _ = sanitize(dict(valid_fields, confidence="0.5"))
        assert doc["confidence"] == 0.5
        doc, _ = sanitize(dict(valid_fields, confidence=87))
        assert "confidence" not in doc

    def test_sanitized_document_validates(self, valid_fields):
        messy = dict(valid_fields, total=15.08, tip=None, shipping_fee=3, payment_method="apple pay", extra=True)
        doc, _ = sanitize(messy, allowed_categories())
        assert validate_fields(doc, allowed_categories()).other_fees == "3.00"

    def test_grouped_amounts_and_currency_codes(self, valid_fields):
        doc, _ = sanitize(dict(valid_fields, total="1,234.50", subtotal="USD 15.08", tax="15.08EUR", tip="12,345,678"))
        assert doc["total"] == "1234.50"
        assert doc["subtotal"] == "15.08"
        assert doc["tax"] == "15.08"
        assert doc["tip"] == "12345678.00"

    @pytest.mark.parametrize("amount", ["12,50", "1e5", "1,2345.00", "15.08.01", "1" * 30])
    def test_ambiguous_amount_is_dropped(self, valid_fields, amount):
        doc, adjustments = sanitize(dict(valid_fields, total=amount))
        assert "total" not in doc
        assert "total(dropped)" in adjustments
        with pytest.raises(ValidationError):
            validate_fields(doc)

    def test_float_without_exponent_artifacts(self, valid_fields):
        doc, _ = sanitize(dict(valid_fields, total=1e16, tip=float("nan")))
        assert doc["total"] == "10000000000000000.00"
        assert "tip" not in doc
