import pytest

from flowdesk.schemas.flow import ValidationKind
from flowdesk.services.input_validator import (
    validate,
    validate_document_id,
    validate_email,
    validate_number,
    validate_phone,
    validate_text,
)


class TestText:
    def test_trims(self):
        assert validate_text("  Maria  ").value == "Maria"

    def test_empty_is_accepted(self):
        assert validate_text("   ").ok is True


class TestEmail:
    def test_lowercases_domain_only(self):
        result = validate_email(" Ana.Silva@Example.COM ")
        assert result.ok is True
        assert result.value == "Ana.Silva@example.com"

    @pytest.mark.parametrize("raw", ["ana", "ana@", "ana@example", "@example.com", "ana silva@example.com"])
    def test_rejects_malformed(self, raw):
        result = validate_email(raw)
        assert result.ok is False
        assert result.error_code == "invalid_email"


class TestPhone:
    def test_strips_separators(self):
        assert validate_phone("+55 (11) 98765-4321").value == "5511987654321"

    def test_bounds(self):
        assert validate_phone("1234567").ok is False
        assert validate_phone("12345678").ok is True
        assert validate_phone("1" * 15).ok is True
        assert validate_phone("1" * 16).ok is False

    def test_rejects_letters(self):
        result = validate_phone("11 9abc 4321")
        assert result.ok is False
        assert result.error_code == "invalid_phone"


class TestNumber:
    def test_accepts_comma_decimal(self):
        assert validate_number("1,5").value == "1.5"

    def test_accepts_signed_integer(self):
        assert validate_number("-42").value == "-42"

    @pytest.mark.parametrize("raw", ["", "abc", "1.2.3", "NaN", "Infinity", "1e5"])
    def test_rejects(self, raw):
        assert validate_number(raw).ok is False


class TestDocumentId:
    def test_valid_cpf_with_punctuation(self):
        result = validate_document_id("529.982.247-25")
        assert result.ok is True
        assert result.value == "52998224725"

    def test_wrong_check_digit(self):
        result = validate_document_id("529.982.247-26")
        assert result.ok is False
        assert result.error_code == "invalid_document"

    def test_repeated_digits_rejected(self):
        assert validate_document_id("111.111.111-11").ok is False

    def test_wrong_length(self):
        assert validate_document_id("5299822472").ok is False


class TestValidateDispatch:
    def test_accepts_enum_and_string(self):
        assert validate(ValidationKind.PHONE, "11987654321").ok is True
        assert validate("document-id", "52998224725").ok is True

    def test_none_input_is_empty_text(self):
        assert validate("text", None).value == ""


class TestNonAsciiDigits:
    def test_superscript_document_id_rejected(self):
        result = validate_document_id("¹²³⁴⁵⁶⁷⁸⁹⁰¹")
        assert result.ok is False
        assert result.error_code == "invalid_document"

    def test_arabic_indic_phone_rejected(self):
        result = validate_phone("٠١٢٣٤٥٦٧٨٩")
        assert result.ok is False
        assert result.error_code == "invalid_phone"

    def test_fullwidth_number_rejected(self):
        assert validate_number("１２３").ok is False


JUNK = [
    "",
    " ",
    "¹²³⁴⁵⁶⁷⁸⁹⁰¹",
    "٠١٢٣٤٥٦٧٨٩",
    "１２３４５６７８９０１",
    "𝟓𝟐𝟗𝟗𝟖𝟐𝟐𝟒𝟕𝟐𝟓",
    "\x00\x01\x02",
    "💥" * 20,
    "1" * 500,
    "@@@",
    "a@b.c\n",
    "--..//",
    "1e999999999",
    ",",
]


class TestJunkNeverRaises:
    @pytest.mark.parametrize("kind", list(ValidationKind))
    @pytest.mark.parametrize("raw", JUNK)
    def test_returns_result(self, kind, raw):
        result = validate(kind, raw)
        assert result.ok in (True, False)
        if result.ok:
            assert result.value is not None
        else:
            assert result.error
