"""Validators for input-capture nodes.

Pure functions, no I/O. Each returns ``Result.success(normalized)`` or
``Result.failure(reason, code)``.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Callable

from flowdesk.schemas.flow import ValidationKind
from flowdesk.services.result import Result

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$")
PHONE_SEPARATORS = re.compile(r"[\s()+\-.]")
NUMBER_PATTERN = re.compile(r"^[+-]?([0-9]+([.,][0-9]*)?|[.,][0-9]+)$")
ASCII_DIGITS = re.compile(r"[0-9]+")
DOCUMENT_SEPARATORS = re.compile(r"[.\-\s/]")

PHONE_MIN_DIGITS = 8
PHONE_MAX_DIGITS = 15
DOCUMENT_LENGTH = 11


def validate_text(raw: str) -> Result[str]:
    return Result.success(raw.strip())


def validate_email(raw: str) -> Result[str]:
    value = raw.strip()
    if not EMAIL_PATTERN.match(value):
        return Result.failure("email inválido", "invalid_email")
    local, domain = value.rsplit("@", 1)
    return Result.success(f"{local}@{domain.lower()}")


def validate_phone(raw: str) -> Result[str]:
    digits = PHONE_SEPARATORS.sub("", raw.strip())
    if not ASCII_DIGITS.fullmatch(digits):
        return Result.failure("telefone deve conter apenas números", "invalid_phone")
    if not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        return Result.failure(
            f"telefone deve ter entre {PHONE_MIN_DIGITS} e {PHONE_MAX_DIGITS} dígitos", "invalid_phone"
        )
    return Result.success(digits)


def validate_number(raw: str) -> Result[str]:
    value = raw.strip()
    if not NUMBER_PATTERN.match(value):
        return Result.failure("número inválido", "invalid_number")
    try:
        number = Decimal(value.replace(",", "."))
    except InvalidOperation:
        return Result.failure("número inválido", "invalid_number")
    return Result.success(str(number))


def _cpf_check_digit(digits: str) -> int:
    weight = len(digits) + 1
    total = sum(int(d) * (weight - i) for i, d in enumerate(digits))
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def validate_document_id(raw: str) -> Result[str]:
    """CPF: 11 digits with two mod-11 check digits."""
    digits = DOCUMENT_SEPARATORS.sub("", raw.strip())
    if not ASCII_DIGITS.fullmatch(digits) or len(digits) != DOCUMENT_LENGTH:
        return Result.failure("CPF deve ter 11 dígitos", "invalid_document")
    if digits == digits[0] * DOCUMENT_LENGTH:
        return Result.failure("CPF inválido", "invalid_document")

    first = _cpf_check_digit(digits[:9])
    second = _cpf_check_digit(digits[:9] + str(first))
    if digits[9:] != f"{first}{second}":
        return Result.failure("CPF inválido", "invalid_document")
    return Result.success(digits)


VALIDATORS: dict[ValidationKind, Callable[[str], Result[str]]] = {
    ValidationKind.TEXT: validate_text,
    ValidationKind.EMAIL: validate_email,
    ValidationKind.PHONE: validate_phone,
    ValidationKind.NUMBER: validate_number,
    ValidationKind.DOCUMENT_ID: validate_document_id,
}


def validate(kind: ValidationKind | str, raw: str) -> Result[str]:
    """Validate raw user input for the given capture kind."""
    return VALIDATORS[ValidationKind(kind)](raw or "")
