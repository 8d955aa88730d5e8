"""Shape validation for user-supplied credentials.

`credential_validator` is pure: it never touches the database or the network
and never raises. `check_credentials` layers the per-endpoint required-field
rules on top of it and raises `RequestError` for the first problem found.
"""

import re
from dataclasses import dataclass
from typing import Any, Literal, Mapping

import phonenumbers
from email_validator import EmailNotValidError, validate_email

from otp_auth.core.errors import InternalError, RequestError

NAME_PATTERN = re.compile(r"[a-zA-Z]+")
MIN_PASSWORD_LENGTH = 8

CredentialKind = Literal["register", "login", "forgot", "reset"]

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "register": ("firstName", "lastName", "email", "password"),
    "login": ("password",),
    "forgot": (),
    "reset": ("password",),
}


@dataclass(frozen=True)
class ValidationResult:
    error: bool
    message: str = ""


def is_present(value: Any) -> bool:
    return value is not None


def has_text(value: Any) -> bool:
    """True for a value that is present and not just whitespace."""
    return is_present(value) and str(value).strip() != ""


def is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def is_valid_phone(phone: str) -> bool:
    """Validate an international number; raises on input that cannot be parsed."""
    return phonenumbers.is_valid_number(phonenumbers.parse(phone, None))


def credential_validator(
    email: str | None = None,
    phone: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    password: str | None = None,
    is_login: bool = False,
) -> ValidationResult:
    """Check the supplied fields in a fixed order; the first failure wins."""
    try:
        if has_text(email) and not is_valid_email(email):
            return ValidationResult(True, "invalid email")
        if has_text(phone) and not is_valid_phone(phone):
            return ValidationResult(True, "invalid phone number")
        if is_login and not has_text(email) and not has_text(phone):
            return ValidationResult(True, "invalid email or phone number")
        if is_present(first_name) and not NAME_PATTERN.fullmatch(first_name):
            return ValidationResult(True, "invalid first name")
        if is_present(last_name) and not NAME_PATTERN.fullmatch(last_name):
            return ValidationResult(True, "invalid last name")
        if is_present(password) and len(password) < MIN_PASSWORD_LENGTH:
            return ValidationResult(True, "password length should be greater than 8")
        return ValidationResult(False, "")
    except Exception as exc:
        return ValidationResult(True, InternalError.from_exception(exc).message)


def check_credentials(kind: CredentialKind, fields: Mapping[str, Any]) -> None:
    """Apply the required-field rules for an endpoint, then the validator.

    `fields` is keyed by the camelCase names clients send.
    """
    missing = [name for name in REQUIRED_FIELDS[kind] if not is_present(fields.get(name))]
    email, phone = fields.get("email"), fields.get("phone")

    if kind in ("login", "forgot"):
        if not has_text(email) and not has_text(phone):
            raise RequestError("either email or phone is required")
        if "password" in missing:
            raise RequestError("password is required")
    elif missing:
        raise RequestError(f"missing fields: {', '.join(missing)}")

    result = credential_validator(
        email=email,
        phone=phone,
        first_name=fields.get("firstName"),
        last_name=fields.get("lastName"),
        password=fields.get("password"),
        is_login=kind == "login",
    )
    if result.error:
        raise RequestError(result.message)
