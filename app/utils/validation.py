"""Field validation and sanitizing for account input.

Validators return lists of ``{"field", "message"}`` dicts so callers can
report every violated rule at once.
"""
import re
from datetime import date
from typing import Any, Optional
from urllib.parse import urlparse

from app.core.constants import AuthErrorDetails
from app.core.exceptions import ValidationError

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-'.]+$")
UNSAFE_CHARACTERS = re.compile(r'[<>"\']')

MAX_STRING_LENGTH = 1000
REGISTRATION_FIELDS = ("email", "password", "name", "phone_number", "date_of_birth", "profile_image_url")
PROFILE_FIELDS = ("name", "email", "phone_number", "date_of_birth", "profile_image_url")


def _error(field: str, message: str) -> dict:
    return {"field": field, "message": str(message)}


def sanitize_string(value: Any, max_length: int = MAX_STRING_LENGTH) -> str:
    """Strip whitespace and markup characters, capped at ``max_length``."""
    if value is None:
        return ""
    return UNSAFE_CHARACTERS.sub("", str(value).strip())[:max_length]


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def normalize_name(name: Any) -> str:
    """Trim a display name. Markup characters are rejected by ``validate_name``, not stripped."""
    return str(name).strip() if name is not None else ""


def validate_email(email: Optional[str], field: str = "email") -> list[dict]:
    if not email:
        return [_error(field, AuthErrorDetails.EMAIL_REQUIRED)]
    if len(email) > 255:
        return [_error(field, AuthErrorDetails.EMAIL_TOO_LONG)]
    if not EMAIL_PATTERN.match(email):
        return [_error(field, AuthErrorDetails.EMAIL_INVALID)]
    return []


def validate_password(password: Optional[str], field: str = "password") -> list[dict]:
    """Check password complexity, reporting every failed rule."""
    if not password:
        return [_error(field, AuthErrorDetails.PASSWORD_REQUIRED)]

    errors = []
    if len(password) < 8:
        errors.append(_error(field, AuthErrorDetails.PASSWORD_TOO_SHORT))
    if len(password.encode("utf-8")) > 72:
        errors.append(_error(field, AuthErrorDetails.PASSWORD_TOO_LONG))
    if not re.search(r'[A-Z]', password):
        errors.append(_error(field, AuthErrorDetails.PASSWORD_MISSING_UPPERCASE))
    if not re.search(r'[a-z]', password):
        errors.append(_error(field, AuthErrorDetails.PASSWORD_MISSING_LOWERCASE))
    if not re.search(r'[0-9]', password):
        errors.append(_error(field, AuthErrorDetails.PASSWORD_MISSING_NUMBER))
    if not re.search(r'[^a-zA-Z0-9]', password):
        errors.append(_error(field, AuthErrorDetails.PASSWORD_MISSING_SPECIAL))
    return errors


def validate_name(name: Optional[str], field: str = "name") -> list[dict]:
    if not name:
        return [_error(field, AuthErrorDetails.NAME_REQUIRED)]
    errors = []
    if not 2 <= len(name) <= 100:
        errors.append(_error(field, AuthErrorDetails.NAME_LENGTH))
    if not NAME_PATTERN.match(name):
        errors.append(_error(field, AuthErrorDetails.NAME_CHARACTERS))
    return errors


def validate_phone_number(phone: str, field: str = "phone_number") -> list[dict]:
    digits = re.sub(r'[\s\-().+]', '', phone)
    if not digits.isdigit() or not 10 <= len(digits) <= 15:
        return [_error(field, AuthErrorDetails.PHONE_INVALID)]
    return []


def parse_date_of_birth(value: Any, today: Optional[date] = None) -> tuple[Optional[date], list[dict]]:
    """Parse an ISO date and check the age bounds (13 to 150 years)."""
    field = "date_of_birth"
    if isinstance(value, date):
        parsed = value
    else:
        try:
            parsed = date.fromisoformat(str(value).strip())
        except ValueError:
            return None, [_error(field, AuthErrorDetails.DATE_OF_BIRTH_INVALID)]

    today = today or date.today()
    if parsed > today:
        return None, [_error(field, AuthErrorDetails.DATE_OF_BIRTH_FUTURE)]

    age = today.year - parsed.year - ((today.month, today.day) < (parsed.month, parsed.day))
    if not 13 <= age <= 150:
        return None, [_error(field, AuthErrorDetails.DATE_OF_BIRTH_AGE)]
    return parsed, []


def validate_url(url: str, field: str = "profile_image_url") -> list[dict]:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return [_error(field, AuthErrorDetails.PROFILE_IMAGE_URL_INVALID)]
    return []


def validate_otp_format(code: Optional[str], length: int) -> list[dict]:
    if not code:
        return [_error("otp", AuthErrorDetails.OTP_REQUIRED)]
    if len(code) != length or not code.isdigit():
        return [_error("otp", AuthErrorDetails.OTP_FORMAT.format(length=length))]
    return []


def _clean_optional_fields(payload: dict, errors: list[dict]) -> dict:
    """Validate the optional profile fields present in ``payload``."""
    cleaned: dict[str, Any] = {}

    phone = payload.get("phone_number")
    if phone:
        phone = sanitize_string(phone, 20)
        errors.extend(validate_phone_number(phone))
        cleaned["phone_number"] = phone

    dob = payload.get("date_of_birth")
    if dob:
        parsed, dob_errors = parse_date_of_birth(dob)
        errors.extend(dob_errors)
        cleaned["date_of_birth"] = parsed

    image_url = payload.get("profile_image_url")
    if image_url:
        image_url = str(image_url).strip()[:MAX_STRING_LENGTH]
        errors.extend(validate_url(image_url))
        cleaned["profile_image_url"] = image_url

    return cleaned


def validate_registration_payload(payload: dict) -> dict:
    """
    Validate and sanitize a sign-up payload.

    Returns:
        Cleaned payload with normalized email and only known fields

    Raises:
        ValidationError: Listing every violated rule
    """
    errors: list[dict] = []
    unknown = sorted(set(payload) - set(REGISTRATION_FIELDS))
    errors.extend(_error(field, AuthErrorDetails.UNKNOWN_FIELD) for field in unknown)

    email = normalize_email(payload.get("email"))
    name = normalize_name(payload.get("name"))
    password = payload.get("password") or ""

    errors.extend(validate_email(email))
    errors.extend(validate_password(password))
    errors.extend(validate_name(name))

    cleaned = {"email": email, "name": name, "password": password}
    cleaned.update(_clean_optional_fields(payload, errors))

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_profile_update(fields: dict) -> dict:
    """Validate a partial profile update. Unset fields are ignored."""
    errors: list[dict] = []
    unknown = sorted(set(fields) - set(PROFILE_FIELDS))
    errors.extend(_error(field, AuthErrorDetails.UNKNOWN_FIELD) for field in unknown)

    cleaned: dict[str, Any] = {}
    if fields.get("name") is not None:
        cleaned["name"] = normalize_name(fields["name"])
        errors.extend(validate_name(cleaned["name"]))
    if fields.get("email") is not None:
        cleaned["email"] = normalize_email(fields["email"])
        errors.extend(validate_email(cleaned["email"]))
    cleaned.update(_clean_optional_fields(fields, errors))

    if not cleaned and not errors:
        errors.append(_error("body", AuthErrorDetails.NO_FIELDS_TO_UPDATE))
    if errors:
        raise ValidationError(errors)
    return cleaned
