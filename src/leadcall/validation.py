import re

from leadcall.errors import ValidationError

SENTINEL_VALUES = {
    "not provided", "n/a", "na", "unknown", "none", "tbd", "null",
    "{{name}}", "{{phone}}", "{{email}}",
}

CAMPAIGN_TYPES = {"feedback", "marketing"}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_CHARS_RE = re.compile(r"^\+?[\d\s().\-]+$")

MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


def validate_name(value: str | None) -> str:
    if not value:
        return ""
    cleaned = value.strip()
    if cleaned.lower() in SENTINEL_VALUES:
        return ""
    # Reject template variables
    if "{{" in cleaned or "}}" in cleaned:
        return ""
    return cleaned


def validate_phone(value: str | None) -> str:
    """Normalize a phone number to ``+<digits>`` or ``<digits>``.

    Accepts common formatting like "(512) 555-1234" or "+1 512.555.1234".
    Letters and other punctuation are rejected rather than stripped.
    """
    if not value:
        return ""
    cleaned = value.strip()
    if not _PHONE_CHARS_RE.match(cleaned):
        return ""
    digits = re.sub(r"\D", "", cleaned)
    if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        return ""
    return f"+{digits}" if cleaned.startswith("+") else digits


def validate_email(value: str | None) -> str:
    if not value:
        return ""
    cleaned = value.strip()
    if not _EMAIL_RE.match(cleaned):
        return ""
    return cleaned.lower()


def validate_campaign_type(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = value.strip().lower()
    if cleaned not in CAMPAIGN_TYPES:
        raise ValidationError(
            f"campaign_type must be one of: {', '.join(sorted(CAMPAIGN_TYPES))}"
        )
    return cleaned


def validate_lead_fields(name: str | None, phone: str | None, email: str | None) -> tuple[str, str, str]:
    """Validate and normalize the three required lead fields.

    Raises ValidationError naming every field that is missing or malformed.
    """
    missing = [
        label for label, raw in (("name", name), ("phone", phone), ("email", email))
        if not raw or not raw.strip()
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    clean_name = validate_name(name)
    clean_phone = validate_phone(phone)
    clean_email = validate_email(email)

    invalid = [
        label for label, cleaned in (
            ("name", clean_name), ("phone", clean_phone), ("email", clean_email),
        )
        if not cleaned
    ]
    if invalid:
        raise ValidationError(f"Invalid fields: {', '.join(invalid)}")
    return clean_name, clean_phone, clean_email
