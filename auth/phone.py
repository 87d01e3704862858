"""Indian mobile number normalization and validation."""

import re

PHONE_PATTERN = re.compile(r"\+91[6-9][0-9]{9}")
COUNTRY_CODE = "91"


def normalize_phone_number(phone_number: str) -> str:
    """
    Best-effort normalization to +91XXXXXXXXXX.

    - 12 digits starting with 91 -> "+" prefixed
    - 10 digits -> "+91" prefixed (any 10-digit input is treated as Indian)
    - anything else is returned unchanged for validation to reject

    Normalizing an already-normalized number is a no-op.
    """
    digits = re.sub(r"[^0-9]", "", phone_number)

    if len(digits) == 12 and digits.startswith(COUNTRY_CODE):
        return f"+{digits}"

    if len(digits) == 10:
        return f"+{COUNTRY_CODE}{digits}"

    return phone_number


def is_valid_phone_number(phone_number: str) -> bool:
    """True for a normalized Indian mobile number."""
    return PHONE_PATTERN.fullmatch(phone_number) is not None


def mask_phone(phone_number: str) -> str:
    """Mask all but the country code and last 4 digits for logs."""
    if len(phone_number) <= 7:
        return "****"
    return f"{phone_number[:3]}******{phone_number[-4:]}"
