"""Validators for lead contact fields submitted alongside a scan."""

import re
from typing import Optional

EMAIL_REGEX = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
UK_PHONE_REGEX = re.compile(r"^(\+44|0)[0-9]{10,11}$")
UK_POSTCODE_REGEX = re.compile(r"^[A-Z]{1,2}[0-9][A-Z0-9]?\s?[0-9][A-Z]{2}$", re.IGNORECASE)
MAX_FIELD_LENGTH = 255


def validate_email(email: str) -> bool:
    return bool(EMAIL_REGEX.match(email or ""))


def validate_uk_phone(phone: str) -> bool:
    cleaned = re.sub(r"\s", "", phone or "")
    return bool(UK_PHONE_REGEX.match(cleaned))


def validate_uk_postcode(postcode: str) -> bool:
    cleaned = re.sub(r"\s", "", postcode or "")
    return bool(UK_POSTCODE_REGEX.match(cleaned))


def sanitize_string(value: Optional[str], max_length: int = MAX_FIELD_LENGTH) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()[:max_length]
    return cleaned or None
