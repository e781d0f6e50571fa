"""
Phone number utilities for normalization and log masking.
"""

from __future__ import annotations

import re
from typing import Optional

import phonenumbers

from config import DEFAULT_PHONE_REGION


def normalize_phone_e164(raw: Optional[str], region: str = DEFAULT_PHONE_REGION) -> Optional[str]:
    """
    Best-effort E.164 normalization for caller-supplied phone numbers.

    Returns the E.164 string when the number is valid for `region`, otherwise
    the bare digits (staff can still read them), or None for empty input.
    """
    if not raw:
        return None
    s = str(raw).strip()
    if not s:
        return None

    # Convert 00-prefixed international numbers
    if s.startswith("00"):
        s = "+" + s[2:]

    try:
        num = phonenumbers.parse(s, region)
        if phonenumbers.is_valid_number(num):
            return phonenumbers.format_number(num, phonenumbers.PhoneNumberFormat.E164)
    except phonenumbers.NumberParseException:
        pass

    digits = re.sub(r"\D", "", s)
    return digits or None


def mask_phone(phone: Optional[str]) -> str:
    """Mask all but the last 4 digits for logs: +13105551234 -> ***1234."""
    if not phone:
        return "unknown"
    digits = re.sub(r"\D", "", str(phone))
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"
