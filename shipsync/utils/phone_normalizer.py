# shipsync/utils/phone_normalizer.py
# Canonical phone formatting for the buyer natural key (country, phone).

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from shipsync.api.errors import InvalidPhoneError

_NON_DIGITS = re.compile(r"\D")
MAX_PHONE_LENGTH = 32  # buyers.phone is String(32)


class PhoneQuality(str, Enum):
    VALIDATED = "validated"
    BEST_EFFORT = "best_effort"


@dataclass(frozen=True)
class PhoneResult:
    value: str
    quality: PhoneQuality

    @property
    def is_validated(self) -> bool:
        return self.quality is PhoneQuality.VALIDATED


def _validated_e164(candidate: str, region: Optional[str] = None) -> Optional[str]:
    try:
        parsed = phonenumbers.parse(candidate, region)
    except NumberParseException:
        return None
    if not phonenumbers.is_valid_number(parsed):
        return None
    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)


def _calling_code_for(country_hint: Optional[str]) -> Optional[str]:
    if not country_hint:
        return None
    code = phonenumbers.country_code_for_region(country_hint.strip().upper())
    return str(code) if code else None


def normalize_phone(raw, calling_code: Optional[str] = None, country_hint: Optional[str] = None) -> PhoneResult:
    """
    Produces the canonical phone used in the buyer natural key.

    The calling code, when given, is glued to the national digits (leading zeros
    dropped) and the candidate validated with libphonenumber. Without a calling
    code one is derived from the ISO-2 hint. With neither, the raw input is
    parsed on its own. A valid number comes back as E.164 and VALIDATED; anything
    else is returned as the best available candidate flagged BEST_EFFORT.

    Raises:
        InvalidPhoneError: when the input contains no digits at all, or is too
            long to be stored.
    """
    text = "" if raw is None else str(raw).strip()
    digits = _NON_DIGITS.sub("", text)
    if not digits:
        raise InvalidPhoneError(f"Phone '{text}' has no digits.")

    result = _normalize_digits(text, digits, calling_code, country_hint)
    if len(result.value) > MAX_PHONE_LENGTH:
        raise InvalidPhoneError(f"Phone '{text}' is longer than {MAX_PHONE_LENGTH} characters.")
    return result


def _normalize_digits(text: str, digits: str, calling_code: Optional[str], country_hint: Optional[str]) -> PhoneResult:
    # An input that already carries its own international prefix wins
    if text.startswith("+"):
        e164 = _validated_e164(f"+{digits}")
        if e164:
            return PhoneResult(e164, PhoneQuality.VALIDATED)

    code = _NON_DIGITS.sub("", str(calling_code or "")) or _calling_code_for(country_hint)
    if code:
        national = digits
        if text.startswith("+") and national.startswith(code):
            # "+61 0811..." already carries the calling code
            national = national[len(code):]
        national = national.lstrip("0")
        candidate = f"+{code}{national}"
        e164 = _validated_e164(candidate)
        if e164:
            return PhoneResult(e164, PhoneQuality.VALIDATED)
        return PhoneResult(candidate, PhoneQuality.BEST_EFFORT)

    e164 = _validated_e164(text if text.startswith("+") else f"+{digits}")
    if e164:
        return PhoneResult(e164, PhoneQuality.VALIDATED)
    return PhoneResult(digits, PhoneQuality.BEST_EFFORT)


def format_phone_for_display(phone: Optional[str]) -> Optional[str]:
    """International format for a stored phone; unparsable values are returned untouched."""
    if not phone:
        return phone
    try:
        parsed = phonenumbers.parse(phone, None)
    except NumberParseException:
        return phone
    return phonenumbers.format_number(parsed, PhoneNumberFormat.INTERNATIONAL)
