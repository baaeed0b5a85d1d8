from __future__ import annotations


COUNTRY_PREFIX = '966'


def normalize_phone(phone: str) -> str:
    """Digits only, with the international mobile prefix folded into the local 05x form."""
    digits = ''.join(ch for ch in str(phone or '') if ch.isdigit())
    if digits.startswith('00' + COUNTRY_PREFIX):
        digits = digits[2:]
    if digits.startswith(COUNTRY_PREFIX) and len(digits) == len(COUNTRY_PREFIX) + 9:
        return '0' + digits[len(COUNTRY_PREFIX):]
    return digits
