"""Phone number and pairing code helpers."""

import re

from wapair.core.errors import ValidationError

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_phone_number(raw: str | None, min_digits: int = 10) -> str:
    """Strip every non-digit character and validate the length.

    Args:
        raw: Phone number as typed by the user (e.g. "+94 70-123 4567").
        min_digits: Minimum number of digits an international number has.

    Returns:
        The digits only, e.g. "94701234567".

    Raises:
        ValidationError: If the input is missing or has too few digits.

    Examples:
        >>> normalize_phone_number("+94 70-123 4567")
        '94701234567'
    """
    if not raw:
        raise ValidationError("Phone number is required")

    digits = _NON_DIGITS.sub("", raw)
    if len(digits) < min_digits:
        raise ValidationError(
            f"Invalid phone number: expected at least {min_digits} digits "
            f"including country code, got {len(digits)}"
        )
    return digits


def format_pairing_code(code: str, group_size: int = 4, separator: str = "-") -> str:
    """Split a raw pairing code into fixed-width groups for display.

    Examples:
        >>> format_pairing_code("ABCD1234")
        'ABCD-1234'
    """
    clean = code.replace(separator, "").strip().upper()
    return separator.join(clean[i:i + group_size] for i in range(0, len(clean), group_size))


def jid_to_phone(jid: str | None) -> str | None:
    """Extract the phone digits from a JID like "94701234567:12@s.whatsapp.net"."""
    if not jid:
        return None
    user = jid.split("@", 1)[0].split(":", 1)[0]
    return user if user.isdigit() else None
