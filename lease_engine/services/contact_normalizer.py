"""Contact number normalization.

Candidates are keyed by their phone number. Recruiters type numbers in many
shapes ("98765 43210", "098765-43210", "+91 9876543210"); all of them must map
to one canonical contact id or the uniqueness guarantee is meaningless.
"""

import re

from lease_engine.domain.exceptions import ValidationError
from lease_engine.domain.lease_constants import (
    CONTACT_NUMBER_DIGITS,
    DEFAULT_COUNTRY_CODE,
)

_SEPARATORS = re.compile(r"[\s\-().]")
_LOCAL_NUMBER = re.compile(r"[0-9]+")


def normalize_contact_id(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Normalize a phone number to ``<country_code><10 digits>``.

    Args:
        raw: Phone number as entered
        country_code: Prefix such as "+91"

    Returns:
        Canonical contact id

    Raises:
        ValidationError: If the number does not contain exactly 10 local digits

    Example:
        >>> normalize_contact_id("98765 43210")
        '+919876543210'
        >>> normalize_contact_id("0091-9876543210")
        '+919876543210'
    """
    if raw is None:
        raise ValidationError("Contact number is required")

    cleaned = _SEPARATORS.sub("", str(raw).strip())
    if not cleaned:
        raise ValidationError("Contact number is required")

    prefix_digits = country_code.lstrip("+")

    if cleaned.startswith("+"):
        if not cleaned.startswith(country_code):
            raise ValidationError(
                f"Contact number {raw!r} must use country code {country_code}"
            )
        cleaned = cleaned[len(country_code) :]
    elif cleaned.startswith("00" + prefix_digits):
        cleaned = cleaned[2 + len(prefix_digits) :]
    elif (
        len(cleaned) == CONTACT_NUMBER_DIGITS + len(prefix_digits)
        and cleaned.startswith(prefix_digits)
    ):
        cleaned = cleaned[len(prefix_digits) :]

    # Trunk prefix used for domestic dialing
    if len(cleaned) == CONTACT_NUMBER_DIGITS + 1 and cleaned.startswith("0"):
        cleaned = cleaned[1:]

    if len(cleaned) != CONTACT_NUMBER_DIGITS or not _LOCAL_NUMBER.fullmatch(cleaned):
        raise ValidationError(
            f"Contact number {raw!r} must have exactly {CONTACT_NUMBER_DIGITS} digits"
        )

    return f"{country_code}{cleaned}"
