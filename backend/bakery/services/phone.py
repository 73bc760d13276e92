import re

from bakery.errors import ValidationError

CANONICAL_PHONE = re.compile(r"^\+2567\d{8}$")


def normalize_phone(raw: str) -> str:
    """
    Normalize a Ugandan mobile number to +2567XXXXXXXX.

    Accepts 0700123456, 700123456, 256700123456, +256 700 123 456 and
    similar punctuation variants. Raises ValidationError otherwise.
    """
    digits = re.sub(r"\D", "", raw or "")
    if len(digits) == 9 and digits.startswith("7"):
        candidate = f"+256{digits}"
    elif len(digits) == 10 and digits.startswith("07"):
        candidate = f"+256{digits[1:]}"
    elif len(digits) == 12 and digits.startswith("256"):
        candidate = f"+{digits}"
    else:
        candidate = f"+{digits}"
    if not CANONICAL_PHONE.match(candidate):
        raise ValidationError(
            "Please enter a valid phone number (e.g., 0700123456)",
            fields={"phone": "invalid"},
        )
    return candidate
