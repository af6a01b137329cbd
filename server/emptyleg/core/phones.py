"""Phone number normalisation for the messaging channel."""

import re

WHATSAPP_PREFIX = "whatsapp:"
_NON_DIGITS = re.compile(r"\D")


def to_e164(phone: str, country_calling_code: str) -> str:
    """
    Best-effort E.164 form of a client-supplied number.

    A leading trunk ``0`` is replaced by the default country calling code,
    so ``08012345678`` becomes ``+2348012345678`` for Nigeria.
    """
    raw = phone.strip()
    if raw.lower().startswith(WHATSAPP_PREFIX):
        raw = raw[len(WHATSAPP_PREFIX):]
    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        raise ValueError(f"phone number {phone!r} has no digits")
    if digits.startswith("0") and not raw.startswith("+"):
        digits = country_calling_code + digits[1:]
    return f"+{digits}"


def to_whatsapp_address(phone: str, country_calling_code: str) -> str:
    """Format a number as a ``whatsapp:+<digits>`` address."""
    return f"{WHATSAPP_PREFIX}{to_e164(phone, country_calling_code)}"


def contact_variants(sender: str, country_calling_code: str) -> list[str]:
    """
    All spellings under which an inbound sender may have been stored.

    Clients type numbers inconsistently when booking, so inbound
    ``whatsapp:+2348012345678`` must also match ``2348012345678`` and
    ``08012345678``.
    """
    raw = sender.strip()
    if raw.lower().startswith(WHATSAPP_PREFIX):
        raw = raw[len(WHATSAPP_PREFIX):]
    raw = raw.strip()
    digits = _NON_DIGITS.sub("", raw)

    variants = [raw]
    if digits:
        variants.extend([digits, f"+{digits}"])
        if digits.startswith(country_calling_code):
            variants.append("0" + digits[len(country_calling_code):])
        if digits.startswith("0"):
            local = country_calling_code + digits[1:]
            variants.extend([local, f"+{local}"])

    seen = set()
    unique = []
    for variant in variants:
        if variant and variant not in seen:
            seen.add(variant)
            unique.append(variant)
    return unique
