"""Destination identifier normalization."""

import re

USER_DOMAIN = "s.whatsapp.net"

_NON_DIGITS = re.compile(r"\D")


def is_qualified(destination: str) -> bool:
    """Already carries a domain (user, group or broadcast id)."""
    return "@" in destination


def normalize_destination(destination: str) -> str:
    """
    Canonicalize a destination.

    "+62 812-3456-789" -> "628123456789@s.whatsapp.net"
    "628123456789@s.whatsapp.net" -> unchanged
    "1203630@g.us" -> unchanged

    Raises:
        ValueError: Nothing usable in the input
    """
    destination = destination.strip()
    if is_qualified(destination):
        return destination

    digits = _NON_DIGITS.sub("", destination)
    if not digits:
        raise ValueError(f"Invalid destination: {destination!r}")
    return f"{digits}@{USER_DOMAIN}"
