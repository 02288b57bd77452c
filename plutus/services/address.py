"""Helpers for normalizing and validating Move (Aptos) account addresses."""

from __future__ import annotations

import re

# 0x + up to 32 bytes of hex
MAX_ADDRESS_LENGTH = 66

_SHORT_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]+$")


def normalize_address(address: str | None) -> str:
    """Trim whitespace and lowercase the hex digits of an address."""

    if not address:
        return ""
    cleaned = address.strip()
    if cleaned[:2].lower() == "0x":
        return "0x" + cleaned[2:].lower()
    return cleaned


def is_valid_move_address(address: str, min_length: int = 10) -> bool:
    """Minimal shape check for a user-supplied wallet address.

    Accepts ``0x`` followed by hex digits, between ``min_length`` and 66
    characters in total. Checksums and on-chain existence are not verified.
    """

    if not address:
        return False
    if len(address) < min_length or len(address) > MAX_ADDRESS_LENGTH:
        return False
    return bool(_SHORT_ADDRESS_RE.match(address))


def pad_address(address: str) -> str:
    """Expand a short-form address to the canonical 64-hex-digit form."""

    normalized = normalize_address(address)
    hex_part = normalized[2:] if normalized.startswith("0x") else normalized
    if len(hex_part) > 64:
        raise ValueError(f"Address too long: {address}")
    return "0x" + hex_part.rjust(64, "0")


def short_address(address: str, head: int = 6, tail: int = 4) -> str:
    """Abbreviate an address for log lines."""

    if len(address) <= head + tail + 3:
        return address
    return f"{address[:head]}...{address[-tail:]}"
