"""Wallet address validation and normalization."""

from typing import Optional

from eth_utils import is_address


def is_valid_address(value: Optional[str]) -> bool:
    """Check for a 0x-prefixed, 20-byte hex address (checksum optional)."""
    if not value or not isinstance(value, str):
        return False
    trimmed = value.strip()
    if not trimmed.lower().startswith("0x") or len(trimmed) != 42:
        return False
    return is_address(trimmed)


def normalize_address(value: Optional[str]) -> Optional[str]:
    """
    Normalize an address to lowercase.

    Returns:
        The lowercase address, or None if the value is not a valid address
    """
    if not is_valid_address(value):
        return None
    return value.strip().lower()


def addresses_equal(left: Optional[str], right: Optional[str]) -> bool:
    """Case-insensitive address comparison; empty values never match."""
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()
