"""
Ledger address handling.

Actor identities arrive from the identity provider (wallet, session) as hex
account addresses. Comparisons between the actor and the job's parties are
always made on the normalized form.
"""

import re
from typing import Optional

ADDRESS_LENGTH = 32  # bytes
_HEX_RE = re.compile(r"^[0-9a-f]+$")


class InvalidAddressError(ValueError):
    """Raised when a string is not a well-formed ledger address."""


def normalize_address(value: str) -> str:
    """
    Normalize an address to lowercase, 0x-prefixed, zero-padded 64 hex chars.

    Raises:
        InvalidAddressError: If the value is not hex or is too long
    """
    if not isinstance(value, str):
        raise InvalidAddressError(f"Address must be a string, got {type(value).__name__}")
    raw = value.strip().lower()
    if raw.startswith("0x"):
        raw = raw[2:]
    if not raw or not _HEX_RE.match(raw):
        raise InvalidAddressError(f"Invalid address: {value!r}")
    if len(raw) > ADDRESS_LENGTH * 2:
        raise InvalidAddressError(f"Address too long: {value!r}")
    return "0x" + raw.rjust(ADDRESS_LENGTH * 2, "0")


def is_valid_address(value: str) -> bool:
    try:
        normalize_address(value)
    except InvalidAddressError:
        return False
    return True


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """True when both addresses are present, valid and equal after normalization."""
    if not a or not b:
        return False
    try:
        return normalize_address(a) == normalize_address(b)
    except InvalidAddressError:
        return False


def address_to_bytes(value: str) -> bytes:
    """Decode a (normalized) address or object id into its raw bytes."""
    return bytes.fromhex(normalize_address(value)[2:])
