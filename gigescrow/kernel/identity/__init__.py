"""
Identity boundary - actor addresses supplied by the identity provider.
"""

from gigescrow.kernel.identity.address import (
    InvalidAddressError,
    address_to_bytes,
    is_valid_address,
    normalize_address,
    same_address,
)

__all__ = [
    "InvalidAddressError",
    "address_to_bytes",
    "is_valid_address",
    "normalize_address",
    "same_address",
]
