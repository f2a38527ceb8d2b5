"""Unit tests for ledger address handling."""

import pytest

from gigescrow.kernel.identity.address import (
    InvalidAddressError,
    address_to_bytes,
    is_valid_address,
    normalize_address,
    same_address,
)


class TestNormalizeAddress:
    def test_short_form_padded(self):
        assert normalize_address("0x6") == "0x" + "0" * 63 + "6"

    def test_case_and_whitespace(self):
        assert normalize_address("  0xABCDEF ") == normalize_address("0xabcdef")

    def test_prefix_optional(self):
        assert normalize_address("abc") == normalize_address("0xabc")

    @pytest.mark.parametrize("value", ["", "0x", "0xzz", "hello", "0x" + "1" * 65, None, 42])
    def test_invalid(self, value):
        with pytest.raises(InvalidAddressError):
            normalize_address(value)
        assert not is_valid_address(value)


class TestSameAddress:
    def test_equal_after_normalization(self):
        assert same_address("0x06", "0x" + "0" * 63 + "6")

    @pytest.mark.parametrize("a,b", [(None, "0x1"), ("0x1", None), ("0x1", "0x2"), ("xyz", "xyz")])
    def test_not_equal(self, a, b):
        assert not same_address(a, b)


def test_address_to_bytes():
    raw = address_to_bytes("0x1")
    assert len(raw) == 32
    assert raw[-1] == 1
