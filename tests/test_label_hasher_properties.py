"""
Property-based tests for label hashing and address helpers.

Uses Hypothesis to verify that identifiers are deterministic 32-byte
hashes and that addresses normalize consistently.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from keepens.address import addresses_equal, is_valid_address, normalize_address
from keepens.enums import ChainReadErrorCode
from keepens.exceptions import ChainReadError
from keepens.label_hasher import identifier_to_token_id, label_to_identifier


HEX_DIGITS = "0123456789abcdef"


@st.composite
def label_strategy(draw) -> str:
    """Generate labels including non-ASCII characters."""
    return draw(st.text(min_size=0, max_size=40))


@st.composite
def address_strategy(draw) -> str:
    """Generate lowercase 20-byte hex addresses."""
    body = draw(st.text(alphabet=st.sampled_from(HEX_DIGITS), min_size=40, max_size=40))
    return "0x" + body


class TestLabelToIdentifier:
    """Identifier derivation for registry lookups."""

    def test_known_labelhashes(self) -> None:
        assert label_to_identifier("eth") == (
            "0x4f5b812789fc606be1b3b16908db13fc7a9adf7ca72641f84d75b47069d3d7f0"
        )
        assert label_to_identifier("vitalik") == (
            "0xaf2caa1c2ca1d027f1ac823b529d0a67cd144264b2789fa2ea4d63a67c7103cc"
        )

    @given(label=label_strategy())
    @settings(max_examples=100)
    def test_identifier_is_deterministic_and_well_formed(self, label: str) -> None:
        """
        *For any* label, the identifier is the same across calls, starts with
        0x and has exactly 64 lowercase hex digits.
        """
        first = label_to_identifier(label)
        second = label_to_identifier(label)

        assert first == second
        assert first.startswith("0x")
        assert len(first) == 66
        assert all(c in HEX_DIGITS for c in first[2:])

    @given(left=label_strategy(), right=label_strategy())
    @settings(max_examples=100)
    def test_distinct_labels_give_distinct_identifiers(self, left: str, right: str) -> None:
        if left != right:
            assert label_to_identifier(left) != label_to_identifier(right)

    def test_case_is_significant(self) -> None:
        assert label_to_identifier("Alice") != label_to_identifier("alice")


class TestIdentifierToTokenId:
    """Conversion to the uint256 registrars take as argument."""

    @given(label=label_strategy())
    @settings(max_examples=100)
    def test_token_id_matches_hex_value(self, label: str) -> None:
        identifier = label_to_identifier(label)
        token_id = identifier_to_token_id(identifier)

        assert 0 <= token_id < 2 ** 256
        assert f"0x{token_id:064x}" == identifier

    def test_known_token_id(self) -> None:
        token_id = identifier_to_token_id(label_to_identifier("vitalik"))
        assert token_id == int(
            "af2caa1c2ca1d027f1ac823b529d0a67cd144264b2789fa2ea4d63a67c7103cc", 16
        )

    @pytest.mark.parametrize("identifier", ["", "0x", "0x1234", "0x" + "g" * 64])
    def test_malformed_identifier_raises(self, identifier: str) -> None:
        with pytest.raises(ChainReadError) as exc_info:
            identifier_to_token_id(identifier)
        assert exc_info.value.code == ChainReadErrorCode.INVALID_IDENTIFIER.value


class TestAddressNormalization:
    """Address validation and case-insensitive comparison."""

    @given(address=address_strategy())
    @settings(max_examples=100)
    def test_lowercase_and_uppercase_normalize_identically(self, address: str) -> None:
        upper = "0x" + address[2:].upper()

        assert is_valid_address(address)
        assert normalize_address(address) == address
        assert normalize_address(upper) == address
        assert addresses_equal(address, upper)

    @pytest.mark.parametrize(
        "value",
        [None, "", "0x", "0x123", "not-an-address", "d8da6bf26964af9d7eed9e03e53415d37aa96045",
         "0x" + "z" * 40],
    )
    def test_invalid_addresses_rejected(self, value) -> None:
        assert not is_valid_address(value)
        assert normalize_address(value) is None

    def test_checksummed_address_accepted(self) -> None:
        checksummed = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
        assert normalize_address(checksummed) == checksummed.lower()

    def test_empty_never_equal(self) -> None:
        assert not addresses_equal("", "")
        assert not addresses_equal(None, "0xabc")
