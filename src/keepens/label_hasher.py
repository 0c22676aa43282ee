"""
Label hashing for on-chain registry lookups.

Registrars key a second-level name by the keccak-256 hash of its label
(the "labelhash"), interpreted as a uint256 token id.
"""

from eth_utils import keccak

from .enums import ChainReadErrorCode
from .exceptions import ChainReadError


def label_to_identifier(label: str) -> str:
    """
    Convert a human-readable label into its on-chain identifier.

    Args:
        label: The leftmost name segment, e.g. 'alice' for 'alice.eth'

    Returns:
        0x-prefixed, 64-digit lowercase hex keccak-256 of the UTF-8 label
    """
    return "0x" + keccak(text=label).hex()


def identifier_to_token_id(identifier: str) -> int:
    """
    Interpret an identifier as the uint256 token id registrars expect.

    Raises:
        ChainReadError: If the identifier is not a 32-byte hex string
    """
    digits = identifier[2:] if identifier[:2].lower() == "0x" else identifier
    if len(digits) != 64:
        raise ChainReadError(
            code=ChainReadErrorCode.INVALID_IDENTIFIER.value,
            message=f"Identifier must be 32 bytes of hex: {identifier!r}",
            details={"identifier": identifier},
        )
    try:
        return int(digits, 16)
    except ValueError:
        raise ChainReadError(
            code=ChainReadErrorCode.INVALID_IDENTIFIER.value,
            message=f"Identifier is not hex: {identifier!r}",
            details={"identifier": identifier},
        )
