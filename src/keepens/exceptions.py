"""
Exception classes for the KeepENS system.

All exceptions inherit from KeepENSError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class KeepENSError(Exception):
    """Base exception for all KeepENS errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(KeepENSError):
    """Raised when user input (address, email, fid) fails validation."""

    pass


class IndexerError(KeepENSError):
    """Raised inside the indexer client; never escapes fetch_owned_domains."""

    pass


class ChainReadError(KeepENSError):
    """Raised when an authoritative on-chain expiry cannot be read."""

    pass


class IdentityLookupError(KeepENSError):
    """Raised inside the identity resolver; never escapes it."""

    pass


class PersistenceError(KeepENSError):
    """Raised when persistence operations fail (file I/O, missing records)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass