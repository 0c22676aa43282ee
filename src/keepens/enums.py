"""
Enumeration types for the KeepENS system.

These enums provide type-safe constants for namespaces, urgency levels,
error codes, and configuration options throughout the system.
"""

from enum import Enum


class Namespace(Enum):
    """Domain-naming system a record belongs to."""

    PRIMARY = "primary"  # ENS names on Ethereum mainnet
    L2 = "l2"  # Basenames on Base

    @property
    def display_name(self) -> str:
        """Label shown to users for this namespace."""
        return "Basename" if self is Namespace.L2 else "ENS"


class Urgency(Enum):
    """Expiry urgency derived from days remaining."""

    ACTIVE = "active"
    EXPIRING_SOON = "expiring-soon"
    EXPIRING_VERY_SOON = "expiring-very-soon"
    EXPIRED = "expired"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class IndexerErrorCode(Enum):
    """Error codes for indexer client operations."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    GRAPHQL_ERROR = "graphql_error"
    PARSE_ERROR = "parse_error"


class ChainReadErrorCode(Enum):
    """Error codes for on-chain reads."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    REVERTED = "reverted"
    DECODE_ERROR = "decode_error"
    INVALID_IDENTIFIER = "invalid_identifier"


class IdentityErrorCode(Enum):
    """Error codes for social-identity lookups."""

    MISSING_API_KEY = "missing_api_key"
    INVALID_ID = "invalid_id"
    NETWORK_ERROR = "network_error"
    HTTP_ERROR = "http_error"
    AUTH_ERROR = "auth_error"
    NOT_FOUND = "not_found"
    PARSE_ERROR = "parse_error"
