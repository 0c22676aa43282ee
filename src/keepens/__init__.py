"""
KeepENS - ENS and Basenames expiry tracking.

This package discovers the ENS names and Basenames an address owns,
confirms their expiry on-chain, ranks them by urgency and emails
subscribed owners before their domains lapse.
"""

__version__ = "0.1.0"
__author__ = "KeepENS Team"

from keepens.exceptions import (
    KeepENSError,
    ValidationError,
    IndexerError,
    ChainReadError,
    IdentityLookupError,
    PersistenceError,
    TamperingError,
)
from keepens.enums import (
    Namespace,
    Urgency,
    LogLevel,
    IndexerErrorCode,
    ChainReadErrorCode,
    IdentityErrorCode,
)
from keepens.config import (
    IndexerConfig,
    ChainConfig,
    IdentityConfig,
    RetryConfig,
    EmailConfig,
    ResendConfig,
    NotificationConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
)
from keepens.models import (
    DomainRecord,
    ResolvedDomain,
    Subscriber,
    Subscription,
    StoredState,
)
from keepens.address import (
    is_valid_address,
    normalize_address,
    addresses_equal,
)
from keepens.label_hasher import (
    label_to_identifier,
    identifier_to_token_id,
)
from keepens.indexer_client import (
    IndexerClient,
    parse_raw_expiry,
)
from keepens.chain_reader import (
    ChainReader,
    ContractFunction,
)
from keepens.resolution_engine import (
    DomainResolutionEngine,
    compute_days_left,
    classify_urgency,
)
from keepens.identity_resolver import (
    NeynarClient,
    ConnectedAddressResolver,
    AddressStrategy,
    DEFAULT_STRATEGIES,
)
from keepens.retry_manager import (
    RetryManager,
    RetryResult,
)
from keepens.audit_logger import (
    AuditLogger,
    LogEntry,
)
from keepens.notifications import (
    NoticeDomain,
    ExpiryNotice,
    NotificationResult,
    NotificationChannel,
    ResendChannel,
    EmailChannel,
    NotificationRouter,
)
from keepens.subscription_store import (
    SubscriptionStore,
)
from keepens.expiry_notifier import (
    ExpiryNotifier,
    NotificationSummary,
    send_test_email,
    validate_email,
)
from keepens.cli import (
    main as cli_main,
    create_parser,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "KeepENSError",
    "ValidationError",
    "IndexerError",
    "ChainReadError",
    "IdentityLookupError",
    "PersistenceError",
    "TamperingError",
    # Enums
    "Namespace",
    "Urgency",
    "LogLevel",
    "IndexerErrorCode",
    "ChainReadErrorCode",
    "IdentityErrorCode",
    # Configuration
    "IndexerConfig",
    "ChainConfig",
    "IdentityConfig",
    "RetryConfig",
    "EmailConfig",
    "ResendConfig",
    "NotificationConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    # Models
    "DomainRecord",
    "ResolvedDomain",
    "Subscriber",
    "Subscription",
    "StoredState",
    # Addresses
    "is_valid_address",
    "normalize_address",
    "addresses_equal",
    # Label Hasher
    "label_to_identifier",
    "identifier_to_token_id",
    # Indexer Client
    "IndexerClient",
    "parse_raw_expiry",
    # Chain Reader
    "ChainReader",
    "ContractFunction",
    # Resolution Engine
    "DomainResolutionEngine",
    "compute_days_left",
    "classify_urgency",
    # Identity Resolver
    "NeynarClient",
    "ConnectedAddressResolver",
    "AddressStrategy",
    "DEFAULT_STRATEGIES",
    # Retry Manager
    "RetryManager",
    "RetryResult",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Notifications
    "NoticeDomain",
    "ExpiryNotice",
    "NotificationResult",
    "NotificationChannel",
    "ResendChannel",
    "EmailChannel",
    "NotificationRouter",
    # Subscription Store
    "SubscriptionStore",
    # Expiry Notifier
    "ExpiryNotifier",
    "NotificationSummary",
    "send_test_email",
    "validate_email",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
]
