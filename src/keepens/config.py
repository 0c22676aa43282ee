"""
Configuration dataclasses for the KeepENS system.

This module defines all configuration structures used throughout the system,
including indexer endpoints, chain RPC and contract addresses, the identity
API, retry logic, notifications, persistence, and logging configuration.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class IndexerConfig:
    """Subgraph endpoints, one per namespace."""

    primary_endpoint: str = "https://api.thegraph.com/subgraphs/name/ensdomains/ens"
    l2_endpoint: str = "https://api.alpha.ensnode.io/subgraph"
    l2_name_suffix: str = ".base.eth"
    timeout_seconds: float = 15.0


@dataclass
class ChainConfig:
    """RPC endpoints and registry contract addresses."""

    primary_rpc_url: str = "https://eth.llamarpc.com"
    l2_rpc_url: str = "https://mainnet.base.org"
    base_registrar_address: str = "0x57f1887a8BF19b14fC0dF6Fd9B2acc9Af147eA85"
    name_wrapper_address: str = "0xD4416b13d2b3a9aBae7AcD5D6C2BbDBE25686401"
    l2_registrar_address: str = "0x03c4738Ee98aE44591e1A4A4F3CaB6641d95DD9a"
    timeout_seconds: float = 15.0


@dataclass
class IdentityConfig:
    """Social-identity (Farcaster via Neynar) API configuration."""

    api_key: str = ""
    base_url: str = "https://api.neynar.com"
    timeout_seconds: float = 10.0


@dataclass
class RetryConfig:
    """Retry behavior configuration."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0


@dataclass
class EmailConfig:
    """SMTP email channel configuration."""

    smtp_host: str
    smtp_port: int
    username: str
    password: str
    from_address: str


@dataclass
class ResendConfig:
    """Resend HTTPS email API configuration."""

    api_key: str
    from_address: str = "ENS Notifier <onboarding@resend.dev>"
    api_url: str = "https://api.resend.com/emails"


@dataclass
class NotificationConfig:
    """Notification channels configuration."""

    resend: Optional[ResendConfig] = None
    email: Optional[EmailConfig] = None


@dataclass
class PersistenceConfig:
    """Subscription store configuration."""

    state_file_path: Path
    hmac_secret: str


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    indexer: IndexerConfig
    chain: ChainConfig
    identity: IdentityConfig
    retry: RetryConfig
    notifications: NotificationConfig
    persistence: PersistenceConfig
    logging: LoggingConfig
    notify_days_threshold: int = 30
    simulation_mode: bool = False
